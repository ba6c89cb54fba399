"""Logging helpers with KV/JSON formatting."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from . import log_cfg

if TYPE_CHECKING:  # pragma: no cover - imported for type checkers only
    from .config import LogCfg


class KVFormatter(logging.Formatter):
    """Formatter that appends key-value context pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        ctx = getattr(record, "ctx", None)
        if ctx and isinstance(ctx, dict):
            kv = " ".join(f"{key}={value}" for key, value in ctx.items())
            if kv:
                return f"{base} | {kv}"
        return base


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, "%Y-%m-%d %H:%M:%S"),
        }
        ctx = getattr(record, "ctx", None)
        if isinstance(ctx, dict):
            payload.update(ctx)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(cfg: Optional["LogCfg"] = None) -> None:
    """Configure root logging handlers according to env settings."""

    cfg = cfg or log_cfg()
    level = getattr(logging, cfg.level.upper(), logging.INFO)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(level)

    handler = logging.StreamHandler()
    if cfg.json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            KVFormatter(
                fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%H:%M:%S",
            )
        )

    root.addHandler(handler)


def log_kv(logger: logging.Logger, level: int, message: str, **ctx: Any) -> None:
    """Emit log record with structured context in ``ctx``."""

    logger.log(level, message, extra={"ctx": ctx})
