"""Centralised environment configuration helpers for logview-settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values
from platformdirs import user_config_dir

logger = logging.getLogger(__name__)

APP_NAME = "logview-settings"
STORAGE_BACKENDS = ("json", "sqlite", "memory")


def _getenv(*names: str, required: bool = False, default: Optional[str] = None) -> Optional[str]:
    for idx, name in enumerate(names):
        value = os.getenv(name)
        if value:
            if len(names) > 1 and idx != 0:
                logger.warning(
                    "ENV alias %s used for %s; please rename to %s",
                    name,
                    names[0],
                    names[0],
                )
            return value
    if required and default is None:
        raise RuntimeError(f"Missing required env var: one of {names}")
    return default


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def config_dir() -> Path:
    return Path(user_config_dir(APP_NAME))


def _apply_env_files(*paths: Path) -> None:
    """Load ``.env`` files without overriding variables already present."""

    for path in paths:
        if not path or not path.is_file():
            continue
        for key, value in dotenv_values(path).items():
            if value is None or key in os.environ:
                continue
            os.environ[key] = value


@dataclass(frozen=True)
class StorageCfg:
    key: str
    backend: str
    directory: Path


@dataclass(frozen=True)
class PresetCfg:
    url: str


@dataclass(frozen=True)
class HttpCfg:
    timeout: float
    retry_total: int
    backoff_factor: float


@dataclass(frozen=True)
class LogCfg:
    level: str
    json: bool


@dataclass(frozen=True)
class AppConfig:
    storage: StorageCfg
    preset: PresetCfg
    http: HttpCfg
    log: LogCfg


@lru_cache()
def load_all() -> AppConfig:
    _apply_env_files(config_dir() / ".env", Path.cwd() / ".env")

    backend = (_getenv("LOGVIEW_STORAGE_BACKEND", default="json") or "json").strip().lower()
    if backend not in STORAGE_BACKENDS:
        logger.warning(
            "Unknown LOGVIEW_STORAGE_BACKEND %r; falling back to json",
            backend,
        )
        backend = "json"
    directory = _getenv("LOGVIEW_STORAGE_DIR")
    storage_cfg = StorageCfg(
        key=(_getenv("LOGVIEW_STORAGE_KEY", default="log-viewer") or "log-viewer").strip(),
        backend=backend,
        directory=Path(directory).expanduser() if directory else config_dir(),
    )

    preset_cfg = PresetCfg(
        url=(_getenv("LOGVIEW_PRESET_URL", "PRESET_URL", default="profile-presets.json") or "").strip(),
    )

    http_timeout = _getenv("HTTP_TIMEOUT", default="10") or "10"
    http_retry = _getenv("HTTP_RETRY_TOTAL", default="0") or "0"
    http_backoff = _getenv("HTTP_BACKOFF", default="0.5") or "0.5"
    http_cfg = HttpCfg(
        timeout=float(http_timeout),
        retry_total=int(http_retry),
        backoff_factor=float(http_backoff),
    )

    log_cfg = LogCfg(
        level=(_getenv("LOG_LEVEL", default="INFO") or "INFO").upper(),
        json=_as_bool(_getenv("LOG_JSON"), False),
    )

    return AppConfig(storage=storage_cfg, preset=preset_cfg, http=http_cfg, log=log_cfg)


def storage_cfg() -> StorageCfg:
    return load_all().storage


def preset_cfg() -> PresetCfg:
    return load_all().preset


def http_cfg() -> HttpCfg:
    return load_all().http


def log_cfg() -> LogCfg:
    return load_all().log
