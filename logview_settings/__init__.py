"""Profile-aware settings engine for the log viewer."""

from __future__ import annotations

from functools import lru_cache
from importlib import import_module
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - imported for type checkers only
    from .config import AppConfig, HttpCfg, LogCfg, PresetCfg, StorageCfg

__version__ = "0.3.0"


def _config_module():
    """Return the lazily-imported configuration module."""

    return import_module(__name__ + ".config")


@lru_cache()
def _cached_config() -> "AppConfig":
    return _config_module().load_all()


def storage_cfg() -> "StorageCfg":
    return _cached_config().storage


def preset_cfg() -> "PresetCfg":
    return _cached_config().preset


def http_cfg() -> "HttpCfg":
    return _cached_config().http


def log_cfg() -> "LogCfg":
    return _cached_config().log


def reload_config() -> "AppConfig":
    """Drop cached configuration so the environment is read again."""

    _cached_config.cache_clear()
    _config_module().load_all.cache_clear()
    return _cached_config()


__all__ = [
    "__version__",
    "http_cfg",
    "log_cfg",
    "preset_cfg",
    "reload_config",
    "storage_cfg",
]
