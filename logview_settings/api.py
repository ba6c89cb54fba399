"""Consumer-facing helpers on top of :class:`SettingsManager`."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from . import preset_cfg, storage_cfg
from .manager import SettingsManager
from .schema import ConfigKey, ValidationError, is_profile_managed, parse_config_key, parse_config_value
from .storage import KeyValueStore, open_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigDescription:
    """How a settings form should present one key."""

    key: ConfigKey
    label: str
    helper_text: str
    input_type: str


GLOBAL_CONFIG_DESCRIPTIONS: Tuple[ConfigDescription, ...] = (
    ConfigDescription(
        key=ConfigKey.PAGE_SIZE,
        label="View: Page size",
        helper_text="Number of log messages to display per page.",
        input_type="number",
    ),
)

PROFILE_MANAGED_CONFIG_DESCRIPTIONS: Tuple[ConfigDescription, ...] = (
    ConfigDescription(
        key=ConfigKey.DECODER_FORMAT_STRING,
        label="Decoder: Format string",
        helper_text=(
            "[Structured] Format string for formatting a structured log event as plain text. "
            "Leave blank to display the entire log event."
        ),
        input_type="text",
    ),
    ConfigDescription(
        key=ConfigKey.DECODER_LOG_LEVEL_KEY,
        label="Decoder: Log level key",
        helper_text="[Structured] Key that maps to each log event's log level.",
        input_type="text",
    ),
    ConfigDescription(
        key=ConfigKey.DECODER_TIMESTAMP_KEY,
        label="Decoder: Timestamp key",
        helper_text="[Structured] Key that maps to each log event's timestamp.",
        input_type="text",
    ),
    ConfigDescription(
        key=ConfigKey.DECODER_TIMESTAMP_FORMAT_STRING,
        label="Decoder: Timestamp format string",
        helper_text="[Unstructured-IR] Format string for timestamps in Day.js format.",
        input_type="text",
    ),
)


def bootstrap(
    *,
    store: Optional[KeyValueStore] = None,
    storage_key: Optional[str] = None,
    preset_url: Optional[str] = None,
) -> SettingsManager:
    """Build the manager from environment configuration.

    Explicit arguments override the configured values.
    """

    s_cfg = storage_cfg()
    if store is None:
        store = open_store(s_cfg.backend, s_cfg.directory)
    key = storage_key or s_cfg.key
    url = preset_url or preset_cfg().url
    logger.debug("Starting settings manager key=%s presets=%s backend=%s", key, url, s_cfg.backend)
    return SettingsManager.create(store, key, url)


def set_config(
    manager: SettingsManager,
    key: Any,
    value: Any,
    profile_name: Optional[str] = None,
) -> Optional[str]:
    """Update ``key`` and return ``None``, or an error message on failure.

    Validation and storage failures leave the settings untouched. A failing
    listener is not a failed update and propagates as
    :class:`~logview_settings.manager.ListenerError`.
    """

    try:
        manager.set_config(key, value, profile_name)
    except (ValidationError, OSError, sqlite3.Error) as exc:
        return _failure(key, exc)
    return None


def set_config_if_changed(
    manager: SettingsManager,
    key: Any,
    value: Any,
    profile_name: Optional[str] = None,
) -> Optional[str]:
    """Like :func:`set_config`, but a value equal to the resolved one is not written.

    Submitting a profile's current value therefore never creates a local copy
    of a preset.
    """

    try:
        key = parse_config_key(key)
        value = parse_config_value(key, value)
    except ValidationError as exc:
        return _failure(key, exc)
    if manager.get_config(key, profile_name) == value:
        logger.debug("Config %s unchanged, not writing", key.value)
        return None
    return set_config(manager, key, value, profile_name)


def reset(manager: SettingsManager) -> Optional[str]:
    """Discard every stored setting. Returns an error message on storage failure."""

    try:
        manager.reset()
    except (OSError, sqlite3.Error) as exc:
        message = f"Failed to reset settings: {exc}."
        logger.info(message)
        return message
    return None


def _failure(key: Any, exc: Exception) -> str:
    name = key.value if isinstance(key, ConfigKey) else key
    message = f"Failed to set config with key {name}: {exc}."
    logger.info(message)
    return message


def get_config(manager: SettingsManager, key: Any, profile_name: Optional[str] = None) -> Any:
    return manager.get_config(key, profile_name)


def describe(key: ConfigKey) -> Optional[ConfigDescription]:
    pool = PROFILE_MANAGED_CONFIG_DESCRIPTIONS if is_profile_managed(key) else GLOBAL_CONFIG_DESCRIPTIONS
    for description in pool:
        if description.key == key:
            return description
    return None


__all__ = [
    "ConfigDescription",
    "GLOBAL_CONFIG_DESCRIPTIONS",
    "PROFILE_MANAGED_CONFIG_DESCRIPTIONS",
    "bootstrap",
    "describe",
    "get_config",
    "reset",
    "set_config",
    "set_config_if_changed",
]
