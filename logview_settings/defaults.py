"""Compiled-in fallbacks for every configuration key.

These values are the last step of the lookup chain: they apply when neither
the local profile, the stored global overrides, nor any preset defines a key.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping

from .schema import ConfigKey, ConfigMap, ConfigUpdate, PersistedSettings, TabName, ThemeName

DEFAULT_PROFILE_NAME = "default"

CONFIG_DEFAULT: Mapping[ConfigKey, Any] = MappingProxyType(
    {
        ConfigKey.DECODER_FORMAT_STRING: "",
        ConfigKey.DECODER_LOG_LEVEL_KEY: "log.level",
        ConfigKey.DECODER_TIMESTAMP_FORMAT_STRING: "YYYY-MM-DDTHH:mm:ss.SSSZ",
        ConfigKey.DECODER_TIMESTAMP_KEY: "timestamp",
        ConfigKey.INITIAL_TAB_NAME: TabName.FILE_INFO,
        ConfigKey.THEME: ThemeName.SYSTEM,
        ConfigKey.PAGE_SIZE: 10_000,
    }
)

# Fails at import if a key is added without a default.
DEFAULT_CONFIG_MAP = ConfigMap.model_validate({key.value: value for key, value in CONFIG_DEFAULT.items()})


def default_settings() -> PersistedSettings:
    """Return a fresh structural default for the stored settings blob."""

    return PersistedSettings(
        active_profile_name=DEFAULT_PROFILE_NAME,
        global_config=ConfigUpdate(),
        profile_configs={},
        is_forced=False,
    )


__all__ = ["CONFIG_DEFAULT", "DEFAULT_CONFIG_MAP", "DEFAULT_PROFILE_NAME", "default_settings"]
