"""Schema and validation for configuration maps, profiles and stored settings.

Every value crossing a trust boundary (storage, the preset server, a caller of
``set_config``) goes through one of the ``parse_*`` helpers below. They return
a value that satisfies the declared constraints or raise
:class:`ValidationError` describing the first violation.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Mapping, Optional

import pydantic
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints, TypeAdapter

MAX_PAGE_SIZE = 1_000_000


class SettingsError(RuntimeError):
    """Base class for settings engine failures."""


class ValidationError(SettingsError, ValueError):
    """Raised when input does not satisfy the settings schema."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class ConfigKey(str, Enum):
    # Wire values are persisted as-is; the log level key keeps its historical spelling.
    DECODER_FORMAT_STRING = "decoderOptions/formatString"
    DECODER_LOG_LEVEL_KEY = "decoderOptioins/logLevelKey"
    DECODER_TIMESTAMP_FORMAT_STRING = "decoderOptions/timestampFormatString"
    DECODER_TIMESTAMP_KEY = "decoderOptions/timestampKey"
    INITIAL_TAB_NAME = "initialTabName"
    THEME = "theme"
    PAGE_SIZE = "pageSize"


class ThemeName(str, Enum):
    SYSTEM = "system"
    DARK = "dark"
    LIGHT = "light"


class TabName(str, Enum):
    NONE = "none"
    FILE_INFO = "fileInfo"
    SEARCH = "search"
    SETTINGS = "settings"
    DOCUMENTATION = "documentation"


NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


def _reject_bool(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("Input should be an integer, not a boolean")
    return value


PageSize = Annotated[int, BeforeValidator(_reject_bool), Field(ge=1, le=MAX_PAGE_SIZE)]
ProfileName = NonEmptyStr

CONFIG_VALUE_TYPES: Dict[ConfigKey, Any] = {
    ConfigKey.DECODER_FORMAT_STRING: str,
    ConfigKey.DECODER_LOG_LEVEL_KEY: NonEmptyStr,
    ConfigKey.DECODER_TIMESTAMP_FORMAT_STRING: NonEmptyStr,
    ConfigKey.DECODER_TIMESTAMP_KEY: NonEmptyStr,
    ConfigKey.INITIAL_TAB_NAME: TabName,
    ConfigKey.THEME: ThemeName,
    ConfigKey.PAGE_SIZE: PageSize,
}

PROFILE_MANAGED_KEYS = frozenset(
    {
        ConfigKey.DECODER_FORMAT_STRING,
        ConfigKey.DECODER_LOG_LEVEL_KEY,
        ConfigKey.DECODER_TIMESTAMP_FORMAT_STRING,
        ConfigKey.DECODER_TIMESTAMP_KEY,
    }
)

GLOBAL_MANAGED_KEYS = frozenset(set(ConfigKey) - PROFILE_MANAGED_KEYS)

_VALUE_ADAPTERS: Dict[ConfigKey, TypeAdapter] = {
    key: TypeAdapter(value_type) for key, value_type in CONFIG_VALUE_TYPES.items()
}


def is_profile_managed(key: ConfigKey) -> bool:
    return key in PROFILE_MANAGED_KEYS


def _describe(exc: pydantic.ValidationError, prefix: str = "") -> tuple[str, str]:
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    where = ".".join(part for part in (prefix, loc) if part)
    return where, first.get("msg", "invalid value")


def _wrap(exc: pydantic.ValidationError, what: str, prefix: str = "") -> ValidationError:
    where, msg = _describe(exc, prefix)
    if where:
        return ValidationError(f"Invalid {what} at '{where}': {msg}", field=where)
    return ValidationError(f"Invalid {what}: {msg}", field=prefix or None)


def parse_config_key(key: Any) -> ConfigKey:
    """Return ``key`` as a :class:`ConfigKey`, accepting its wire value."""

    if isinstance(key, ConfigKey):
        return key
    try:
        return ConfigKey(key)
    except ValueError:
        raise ValidationError(f"Unknown config key: {key!r}", field=str(key)) from None


def parse_config_value(key: ConfigKey, value: Any) -> Any:
    """Validate ``value`` against the schema of ``key`` and return it coerced."""

    key = parse_config_key(key)
    try:
        return _VALUE_ADAPTERS[key].validate_python(value)
    except pydantic.ValidationError as exc:
        raise _wrap(exc, "value", key.value) from None


def _config_field(key: ConfigKey, *, required: bool) -> Any:
    if required:
        return Field(alias=key.value)
    return Field(default=None, alias=key.value)


class ConfigUpdate(BaseModel):
    """Partial configuration map; unset keys are ``None``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    decoder_format_string: Optional[str] = _config_field(ConfigKey.DECODER_FORMAT_STRING, required=False)
    decoder_log_level_key: Optional[NonEmptyStr] = _config_field(ConfigKey.DECODER_LOG_LEVEL_KEY, required=False)
    decoder_timestamp_format_string: Optional[NonEmptyStr] = _config_field(
        ConfigKey.DECODER_TIMESTAMP_FORMAT_STRING, required=False
    )
    decoder_timestamp_key: Optional[NonEmptyStr] = _config_field(ConfigKey.DECODER_TIMESTAMP_KEY, required=False)
    initial_tab_name: Optional[TabName] = _config_field(ConfigKey.INITIAL_TAB_NAME, required=False)
    theme: Optional[ThemeName] = _config_field(ConfigKey.THEME, required=False)
    page_size: Optional[PageSize] = _config_field(ConfigKey.PAGE_SIZE, required=False)

    def get(self, key: ConfigKey) -> Any:
        return getattr(self, FIELD_BY_KEY[key])

    def with_value(self, key: ConfigKey, value: Any) -> "ConfigUpdate":
        """Return a copy with ``key`` set to an already validated ``value``."""

        return self.model_copy(update={FIELD_BY_KEY[key]: value})

    def to_dict(self) -> Dict[ConfigKey, Any]:
        return {key: self.get(key) for key in ConfigKey if self.get(key) is not None}

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ConfigMap(BaseModel):
    """Total configuration map; every key holds a value."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    decoder_format_string: str = _config_field(ConfigKey.DECODER_FORMAT_STRING, required=True)
    decoder_log_level_key: NonEmptyStr = _config_field(ConfigKey.DECODER_LOG_LEVEL_KEY, required=True)
    decoder_timestamp_format_string: NonEmptyStr = _config_field(
        ConfigKey.DECODER_TIMESTAMP_FORMAT_STRING, required=True
    )
    decoder_timestamp_key: NonEmptyStr = _config_field(ConfigKey.DECODER_TIMESTAMP_KEY, required=True)
    initial_tab_name: TabName = _config_field(ConfigKey.INITIAL_TAB_NAME, required=True)
    theme: ThemeName = _config_field(ConfigKey.THEME, required=True)
    page_size: PageSize = _config_field(ConfigKey.PAGE_SIZE, required=True)

    def get(self, key: ConfigKey) -> Any:
        return getattr(self, FIELD_BY_KEY[key])

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


FIELD_BY_KEY: Dict[ConfigKey, str] = {
    ConfigKey(field.alias): name for name, field in ConfigUpdate.model_fields.items()
}


class Profile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    config: ConfigUpdate
    file_path_patterns: List[str] = Field(alias="filePathRegExps")
    last_modified_at_millis: int = Field(alias="lastModificationTimestampMillis")

    def dump(self) -> Dict[str, Any]:
        return {
            "config": self.config.dump(),
            "filePathRegExps": list(self.file_path_patterns),
            "lastModificationTimestampMillis": self.last_modified_at_millis,
        }


ProfileCatalog = Dict[str, Profile]

_CATALOG_ADAPTER: TypeAdapter = TypeAdapter(Dict[ProfileName, Profile])
_PROFILE_NAME_ADAPTER: TypeAdapter = TypeAdapter(ProfileName)


class PersistedSettings(BaseModel):
    """The single blob written to durable storage."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Any string; a name that resolves to nothing is repaired when the manager starts.
    active_profile_name: str = Field(alias="activeProfileName")
    global_config: ConfigUpdate = Field(default_factory=ConfigUpdate, alias="globalConfig")
    profile_configs: Dict[ProfileName, Profile] = Field(default_factory=dict, alias="profileConfigs")
    is_forced: bool = Field(default=False, alias="isForced")

    def dump(self) -> Dict[str, Any]:
        return {
            "activeProfileName": self.active_profile_name,
            "globalConfig": self.global_config.dump(),
            "profileConfigs": dump_profile_catalog(self.profile_configs),
            "isForced": self.is_forced,
        }


def dump_profile_catalog(catalog: Mapping[str, Profile]) -> Dict[str, Any]:
    return {name: profile.dump() for name, profile in catalog.items()}


def parse_profile_name(value: Any) -> str:
    try:
        return _PROFILE_NAME_ADAPTER.validate_python(value, strict=True)
    except pydantic.ValidationError as exc:
        raise _wrap(exc, "profile name") from None


def parse_config_update(data: Any) -> ConfigUpdate:
    try:
        return ConfigUpdate.model_validate(data)
    except pydantic.ValidationError as exc:
        raise _wrap(exc, "config update") from None


def parse_config_map(data: Any) -> ConfigMap:
    try:
        return ConfigMap.model_validate(data)
    except pydantic.ValidationError as exc:
        raise _wrap(exc, "config map") from None


def parse_profile(data: Any) -> Profile:
    try:
        return Profile.model_validate(data)
    except pydantic.ValidationError as exc:
        raise _wrap(exc, "profile") from None


def parse_profile_catalog(data: Any) -> ProfileCatalog:
    try:
        return _CATALOG_ADAPTER.validate_python(data)
    except pydantic.ValidationError as exc:
        raise _wrap(exc, "profile catalog") from None


def parse_persisted_settings(data: Any) -> PersistedSettings:
    try:
        return PersistedSettings.model_validate(data)
    except pydantic.ValidationError as exc:
        raise _wrap(exc, "stored settings") from None


__all__ = [
    "CONFIG_VALUE_TYPES",
    "ConfigKey",
    "ConfigMap",
    "ConfigUpdate",
    "GLOBAL_MANAGED_KEYS",
    "MAX_PAGE_SIZE",
    "PROFILE_MANAGED_KEYS",
    "PersistedSettings",
    "Profile",
    "ProfileCatalog",
    "SettingsError",
    "TabName",
    "ThemeName",
    "ValidationError",
    "dump_profile_catalog",
    "is_profile_managed",
    "parse_config_key",
    "parse_config_map",
    "parse_config_update",
    "parse_config_value",
    "parse_persisted_settings",
    "parse_profile",
    "parse_profile_catalog",
    "parse_profile_name",
]
