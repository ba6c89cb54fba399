"""Settings manager: profile-aware configuration lookup, mutation and change notification."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from . import resolve
from .defaults import CONFIG_DEFAULT, DEFAULT_PROFILE_NAME, default_settings
from .logging_setup import log_kv
from .presets import fetch_presets
from .reconcile import reconcile
from .schema import (
    ConfigKey,
    ConfigMap,
    ConfigUpdate,
    PersistedSettings,
    Profile,
    ProfileCatalog,
    SettingsError,
    is_profile_managed,
    parse_config_key,
    parse_config_value,
    parse_profile_name,
)
from .storage import KeyValueStore, load_settings, save_settings

logger = logging.getLogger(__name__)

Listener = Callable[[], None]
Resolver = Callable[[ConfigKey, str], Any]


def _now_millis() -> int:
    return int(time.time() * 1000)


class ListenerError(SettingsError):
    """Raised after notification when one or more listeners failed.

    The mutation that triggered the notification has already been persisted.
    """

    def __init__(self, errors: Sequence[BaseException]) -> None:
        detail = "; ".join(f"{type(exc).__name__}: {exc}" for exc in errors)
        super().__init__(f"{len(errors)} settings listener(s) failed: {detail}")
        self.errors = list(errors)


class SettingsManager:
    """Owns the merged runtime settings state.

    Mutations validate first, apply to a copy, persist the whole blob and only
    then replace the in-memory state and notify listeners, so a failure at any
    step leaves both memory and storage as they were. A re-entrant lock
    serializes mutations; listeners may read or mutate from their callback.
    """

    def __init__(
        self,
        store: KeyValueStore,
        storage_key: str,
        settings: PersistedSettings,
        presets: Mapping[str, Profile],
        *,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._store = store
        self._storage_key = storage_key
        self._settings = settings
        self._presets: ProfileCatalog = dict(presets)
        self._clock = clock or _now_millis
        self._lock = threading.RLock()
        self._listeners: Dict[int, Listener] = {}
        self._next_listener_id = 0
        # First defined value wins.
        self._resolvers: Sequence[Resolver] = (
            self._from_local_profile,
            self._from_global_config,
            self._from_preset_profile,
            self._from_default_preset,
        )

    @classmethod
    def create(
        cls,
        store: KeyValueStore,
        storage_key: str,
        preset_url: str,
        *,
        fetcher: Callable[[str], ProfileCatalog] = fetch_presets,
        clock: Optional[Callable[[], int]] = None,
    ) -> "SettingsManager":
        """Load stored settings, fetch presets, reconcile and persist.

        A :class:`~logview_settings.presets.PresetFetchError` propagates to
        the caller; startup is not expected to continue without presets.
        """

        settings = load_settings(store, storage_key)
        if settings is None:
            logger.info("No usable stored settings under %r; starting from defaults", storage_key)
            settings = default_settings()
        presets = fetcher(preset_url)
        return cls.from_sources(store, storage_key, settings, presets, clock=clock)

    @classmethod
    def from_sources(
        cls,
        store: KeyValueStore,
        storage_key: str,
        settings: PersistedSettings,
        presets: Mapping[str, Profile],
        *,
        clock: Optional[Callable[[], int]] = None,
    ) -> "SettingsManager":
        """Reconcile ``settings`` against ``presets``, persist and build a manager."""

        settings = settings.model_copy(deep=True)
        settings.profile_configs = reconcile(settings.profile_configs, presets)
        active = settings.active_profile_name
        if active != DEFAULT_PROFILE_NAME and active not in settings.profile_configs and active not in presets:
            logger.warning("Active profile %r no longer exists; reverting to %r", active, DEFAULT_PROFILE_NAME)
            settings.active_profile_name = DEFAULT_PROFILE_NAME
        save_settings(store, storage_key, settings)
        return cls(store, storage_key, settings, presets, clock=clock)

    # -- notification -------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable removes it again."""

        with self._lock:
            listener_id = self._next_listener_id
            self._next_listener_id += 1
            self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        return unsubscribe

    def _notify(self) -> None:
        errors: List[BaseException] = []
        for listener in list(self._listeners.values()):
            try:
                listener()
            except Exception as exc:
                errors.append(exc)
        if errors:
            raise ListenerError(errors) from errors[0]

    def _commit(self, settings: PersistedSettings) -> None:
        save_settings(self._store, self._storage_key, settings)
        self._settings = settings
        log_kv(
            logger,
            logging.DEBUG,
            "settings saved",
            key=self._storage_key,
            active=settings.active_profile_name,
            local_profiles=len(settings.profile_configs),
        )
        self._notify()

    def reset(self) -> None:
        """Delete the stored blob and fall back to built-in defaults and presets."""

        with self._lock:
            self._store.delete(self._storage_key)
            self._settings = default_settings()
            logger.info("Settings under %r reset to defaults", self._storage_key)
            self._notify()

    # -- profiles -----------------------------------------------------------

    def get_profile_names(self) -> List[str]:
        """Default name first, then local profiles, then remaining presets."""

        with self._lock:
            names = [DEFAULT_PROFILE_NAME, *self._settings.profile_configs, *self._presets]
        return list(dict.fromkeys(names))

    def is_profile_modified(self, name: str) -> bool:
        with self._lock:
            return name in self._settings.profile_configs

    def get_profile(self, name: str) -> Optional[Profile]:
        """Return the effective profile (local copy first), or ``None``."""

        with self._lock:
            profile = self._settings.profile_configs.get(name) or self._presets.get(name)
            return profile.model_copy(deep=True) if profile is not None else None

    def get_active_profile_name(self) -> str:
        with self._lock:
            return self._settings.active_profile_name

    def set_active_profile_name(self, name: str) -> None:
        with self._lock:
            settings = self._settings.model_copy(deep=True)
            settings.active_profile_name = name
            self._commit(settings)

    def _new_profile(self) -> Profile:
        return Profile(config=ConfigUpdate(), file_path_patterns=[], last_modified_at_millis=self._clock())

    def create_profile(self, name: str) -> None:
        """Create an empty local profile, replacing any local one of that name."""

        name = parse_profile_name(name)
        with self._lock:
            settings = self._settings.model_copy(deep=True)
            settings.profile_configs[name] = self._new_profile()
            self._commit(settings)

    def remove_profile(self, name: str) -> None:
        with self._lock:
            settings = self._settings.model_copy(deep=True)
            settings.profile_configs.pop(name, None)
            if settings.active_profile_name == name and name not in self._presets:
                settings.active_profile_name = DEFAULT_PROFILE_NAME
            self._commit(settings)

    def get_is_forced(self) -> bool:
        with self._lock:
            return self._settings.is_forced

    def set_is_forced(self, is_forced: bool) -> None:
        with self._lock:
            settings = self._settings.model_copy(deep=True)
            settings.is_forced = bool(is_forced)
            self._commit(settings)

    def resolve_profile_name(self, file_source: Any) -> str:
        with self._lock:
            return resolve.resolve_profile_name(
                self._presets,
                file_source,
                is_forced=self._settings.is_forced,
                active_profile_name=self._settings.active_profile_name,
            )

    # -- configuration ------------------------------------------------------

    def _from_local_profile(self, key: ConfigKey, profile_name: str) -> Any:
        if not is_profile_managed(key):
            return None
        profile = self._settings.profile_configs.get(profile_name)
        return profile.config.get(key) if profile is not None else None

    def _from_global_config(self, key: ConfigKey, profile_name: str) -> Any:
        if is_profile_managed(key):
            return None
        return self._settings.global_config.get(key)

    def _from_preset_profile(self, key: ConfigKey, profile_name: str) -> Any:
        profile = self._presets.get(profile_name)
        return profile.config.get(key) if profile is not None else None

    def _from_default_preset(self, key: ConfigKey, profile_name: str) -> Any:
        return self._from_preset_profile(key, DEFAULT_PROFILE_NAME)

    def get_config(self, key: ConfigKey, profile_name: Optional[str] = None) -> Any:
        """Resolve ``key`` for ``profile_name`` (the active profile by default)."""

        key = parse_config_key(key)
        with self._lock:
            name = profile_name if profile_name is not None else self._settings.active_profile_name
            for resolver in self._resolvers:
                value = resolver(key, name)
                if value is not None:
                    return value
        return CONFIG_DEFAULT[key]

    def get_config_map(self, profile_name: Optional[str] = None) -> ConfigMap:
        with self._lock:
            values = {key.value: self.get_config(key, profile_name) for key in ConfigKey}
        return ConfigMap.model_validate(values)

    def set_config(self, key: ConfigKey, value: Any, profile_name: Optional[str] = None) -> None:
        """Validate and store ``value`` for ``key``.

        Profile-managed keys go to the local copy of the target profile,
        which is created on first write; all other keys go to the global
        overrides regardless of the profile.
        """

        key = parse_config_key(key)
        value = parse_config_value(key, value)
        with self._lock:
            settings = self._settings.model_copy(deep=True)
            if is_profile_managed(key):
                name = profile_name if profile_name is not None else settings.active_profile_name
                if name not in settings.profile_configs:
                    name = parse_profile_name(name)
                    settings.profile_configs[name] = self._new_profile()
                profile = settings.profile_configs.get(name)
                assert profile is not None, f"local profile {name!r} missing after creation"
                profile.config = profile.config.with_value(key, value)
                profile.last_modified_at_millis = max(self._clock(), profile.last_modified_at_millis)
            else:
                settings.global_config = settings.global_config.with_value(key, value)
            self._commit(settings)


__all__ = ["Listener", "ListenerError", "SettingsManager"]
