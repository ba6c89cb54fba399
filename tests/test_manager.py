from __future__ import annotations

import json

import pytest

from logview_settings.defaults import CONFIG_DEFAULT, DEFAULT_PROFILE_NAME
from logview_settings.manager import ListenerError, SettingsManager
from logview_settings.presets import NETWORK, PresetFetchError
from logview_settings.schema import ConfigKey, ConfigMap, TabName, ThemeName, ValidationError
from logview_settings.storage import JsonDirectoryStore, MemoryStore

KEY = "log-viewer"


class FlakyStore(MemoryStore):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fail = False

    def set(self, key: str, value: str) -> None:
        if self.fail:
            raise OSError("disk full")
        super().set(key, value)


def _stored(store) -> dict:
    return json.loads(store.get(KEY))


def _local_profile(ts: int, **config) -> dict:
    return {"config": config, "filePathRegExps": [], "lastModificationTimestampMillis": ts}


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def manager(store, presets, clock):
    return SettingsManager.create(store, KEY, "unused", fetcher=lambda url: presets, clock=clock)


def test_fresh_manager_uses_defaults_and_persists(manager, store) -> None:
    assert manager.get_active_profile_name() == DEFAULT_PROFILE_NAME
    assert manager.get_is_forced() is False
    assert _stored(store) == {
        "activeProfileName": "default",
        "globalConfig": {},
        "profileConfigs": {},
        "isForced": False,
    }


def test_lookup_precedence(manager) -> None:
    # preset profile
    assert manager.get_config(ConfigKey.DECODER_TIMESTAMP_KEY, "json-app") == "@timestamp"
    # default preset
    assert manager.get_config(ConfigKey.DECODER_TIMESTAMP_KEY, "nginx") == "ts"
    assert manager.get_config(ConfigKey.PAGE_SIZE) == 500
    # compiled-in default
    assert manager.get_config(ConfigKey.DECODER_LOG_LEVEL_KEY, "json-app") == CONFIG_DEFAULT[
        ConfigKey.DECODER_LOG_LEVEL_KEY
    ]
    assert manager.get_config(ConfigKey.INITIAL_TAB_NAME) is TabName.FILE_INFO

    manager.set_config(ConfigKey.DECODER_TIMESTAMP_KEY, "time", "json-app")
    assert manager.get_config(ConfigKey.DECODER_TIMESTAMP_KEY, "json-app") == "time"


def test_global_override_beats_presets(manager) -> None:
    assert manager.get_config(ConfigKey.THEME, "json-app") is ThemeName.DARK

    manager.set_config(ConfigKey.THEME, "light")

    assert manager.get_config(ConfigKey.THEME, "json-app") is ThemeName.LIGHT
    assert manager.get_config(ConfigKey.THEME) is ThemeName.LIGHT


def test_empty_format_string_is_a_real_override(manager) -> None:
    manager.set_config(ConfigKey.DECODER_FORMAT_STRING, "", "json-app")
    assert manager.get_config(ConfigKey.DECODER_FORMAT_STRING, "json-app") == ""


def test_unknown_profile_falls_back_to_default_chain(manager) -> None:
    manager.set_active_profile_name("ghost")
    assert manager.get_config(ConfigKey.DECODER_TIMESTAMP_KEY) == "ts"


def test_config_map_is_total(manager) -> None:
    for profile in [None, "json-app", "nginx", "ghost"]:
        config_map = manager.get_config_map(profile)
        assert isinstance(config_map, ConfigMap)
        for key in ConfigKey:
            assert config_map.get(key) == manager.get_config(key, profile)


@pytest.mark.parametrize(
    ("key", "value", "expected"),
    [
        (ConfigKey.DECODER_FORMAT_STRING, "{message}", "{message}"),
        (ConfigKey.DECODER_LOG_LEVEL_KEY, "lvl", "lvl"),
        (ConfigKey.DECODER_TIMESTAMP_FORMAT_STRING, "HH:mm", "HH:mm"),
        (ConfigKey.DECODER_TIMESTAMP_KEY, "when", "when"),
        (ConfigKey.INITIAL_TAB_NAME, "search", TabName.SEARCH),
        (ConfigKey.THEME, ThemeName.DARK, ThemeName.DARK),
        (ConfigKey.PAGE_SIZE, "42", 42),
    ],
)
def test_set_then_get_returns_value(manager, key, value, expected) -> None:
    manager.set_config(key, value)
    assert manager.get_config(key) == expected


def test_set_accepts_wire_key_names(manager) -> None:
    manager.set_config("pageSize", 77)
    assert manager.get_config("pageSize") == 77


def test_profile_managed_write_creates_local_profile(manager, store) -> None:
    manager.set_active_profile_name("nginx")
    assert not manager.is_profile_modified("nginx")

    manager.set_config(ConfigKey.DECODER_TIMESTAMP_KEY, "date")

    assert manager.is_profile_modified("nginx")
    stored = _stored(store)["profileConfigs"]["nginx"]
    assert stored["config"] == {"decoderOptions/timestampKey": "date"}
    assert stored["filePathRegExps"] == []
    # untouched keys still come from the preset
    assert manager.get_config(ConfigKey.DECODER_LOG_LEVEL_KEY) == "severity"


def test_global_write_does_not_touch_profiles(manager, store) -> None:
    manager.set_active_profile_name("json-app")
    manager.set_config(ConfigKey.PAGE_SIZE, 20)

    assert not manager.is_profile_modified("json-app")
    assert _stored(store)["globalConfig"] == {"pageSize": 20}


def test_profile_write_refreshes_timestamp(manager, store) -> None:
    manager.create_profile("mine")
    created = _stored(store)["profileConfigs"]["mine"]["lastModificationTimestampMillis"]

    manager.set_config(ConfigKey.DECODER_TIMESTAMP_KEY, "t", "mine")

    updated = _stored(store)["profileConfigs"]["mine"]["lastModificationTimestampMillis"]
    assert updated > created


def test_invalid_value_leaves_state_untouched(manager, store) -> None:
    manager.set_config(ConfigKey.PAGE_SIZE, 30)
    before = store.get(KEY)
    calls: list[int] = []
    manager.subscribe(lambda: calls.append(1))

    with pytest.raises(ValidationError) as exc_info:
        manager.set_config(ConfigKey.PAGE_SIZE, 0)

    assert "pageSize" in str(exc_info.value)
    assert store.get(KEY) == before
    assert manager.get_config(ConfigKey.PAGE_SIZE) == 30
    assert calls == []


def test_storage_failure_leaves_memory_untouched(manager, store) -> None:
    calls: list[int] = []
    manager.subscribe(lambda: calls.append(1))
    store.fail = True

    with pytest.raises(OSError):
        manager.set_config(ConfigKey.DECODER_TIMESTAMP_KEY, "t", "brand-new")

    assert not manager.is_profile_modified("brand-new")
    assert manager.get_config(ConfigKey.DECODER_TIMESTAMP_KEY, "brand-new") == "ts"
    assert calls == []


def test_create_profile_validates_name(manager) -> None:
    with pytest.raises(ValidationError):
        manager.create_profile("")


def test_create_profile_overwrites_local_copy(manager) -> None:
    manager.set_config(ConfigKey.DECODER_TIMESTAMP_KEY, "t", "mine")
    manager.create_profile("mine")
    assert manager.get_config(ConfigKey.DECODER_TIMESTAMP_KEY, "mine") == "ts"


def test_profile_names_include_default_locals_and_presets(manager) -> None:
    manager.create_profile("mine")
    manager.create_profile("nginx")
    names = manager.get_profile_names()
    assert names[0] == DEFAULT_PROFILE_NAME
    assert set(names) == {"default", "json-app", "nginx", "mine"}
    assert len(names) == len(set(names))


def test_removing_active_local_profile_reverts_to_default(manager) -> None:
    manager.create_profile("mine")
    manager.set_active_profile_name("mine")

    manager.remove_profile("mine")

    assert manager.get_active_profile_name() == DEFAULT_PROFILE_NAME
    assert not manager.is_profile_modified("mine")


def test_removing_modified_preset_keeps_it_active(manager) -> None:
    manager.set_active_profile_name("nginx")
    manager.set_config(ConfigKey.DECODER_LOG_LEVEL_KEY, "lvl")

    manager.remove_profile("nginx")

    assert manager.get_active_profile_name() == "nginx"
    assert manager.get_config(ConfigKey.DECODER_LOG_LEVEL_KEY) == "severity"


def test_set_active_profile_is_idempotent(manager, store) -> None:
    manager.set_active_profile_name("json-app")
    once = store.get(KEY)
    manager.set_active_profile_name("json-app")
    assert store.get(KEY) == once


def test_forced_flag_controls_resolution(manager) -> None:
    manager.set_active_profile_name("nginx")
    assert manager.resolve_profile_name("/var/log/app/server.log") == "json-app"

    manager.set_is_forced(True)

    assert manager.get_is_forced() is True
    assert manager.resolve_profile_name("/var/log/app/server.log") == "nginx"


def test_get_profile_prefers_local_copy(manager) -> None:
    manager.set_config(ConfigKey.DECODER_TIMESTAMP_KEY, "local", "json-app")
    profile = manager.get_profile("json-app")
    assert profile is not None
    assert profile.config.get(ConfigKey.DECODER_TIMESTAMP_KEY) == "local"
    assert manager.get_profile("missing") is None


def test_listener_runs_once_per_mutation(manager) -> None:
    calls: list[int] = []
    unsubscribe = manager.subscribe(lambda: calls.append(manager.get_config(ConfigKey.PAGE_SIZE)))

    manager.set_config(ConfigKey.DECODER_TIMESTAMP_KEY, "t", "auto-created")
    assert len(calls) == 1

    manager.set_config(ConfigKey.PAGE_SIZE, 9)
    assert calls[-1] == 9

    unsubscribe()
    unsubscribe()
    manager.set_is_forced(True)
    manager.create_profile("x")
    manager.remove_profile("x")
    manager.set_active_profile_name("x")
    assert len(calls) == 2


def test_listeners_run_in_insertion_order(manager) -> None:
    order: list[str] = []
    manager.subscribe(lambda: order.append("first"))
    manager.subscribe(lambda: order.append("second"))

    manager.set_is_forced(True)

    assert order == ["first", "second"]


def test_failing_listener_does_not_block_others(manager, store) -> None:
    order: list[str] = []

    def broken() -> None:
        raise RuntimeError("render failed")

    manager.subscribe(broken)
    manager.subscribe(lambda: order.append("after"))

    with pytest.raises(ListenerError) as exc_info:
        manager.set_config(ConfigKey.PAGE_SIZE, 11)

    assert order == ["after"]
    assert isinstance(exc_info.value.errors[0], RuntimeError)
    # the mutation itself was committed
    assert manager.get_config(ConfigKey.PAGE_SIZE) == 11
    assert _stored(store)["globalConfig"] == {"pageSize": 11}


def test_corrupt_blob_starts_from_defaults(presets) -> None:
    store = MemoryStore({KEY: "{this is not json"})

    manager = SettingsManager.create(store, KEY, "unused", fetcher=lambda url: presets)

    assert manager.get_active_profile_name() == DEFAULT_PROFILE_NAME
    assert manager.get_config(ConfigKey.THEME) is ThemeName.SYSTEM
    assert json.loads(store.get(KEY))["activeProfileName"] == "default"


def test_construction_prunes_stale_local_profiles(presets) -> None:
    store = MemoryStore(
        {
            KEY: json.dumps(
                {
                    "activeProfileName": "json-app",
                    "globalConfig": {"pageSize": 12},
                    "profileConfigs": {
                        "json-app": _local_profile(5_000, **{"decoderOptions/timestampKey": "old"}),
                        "nginx": _local_profile(9_000, **{"decoderOptioins/logLevelKey": "newer"}),
                        "mine": _local_profile(1),
                    },
                    "isForced": False,
                }
            )
        }
    )

    manager = SettingsManager.create(store, KEY, "unused", fetcher=lambda url: presets)

    assert not manager.is_profile_modified("json-app")
    assert manager.is_profile_modified("nginx")
    assert manager.is_profile_modified("mine")
    assert manager.get_config(ConfigKey.DECODER_TIMESTAMP_KEY, "json-app") == "@timestamp"
    assert manager.get_config(ConfigKey.DECODER_LOG_LEVEL_KEY, "nginx") == "newer"
    assert manager.get_config(ConfigKey.PAGE_SIZE) == 12
    assert set(json.loads(store.get(KEY))["profileConfigs"]) == {"nginx", "mine"}


def test_construction_repairs_dangling_active_profile(presets) -> None:
    store = MemoryStore(
        {
            KEY: json.dumps(
                {
                    "activeProfileName": "retired",
                    "globalConfig": {},
                    "profileConfigs": {"retired": _local_profile(1)},
                    "isForced": True,
                }
            )
        }
    )
    retired_presets = dict(presets)
    retired_presets["retired"] = presets["nginx"].model_copy(
        update={"last_modified_at_millis": 2}
    )

    manager = SettingsManager.create(store, KEY, "unused", fetcher=lambda url: retired_presets)
    assert manager.get_active_profile_name() == "retired"

    store = MemoryStore({KEY: store.get(KEY)})
    manager = SettingsManager.create(store, KEY, "unused", fetcher=lambda url: presets)
    assert manager.get_active_profile_name() == DEFAULT_PROFILE_NAME
    assert manager.get_is_forced() is True


def test_preset_fetch_error_aborts_construction() -> None:
    store = MemoryStore()

    def failing(url: str):
        raise PresetFetchError(url, NETWORK, "connection refused")

    with pytest.raises(PresetFetchError):
        SettingsManager.create(store, KEY, "http://presets.invalid/p.json", fetcher=failing)
    assert store.get(KEY) is None


def test_listener_may_mutate_settings(manager) -> None:
    seen: list[bool] = []

    def reentrant() -> None:
        if not manager.get_is_forced():
            manager.set_is_forced(True)
        seen.append(manager.get_is_forced())

    manager.subscribe(reentrant)
    manager.set_config(ConfigKey.PAGE_SIZE, 3)

    assert manager.get_is_forced() is True
    assert seen[-1] is True


def test_undecodable_store_file_starts_from_defaults(tmp_path, presets) -> None:
    store = JsonDirectoryStore(tmp_path)
    store.path_for(KEY).write_bytes(b'{"activeProfileName": "\xff\xfe"}')

    manager = SettingsManager.create(store, KEY, "unused", fetcher=lambda url: presets)

    assert manager.get_active_profile_name() == DEFAULT_PROFILE_NAME
    assert json.loads(store.get(KEY))["activeProfileName"] == DEFAULT_PROFILE_NAME


def test_empty_active_name_survives_restart(manager, store, presets) -> None:
    manager.create_profile("mine")
    manager.set_config(ConfigKey.PAGE_SIZE, 42)
    manager.set_active_profile_name("")

    restarted = SettingsManager.create(store, KEY, "unused", fetcher=lambda url: presets)

    assert restarted.is_profile_modified("mine")
    assert restarted.get_config(ConfigKey.PAGE_SIZE) == 42
    assert restarted.get_active_profile_name() == DEFAULT_PROFILE_NAME


def test_reset_clears_storage_and_local_state(manager, store) -> None:
    calls: list[str] = []
    manager.subscribe(lambda: calls.append("changed"))
    manager.set_config(ConfigKey.DECODER_LOG_LEVEL_KEY, "lvl", "nginx")
    manager.set_active_profile_name("nginx")
    manager.set_is_forced(True)
    calls.clear()

    manager.reset()

    assert store.get(KEY) is None
    assert calls == ["changed"]
    assert manager.get_active_profile_name() == DEFAULT_PROFILE_NAME
    assert manager.get_is_forced() is False
    assert not manager.is_profile_modified("nginx")
    assert manager.get_config(ConfigKey.DECODER_LOG_LEVEL_KEY, "nginx") == "severity"
