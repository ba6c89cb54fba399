from __future__ import annotations

import itertools
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import logview_settings
from logview_settings import config as config_module
from logview_settings.schema import parse_profile_catalog

_ENV_VARS = (
    "LOGVIEW_STORAGE_KEY",
    "LOGVIEW_STORAGE_BACKEND",
    "LOGVIEW_STORAGE_DIR",
    "LOGVIEW_PRESET_URL",
    "PRESET_URL",
    "HTTP_TIMEOUT",
    "HTTP_RETRY_TOTAL",
    "HTTP_BACKOFF",
    "LOG_LEVEL",
    "LOG_JSON",
)


def _clear_config_cache() -> None:
    logview_settings._cached_config.cache_clear()
    config_module.load_all.cache_clear()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "config_dir", lambda: tmp_path / "config")
    monkeypatch.setenv("LOGVIEW_STORAGE_DIR", str(tmp_path / "store"))
    _clear_config_cache()
    yield
    _clear_config_cache()


@pytest.fixture
def clock():
    ticks = itertools.count(1_000, 10)
    return lambda: next(ticks)


@pytest.fixture
def preset_data() -> dict:
    return {
        "default": {
            "config": {
                "decoderOptions/timestampKey": "ts",
                "pageSize": 500,
            },
            "filePathRegExps": [],
            "lastModificationTimestampMillis": 100,
        },
        "json-app": {
            "config": {
                "decoderOptions/formatString": "{level} {message}",
                "decoderOptions/timestampKey": "@timestamp",
                "theme": "dark",
            },
            "filePathRegExps": ["^/var/log/app/", r"\.jsonl$"],
            "lastModificationTimestampMillis": 5_000,
        },
        "nginx": {
            "config": {"decoderOptioins/logLevelKey": "severity"},
            "filePathRegExps": ["^/var/log/nginx/"],
            "lastModificationTimestampMillis": 5_000,
        },
    }


@pytest.fixture
def presets(preset_data):
    return parse_profile_catalog(preset_data)
