from __future__ import annotations

import pytest
import requests

from logview_settings import http_client, reload_config
from logview_settings.http_client import DECODE, NETWORK, PresetFetchError, get_json


class DummyResponse:
    def __init__(self, payload=None, *, status: int = 200):
        self.payload = payload
        self.status_code = status
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self.payload is None:
            raise ValueError("Expecting value")
        return self.payload

    def close(self) -> None:
        self.closed = True


class DummySession:
    def __init__(self, response):
        self.response = response
        self.timeouts: list = []

    def request(self, method, url, timeout=None, **kwargs):
        self.timeouts.append(timeout)
        return self.response


@pytest.fixture(autouse=True)
def fresh_session():
    http_client.session.cache_clear()
    yield
    http_client.session.cache_clear()


def test_session_retries_follow_configuration(monkeypatch) -> None:
    monkeypatch.setenv("HTTP_RETRY_TOTAL", "3")
    reload_config()

    sess = http_client.session()

    retry = sess.get_adapter("https://example.com").max_retries
    assert retry.total == 3
    assert 503 in retry.status_forcelist
    assert sess.headers["Accept"] == "application/json"
    assert sess.headers["User-Agent"].startswith("logview-settings/")


def test_default_timeout_comes_from_configuration(monkeypatch) -> None:
    monkeypatch.setenv("HTTP_TIMEOUT", "4.5")
    reload_config()
    sess = DummySession(DummyResponse({"a": 1}))

    assert get_json("https://example.com/p.json", sess=sess) == {"a": 1}
    assert sess.timeouts == [4.5]


def test_error_status_closes_response(caplog) -> None:
    response = DummyResponse({}, status=404)

    with caplog.at_level("WARNING"), pytest.raises(PresetFetchError) as exc_info:
        get_json("https://example.com/p.json", sess=DummySession(response))

    assert exc_info.value.kind == NETWORK
    assert response.closed
    assert "preset download failed" in caplog.text


def test_non_json_body_is_decode_error() -> None:
    response = DummyResponse(None)

    with pytest.raises(PresetFetchError) as exc_info:
        get_json("https://example.com/p.json", sess=DummySession(response))

    assert exc_info.value.kind == DECODE
    assert response.closed
