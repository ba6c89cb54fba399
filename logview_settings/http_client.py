"""Download of the preset catalog over HTTP.

The shared session retries idempotent requests according to ``HTTP_RETRY_TOTAL``
and ``HTTP_BACKOFF``; every failure is reported as a :class:`PresetFetchError`
whose ``kind`` tells transport problems apart from undecodable bodies.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Optional

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import __version__, http_cfg
from .logging_setup import log_kv
from .schema import SettingsError

logger = logging.getLogger(__name__)

NETWORK = "network"
DECODE = "decode"
VALIDATION = "validation"

RETRY_STATUSES = (429, 500, 502, 503, 504)


class PresetFetchError(SettingsError):
    """Raised when the preset catalog cannot be retrieved or is invalid."""

    def __init__(self, url: str, kind: str, message: str) -> None:
        super().__init__(f"Failed to load presets from {url} ({kind}): {message}")
        self.url = url
        self.kind = kind


@lru_cache()
def session() -> Session:
    cfg = http_cfg()
    sess = requests.Session()
    sess.trust_env = False
    sess.headers.update(
        {"Accept": "application/json", "User-Agent": f"logview-settings/{__version__}"}
    )
    retry = Retry(
        total=cfg.retry_total,
        backoff_factor=cfg.backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    sess.mount("http://", adapter)
    sess.mount("https://", adapter)
    return sess


def get_json(url: str, *, timeout: Optional[float] = None, sess: Optional[Session] = None) -> Any:
    """GET ``url`` and return its decoded JSON body.

    Connection failures, timeouts and error statuses raise with kind
    ``network``; a body that is not JSON raises with kind ``decode``.
    """

    sess = sess or session()
    effective_timeout = timeout if timeout is not None else http_cfg().timeout
    try:
        response = sess.request("GET", url, timeout=effective_timeout)
    except requests.RequestException as exc:
        log_kv(logger, logging.WARNING, "preset download failed", url=url, error=str(exc))
        raise PresetFetchError(url, NETWORK, str(exc)) from exc

    try:
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            log_kv(logger, logging.WARNING, "preset download failed", url=url, status=response.status_code)
            raise PresetFetchError(url, NETWORK, str(exc)) from exc
        try:
            return response.json()
        except ValueError as exc:
            raise PresetFetchError(url, DECODE, f"response is not JSON: {exc}") from exc
    finally:
        response.close()


__all__ = ["DECODE", "NETWORK", "PresetFetchError", "VALIDATION", "get_json", "session"]
