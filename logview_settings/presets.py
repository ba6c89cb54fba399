"""Retrieval of the server-authored preset profile catalog."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import requests
import yaml

from .http_client import DECODE, NETWORK, VALIDATION, PresetFetchError, get_json
from .schema import ProfileCatalog, ValidationError, parse_profile_catalog

logger = logging.getLogger(__name__)


def _read_local(url: str, path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PresetFetchError(url, NETWORK, str(exc)) from exc
    try:
        # YAML is a superset of JSON, so both formats are accepted here.
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise PresetFetchError(url, DECODE, str(exc)) from exc


def fetch_presets(
    url: str,
    *,
    timeout: Optional[float] = None,
    sess: Optional[requests.Session] = None,
) -> ProfileCatalog:
    """Fetch and validate the preset catalog at ``url``.

    ``http(s)://`` URLs go through the shared session; ``file://`` URLs and
    bare paths are read from disk. No retry happens here beyond whatever the
    session adapter is configured with.
    """

    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    if scheme in {"http", "https"}:
        data = get_json(url, timeout=timeout, sess=sess)
    elif scheme == "file":
        data = _read_local(url, Path(unquote(parsed.path)))
    else:
        data = _read_local(url, Path(url).expanduser())

    try:
        catalog = parse_profile_catalog(data)
    except ValidationError as exc:
        raise PresetFetchError(url, VALIDATION, str(exc)) from exc

    logger.info("Loaded %d preset profile(s) from %s", len(catalog), url)
    return catalog


__all__ = ["DECODE", "NETWORK", "PresetFetchError", "VALIDATION", "fetch_presets"]
