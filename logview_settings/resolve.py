"""Selection of a preset profile from a file source."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from os import PathLike, fspath
from typing import Any, List, Mapping, Pattern, Union

from .defaults import DEFAULT_PROFILE_NAME
from .schema import Profile

logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Union[Pattern[str], str]:
    """Compiled ``pattern``, or the compiler's error message."""
    try:
        return re.compile(pattern)
    except re.error as exc:
        return str(exc)


def profile_matches(profile: Profile, file_source: str) -> bool:
    for pattern in profile.file_path_patterns:
        regex = _compile(pattern)
        if isinstance(regex, str):
            logger.warning("Ignoring invalid file path pattern %r: %s", pattern, regex)
            continue
        if regex.search(file_source):
            return True
    return False


def matching_profile_names(presets: Mapping[str, Profile], file_source: str) -> List[str]:
    """Names of every preset with a pattern matching ``file_source``, in catalog order."""

    return [name for name, profile in presets.items() if profile_matches(profile, file_source)]


def resolve_profile_name(
    presets: Mapping[str, Profile],
    file_source: Any,
    *,
    is_forced: bool,
    active_profile_name: str,
) -> str:
    """Pick the profile to use for ``file_source``.

    Forced mode always yields the active profile. Sources that are not paths
    (raw bytes, file objects) yield the default profile. When several presets
    match, the first one in catalog order wins and the ambiguity is logged.
    """

    if is_forced:
        return active_profile_name
    if isinstance(file_source, PathLike):
        file_source = fspath(file_source)
    if not isinstance(file_source, str):
        return DEFAULT_PROFILE_NAME

    matched = matching_profile_names(presets, file_source)
    if not matched:
        return DEFAULT_PROFILE_NAME
    if len(matched) > 1:
        logger.warning(
            "Multiple profiles match the file source %s: %s; using %r",
            file_source,
            ", ".join(matched),
            matched[0],
        )
    return matched[0]


__all__ = ["matching_profile_names", "profile_matches", "resolve_profile_name"]
