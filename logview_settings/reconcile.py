"""Pruning of locally stored profiles against a fresh preset catalog."""

from __future__ import annotations

import logging
from typing import Dict, Mapping

from .schema import Profile

logger = logging.getLogger(__name__)


def is_outdated(local: Profile, preset: Profile) -> bool:
    """A local profile is outdated unless it is strictly newer than the preset."""

    return preset.last_modified_at_millis >= local.last_modified_at_millis


def reconcile(local: Mapping[str, Profile], presets: Mapping[str, Profile]) -> Dict[str, Profile]:
    """Return a copy of ``local`` without profiles superseded by ``presets``.

    A local profile survives only if no preset of the same name exists or the
    local edit is strictly newer than the preset. Equal timestamps favour the
    preset.
    """

    kept: Dict[str, Profile] = {}
    for name, profile in local.items():
        preset = presets.get(name)
        if preset is not None and is_outdated(profile, preset):
            logger.info(
                "Dropping local profile %r: preset modified at %d, local at %d",
                name,
                preset.last_modified_at_millis,
                profile.last_modified_at_millis,
            )
            continue
        kept[name] = profile.model_copy(deep=True)
    return kept


__all__ = ["is_outdated", "reconcile"]
