"""Command line interface for inspecting and editing viewer settings."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from enum import Enum
from typing import Optional, Sequence

from . import api
from .logging_setup import setup_logging
from .manager import SettingsManager
from .presets import PresetFetchError
from .schema import ConfigKey, ValidationError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create argument parser for the CLI."""
    parser = argparse.ArgumentParser(prog="logview-settings", description="Log viewer settings")
    parser.add_argument("--storage-key", help="Override LOGVIEW_STORAGE_KEY")
    parser.add_argument("--presets", help="Override LOGVIEW_PRESET_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("profiles", help="list known profiles")

    show = sub.add_parser("show", help="print every resolved config value")
    show.add_argument("--profile")

    get = sub.add_parser("get", help="print one resolved config value")
    get.add_argument("key", choices=[key.value for key in ConfigKey])
    get.add_argument("--profile")

    set_ = sub.add_parser("set", help="store a config value")
    set_.add_argument("key", choices=[key.value for key in ConfigKey])
    set_.add_argument("value")
    set_.add_argument("--profile")

    use = sub.add_parser("use", help="make a profile active")
    use.add_argument("name")

    create = sub.add_parser("create", help="create an empty local profile")
    create.add_argument("name")

    remove = sub.add_parser("remove", help="delete a local profile")
    remove.add_argument("name")

    force = sub.add_parser("force", help="always use the active profile")
    force.add_argument("state", choices=["on", "off"])

    sub.add_parser("reset", help="discard all stored settings")

    res = sub.add_parser("resolve", help="show which profile a file path selects")
    res.add_argument("path")
    return parser


def _print_profiles(manager: SettingsManager) -> None:
    active = manager.get_active_profile_name()
    for name in manager.get_profile_names():
        flags = []
        if name == active:
            flags.append("active")
        if manager.is_profile_modified(name):
            flags.append("local")
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"{name}{suffix}")
    if manager.get_is_forced():
        print("forced: on")


def run(manager: SettingsManager, args: argparse.Namespace) -> int:
    command = args.command
    if command == "profiles":
        _print_profiles(manager)
    elif command == "show":
        print(json.dumps(manager.get_config_map(args.profile).dump(), indent=2, ensure_ascii=False))
    elif command == "get":
        value = manager.get_config(args.key, args.profile)
        print(value.value if isinstance(value, Enum) else value)
    elif command == "set":
        error = api.set_config_if_changed(manager, args.key, args.value, args.profile)
        if error:
            print(error, file=sys.stderr)
            return 2
    elif command == "use":
        manager.set_active_profile_name(args.name)
    elif command == "create":
        manager.create_profile(args.name)
    elif command == "remove":
        manager.remove_profile(args.name)
    elif command == "force":
        manager.set_is_forced(args.state == "on")
    elif command == "resolve":
        print(manager.resolve_profile_name(args.path))
    elif command == "reset":
        error = api.reset(manager)
        if error:
            print(error, file=sys.stderr)
            return 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging()

    try:
        manager = api.bootstrap(storage_key=args.storage_key, preset_url=args.presets)
    except PresetFetchError as exc:
        logger.error("%s", exc)
        return 1

    try:
        return run(manager, args)
    except ValidationError as exc:
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
