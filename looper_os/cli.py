"""Command-line interface for Looper OS.

Subcommands:

* ``provision`` – build the slot tree on the target and copy audio.
* ``dry-run`` – print the slot bindings a provision run would make.
* ``list-devices`` – show known device types and their layouts.

Values come from ``config.json`` (see :mod:`looper_os.config_service`)
and can be overridden on the command line.  Run
``python -m looper_os.cli --help`` for usage.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Callable, List, Optional

from .config_service import ConfigService, ProvisionSettings
from .engine import LooperOSEngine
from .errors import ConfigInvalid, InvalidPolicy, LooperOSError, PathUnavailable
from .tree_service import ExistingTreePolicy, parse_existing_tree_policy


def prompt_existing_tree_policy(root_dir: Path, input_fn: Callable[[str], str] = input) -> ExistingTreePolicy:
    """Ask the operator whether to append to or overwrite an existing tree."""
    try:
        answer = input_fn(f"Directory '{root_dir}' already exists. Do you want to (A)ppend or (O)verwrite? ")
    except EOFError as exc:
        raise InvalidPolicy(
            "Device root already exists and no answer was given; pass --policy append or overwrite",
            path=root_dir,
        ) from exc
    try:
        return parse_existing_tree_policy(answer)
    except InvalidPolicy as exc:
        raise InvalidPolicy(exc.message, path=root_dir) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="looper-os",
        description="Looper OS – provision looper storage from a folder of audio files",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("command", choices=["provision", "dry-run", "list-devices"], help="Action to perform")
    parser.add_argument("source", nargs="?", help="Folder containing the source audio files")
    parser.add_argument("target", nargs="?", help="Root of the target storage volume")
    parser.add_argument("--device", "-d", help="Device type, e.g. JamManSoloXT")
    parser.add_argument("--policy", choices=["append", "overwrite"], help="What to do if the device root exists")
    parser.add_argument("--naming", choices=["preserve", "canonicalize"], help="Placed audio file naming")
    parser.add_argument("--config", type=Path, help="Explicit path to a config.json")
    parser.add_argument("--portable", "-p", action="store_true", help="Force portable mode")
    parser.add_argument("--json", action="store_true", help="Print the run report as JSON")
    parser.add_argument("--quiet", "-q", action="store_true", help="Do not echo progress lines")
    return parser


def _resolve_engine(args: argparse.Namespace, settings: ProvisionSettings, logs_dir: Optional[Path]) -> LooperOSEngine:
    device = args.device or settings.device_type
    source = Path(args.source).expanduser() if args.source else settings.source_dir
    target = Path(args.target).expanduser() if args.target else settings.target_root
    if not device:
        raise ConfigInvalid("A device type is required (--device or device_type in config.json)")
    if source is None or target is None:
        raise ConfigInvalid("Source and target directories are required")
    layout = settings.layout_service().resolve(device)
    return LooperOSEngine(
        source_dir=source.resolve(),
        target_root=target.resolve(),
        layout=layout,
        settings=settings,
        log_dir=logs_dir,
    )


def main(argv: Optional[List[str]] = None, input_fn: Callable[[str], str] = input) -> int:
    args = _build_parser().parse_args(argv)
    config_service = ConfigService(app_dir=Path.cwd())
    try:
        if args.config is not None and not args.config.is_file():
            raise PathUnavailable("Config file not found", path=args.config)
        config = config_service.load_config(cli_portable=args.portable, path=args.config)
        settings = ProvisionSettings.from_config(config)

        if args.command == "list-devices":
            layouts = settings.layout_service()
            for name in layouts.device_types():
                layout = layouts.resolve(name)
                capacity = layout.slot_capacity if layout.slot_capacity is not None else "per input"
                print(f"{name}: root={layout.root_dir_name} policy={layout.capacity_policy.value} slots={capacity}")
            return 0

        logs_dir = config_service.get_logs_dir(args.portable) if args.command == "provision" else None
        engine = _resolve_engine(args, settings, logs_dir)

        if args.command == "dry-run":
            bindings = engine.plan(args.naming)
            if args.json:
                print(json.dumps([b.as_dict() for b in bindings], indent=2))
            else:
                for binding in bindings:
                    print(f"{binding.slot_dir_name}: {binding.source_file_path} -> {binding.destination_file_path}")
                print(f"{len(bindings)} file(s) would be placed under {engine.root_dir}")
            return 0

        policy = args.policy or settings.existing_tree_policy
        if policy is None and engine.root_exists():
            policy = prompt_existing_tree_policy(engine.root_dir, input_fn)
        report = engine.run(
            existing_tree_policy=policy,
            naming_policy=args.naming,
            log_to_console=not args.quiet and not args.json,
        )
    except LooperOSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print("CSV file, XML files, and directories updated successfully.")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
