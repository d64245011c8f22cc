from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import Settings
from .descriptor import FileFormat, StorageDescriptor
from .errors import KeepsakeError
from .paths import PathResolver, file_size, format_size
from .samples import SampleSaveManager
from .store import RecordStore


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keepsake",
        description="Inspect and exercise keepsake record files",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (-v, -vv)")
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file merged over the defaults")
    parser.add_argument("--data-dir", type=Path, default=None, help="Directory holding the record files")

    sub = parser.add_subparsers(dest="command", required=True)

    demo = sub.add_parser("demo", help="Save and reload the sample records")
    demo.add_argument("--secret", default=None, help="Encrypt the ingame record with this secret")

    for name, help_text in (("info", "Show where a record file lives and its size"),
                            ("dump", "Print a decoded record file as JSON")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("file_name", help="Logical file name, with or without extension")
        cmd.add_argument(
            "-f", "--format",
            default=FileFormat.BINARY.value,
            choices=[fmt.value for fmt in FileFormat],
            help="File format (default: bin)",
        )
        if name == "dump":
            cmd.add_argument("--secret", default=None, help="Secret used to encrypt the file")
    return parser


def _load_settings(args: argparse.Namespace) -> Settings:
    settings = Settings.load(args.config)
    if args.data_dir is not None:
        settings.data_dir = args.data_dir
    return settings


def _open_store(args: argparse.Namespace, settings: Settings, secret: Optional[str] = None) -> RecordStore[dict]:
    descriptor = StorageDescriptor(file_name=args.file_name, file_format=args.format, secret=secret)
    return RecordStore(descriptor, record_type=dict, resolver=settings.resolver())


def cmd_demo(args: argparse.Namespace, settings: Settings) -> int:
    if args.secret:
        # An explicit --secret must not be overridden by the configured environment variable
        settings.stores["ingame"].secret = args.secret
        settings.stores["ingame"].secret_env = None
    manager = SampleSaveManager.from_settings(settings)
    saved = manager.save_all()
    loaded = manager.load_all()
    for name in saved:
        print(f"{name}: saved={bool(saved[name])} loaded={bool(loaded[name])}")
    print(json.dumps({
        "ingame": manager.ingame.read_payload() if not manager.ingame.encrypted else "<encrypted>",
        "settings": manager.user_settings.read_payload(),
    }, indent=2, sort_keys=True))
    return 0 if all(saved.values()) and all(loaded.values()) else 1


def cmd_info(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(args, settings)
    print(f"path:   {store.path}")
    print(f"exists: {store.exists()}")
    if store.exists():
        print(f"size:   {format_size(file_size(store.path))}")
    return 0


def cmd_dump(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(args, settings, secret=args.secret)
    try:
        payload = store.read_payload()
    except KeepsakeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


COMMANDS = {
    "demo": cmd_demo,
    "info": cmd_info,
    "dump": cmd_dump,
}


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    settings = _load_settings(args)
    return COMMANDS[args.command](args, settings)
