from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .core.logging_config import setup_logging
from .core.settings import default_database_path
from .errors import StoreError
from .pkg.folder import package_sound_set_folder
from .storage.scene_store import open_store
from .storage.sqlite.schema import ensure_current

log = logging.getLogger(__name__)


def _db_path(args: argparse.Namespace) -> Path:
    return Path(args.db) if args.db else default_database_path()


def cmd_migrate(args: argparse.Namespace) -> None:
    path = _db_path(args)
    path.parent.mkdir(parents=True, exist_ok=True)
    applied = ensure_current(path)
    if applied:
        print(f"Applied {len(applied)} migration(s) to {path}: {', '.join(applied)}")
    else:
        print(f"{path} is up to date")


def cmd_export(args: argparse.Namespace) -> None:
    store = open_store(_db_path(args))
    dest = store.export_sound_set(args.sound_set_id, args.dest)
    print(f"Exported sound set {args.sound_set_id} to {dest}")


def cmd_import(args: argparse.Namespace) -> None:
    store = open_store(_db_path(args))
    print(store.import_sound_set(args.source))


def cmd_package(args: argparse.Namespace) -> None:
    print(package_sound_set_folder(args.source_folder, args.output))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser("scenestore")
    parser.add_argument("--verbose", action="store_true", help="log debug output to the console")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("migrate", help="bring the scene database schema up to date")
    sp.add_argument("--db", default=None)
    sp.set_defaults(func=cmd_migrate)

    sp = sub.add_parser("export", help="export a sound set to a package")
    sp.add_argument("sound_set_id", type=int)
    sp.add_argument("dest")
    sp.add_argument("--db", default=None)
    sp.set_defaults(func=cmd_export)

    sp = sub.add_parser("import", help="import a package as a new sound set")
    sp.add_argument("source")
    sp.add_argument("--db", default=None)
    sp.set_defaults(func=cmd_import)

    sp = sub.add_parser("package", help="zip an authored sound set folder")
    sp.add_argument("source_folder")
    sp.add_argument("output", nargs="?", default=None)
    sp.set_defaults(func=cmd_package)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        args.func(args)
    except (StoreError, OSError) as exc:
        log.debug("Command %s failed", args.cmd, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
