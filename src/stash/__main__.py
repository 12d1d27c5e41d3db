"""Entry point: stash [ITEMS...] [options]

- Paths that exist are stashed, a single missing name restores that entry,
  no arguments restores the most recent entry.
- Management flags (--list, --search, --info, --history, --clean, --rename,
  --dump, --init) always take precedence over path arguments.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from stash.config import StashConfig, load_config
from stash.display import entry_details, summary_line
from stash.errors import InvalidArgument, NotFound, StashError
from stash.inference import (
    CleanIntent,
    DeleteIntent,
    DumpIntent,
    ExportIntent,
    HistoryIntent,
    InferenceFlags,
    InfoIntent,
    InitIntent,
    Intent,
    ListIntent,
    PeekIntent,
    PopIntent,
    PushIntent,
    RenameIntent,
    SearchIntent,
    infer,
)
from stash.lock import StoreLock
from stash.manager import SORT_KEYS, EntryManager
from stash.storage import MetadataIndex, OperationJournal

logger = logging.getLogger("stash")

_MUTATING = (PushIntent, PopIntent, DeleteIntent, DumpIntent, CleanIntent, RenameIntent)
# bare --clean uses behavior.clean_days
_CLEAN_FROM_CONFIG = object()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stash",
        description="Stash files and folders out of the way and bring them back.",
    )
    parser.add_argument("items", nargs="*", help="Paths to stash, or one entry name/id to restore.")
    parser.add_argument("-n", "--name", help="Name for a new entry.")

    ops = parser.add_argument_group("operations")
    ops.add_argument("-p", "--push", action="store_true", help="Force stashing the given paths.")
    ops.add_argument("-P", "--pop", action="store_true", help="Force restoring an entry.")
    ops.add_argument("--peek", action="store_true", help="Copy an entry out, keep it stashed.")
    ops.add_argument("-d", "--delete", action="store_true", help="Delete an entry, no restore.")
    ops.add_argument("-L", "--list", dest="list_entries", action="store_true", help="List entries.")
    ops.add_argument("--sort", choices=SORT_KEYS, help="Sort order for --list.")
    ops.add_argument("-s", "--search", metavar="PATTERN", help="Search entry names.")
    ops.add_argument("-i", "--info", action="store_true", help="Show details of an entry.")
    ops.add_argument("--history", action="store_true", help="Show recent operations.")
    ops.add_argument(
        "--clean",
        metavar="DAYS",
        nargs="?",
        const=_CLEAN_FROM_CONFIG,
        help="Remove entries older than DAYS (default from config).",
    )
    ops.add_argument("--rename", metavar="OLD:NEW", help="Rename an entry.")
    ops.add_argument("--tar", metavar="FILE", type=Path, help="Export the store to an archive.")
    ops.add_argument("--dump", action="store_true", help="Restore every entry here.")
    ops.add_argument("--init", action="store_true", help="Create the store directories.")

    mods = parser.add_argument_group("modifiers")
    mods.add_argument("-c", "--copy", action="store_true", help="Copy instead of move.")
    mods.add_argument("-l", "--link", action="store_true", help="Stash a symlink to the original.")
    mods.add_argument("-f", "--force", action="store_true", help="Overwrite existing files.")
    mods.add_argument("--restore", action="store_true", help="Restore to the original directory.")

    parser.add_argument("--config", type=Path, help="Path to stash.toml.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def _clean_days(raw: object, config: StashConfig) -> int | None:
    if raw is None:
        return None
    if raw is _CLEAN_FROM_CONFIG:
        return config.behavior.clean_days
    try:
        return int(raw)
    except ValueError:
        raise InvalidArgument(f"--clean takes a number of days, got '{raw}'") from None


def _flags_from_args(args: argparse.Namespace, config: StashConfig) -> InferenceFlags:
    return InferenceFlags(
        name=args.name,
        push=args.push,
        pop=args.pop,
        peek=args.peek,
        delete=args.delete,
        list_entries=args.list_entries,
        sort=args.sort,
        search=args.search,
        info=args.info,
        history=args.history,
        clean=_clean_days(args.clean, config),
        rename=args.rename,
        tar=args.tar,
        dump=args.dump,
        init=args.init,
        copy=args.copy,
        link=args.link,
        force=args.force,
        restore=args.restore,
    )


def build_manager(config: StashConfig) -> EntryManager:
    return EntryManager(
        config.store.entries_dir,
        MetadataIndex(config.store.index_file),
        OperationJournal(config.store.journal_file),
        hash_files=config.behavior.hash_files,
    )


def _most_recent(manager: EntryManager) -> str:
    meta = manager.most_recent_entry()
    if meta is None:
        raise NotFound("No stashed entries found")
    return str(meta.uuid)


def run(intent: Intent, config: StashConfig) -> None:
    """Execute an intent against the configured store, printing results."""
    if isinstance(intent, InitIntent):
        config.store.entries_dir.mkdir(parents=True, exist_ok=True)
        print(f"Initialized stash at {config.store.data_dir}")
        return
    if isinstance(intent, ExportIntent):
        raise InvalidArgument(f"Archive export is not supported (requested {intent.path})")

    manager = build_manager(config)
    if isinstance(intent, _MUTATING):
        with StoreLock(config.store.lock_file, config.store.lock_timeout):
            _run_mutation(intent, manager, config)
    else:
        _run_query(intent, manager)


def _run_mutation(intent: Intent, manager: EntryManager, config: StashConfig) -> None:
    if isinstance(intent, PushIntent):
        entry = manager.create_entry(
            list(intent.items),
            name=intent.name,
            mode=intent.mode,
            link_directories=config.behavior.link_directories,
        )
        verb = {"move": "Stashed", "copy": "Copied", "symlink": "Linked"}[intent.mode]
        print(f"{verb} {len(entry.items)} item(s) as '{entry.display_name()}'")
    elif isinstance(intent, PopIntent):
        if intent.restore:
            entry = manager.restore_entry(
                intent.identifier, force=intent.force, copy=intent.copy
            )
            where = str(entry.working_directory)
        else:
            entry = manager.pop_entry(intent.identifier, copy=intent.copy, force=intent.force)
            where = "current directory"
        action = "Copied out" if intent.copy else "Restored"
        print(f"{action} {len(entry.items)} item(s) from '{entry.display_name()}' to {where}")
        for item in entry.items[:10]:
            print(f"  • {item.original_path}")
        if len(entry.items) > 10:
            print(f"  ({len(entry.items)} files total)")
    elif isinstance(intent, DeleteIntent):
        meta = manager.delete_entry(intent.identifier)
        print(f"Deleted entry '{meta.display_name()}' ({meta.item_count} files)")
    elif isinstance(intent, DumpIntent):
        restored = manager.dump_entries(force=intent.force)
        if not restored:
            print("No entries to dump.")
        for entry in restored:
            print(f"  Restored: {entry.display_name()}")
    elif isinstance(intent, CleanIntent):
        removed = manager.clean_old_entries(intent.days)
        if removed:
            print(f"Cleaned {len(removed)} entries older than {intent.days} days.")
        else:
            print(f"No entries older than {intent.days} days.")
    elif isinstance(intent, RenameIntent):
        entry = manager.rename_entry(intent.old, intent.new)
        print(f"Renamed entry {entry.short_id} to '{intent.new}'")
    else:
        raise TypeError(f"not a mutating intent: {intent!r}")


def _run_query(intent: Intent, manager: EntryManager) -> None:
    if isinstance(intent, PeekIntent):
        entry = manager.peek_entry(intent.identifier, force=intent.force)
        print(f"Peeked {len(entry.items)} item(s) from '{entry.display_name()}'")
    elif isinstance(intent, ListIntent):
        entries = manager.list_entries(intent.sort)
        if not entries:
            print("No stashed entries.")
        for i, meta in enumerate(entries, 1):
            print(f"{i}. {summary_line(meta)}")
    elif isinstance(intent, SearchIntent):
        matches = manager.search(intent.pattern)
        if not matches:
            print(f"No entries match '{intent.pattern}'.")
        for meta in matches:
            print(f"  • {summary_line(meta)}")
    elif isinstance(intent, InfoIntent):
        identifier = intent.identifier or _most_recent(manager)
        print(entry_details(manager.load_entry_by_identifier(identifier)))
    elif isinstance(intent, HistoryIntent):
        operations = manager.history(20)
        if not operations:
            print("No operation history.")
        for op in operations:
            print(f"[{op.timestamp.astimezone():%Y-%m-%d %H:%M:%S}] {op.describe()}")
    else:
        raise TypeError(f"not a query intent: {intent!r}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    _setup_logging("DEBUG" if args.verbose else config.log_level)

    try:
        intent = infer(args.items, _flags_from_args(args, config))
        run(intent, config)
    except StashError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"stash: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
