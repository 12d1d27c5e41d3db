"""Decide what a command means from its flags and the state of its paths.

Priority:

1. Explicit management intents (list, search, info, history, clean, rename,
   archive export, init, dump) win regardless of path arguments.
2. Explicit push / pop / peek / delete flags.
3. Context: no paths pops the most recent entry, all-existing paths are
   pushed, a single missing path is treated as an entry identifier, and
   anything else is ambiguous.

``infer`` only checks whether paths exist; it never touches the store.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from stash.errors import AmbiguousOperation, InvalidArgument
from stash.models import StashMode


@dataclass
class InferenceFlags:
    """Everything the calling surface parsed besides the item paths."""

    name: str | None = None
    # Explicit operations
    push: bool = False
    pop: bool = False
    peek: bool = False
    delete: bool = False
    # Management intents
    list_entries: bool = False
    sort: str | None = None
    search: str | None = None
    info: bool = False
    history: bool = False
    clean: int | None = None
    rename: str | None = None
    tar: Path | None = None
    dump: bool = False
    init: bool = False
    # Modifiers
    copy: bool = False
    link: bool = False
    force: bool = False
    restore: bool = False


# ── Intents ───────────────────────────────────────────────────


@dataclass(frozen=True)
class PushIntent:
    items: tuple[str, ...]
    name: str | None = None
    mode: StashMode = "move"


@dataclass(frozen=True)
class PopIntent:
    identifier: str | None = None
    copy: bool = False
    force: bool = False
    restore: bool = False


@dataclass(frozen=True)
class PeekIntent:
    identifier: str | None = None
    force: bool = False


@dataclass(frozen=True)
class DeleteIntent:
    identifier: str


@dataclass(frozen=True)
class DumpIntent:
    force: bool = True


@dataclass(frozen=True)
class ListIntent:
    sort: str | None = None


@dataclass(frozen=True)
class SearchIntent:
    pattern: str


@dataclass(frozen=True)
class InfoIntent:
    identifier: str | None = None


@dataclass(frozen=True)
class HistoryIntent:
    pass


@dataclass(frozen=True)
class CleanIntent:
    days: int


@dataclass(frozen=True)
class RenameIntent:
    old: str
    new: str


@dataclass(frozen=True)
class ExportIntent:
    path: Path


@dataclass(frozen=True)
class InitIntent:
    pass


Intent = Union[
    PushIntent,
    PopIntent,
    PeekIntent,
    DeleteIntent,
    DumpIntent,
    ListIntent,
    SearchIntent,
    InfoIntent,
    HistoryIntent,
    CleanIntent,
    RenameIntent,
    ExportIntent,
    InitIntent,
]


def infer(
    paths: Sequence[str | Path],
    flags: InferenceFlags | None = None,
    exists: Callable[[str], bool] = os.path.lexists,
) -> Intent:
    """Resolve ``paths`` and ``flags`` to a single intent."""
    flags = flags or InferenceFlags()
    items = [str(p) for p in paths]

    intent = _explicit_intent(items, flags)
    if intent is not None:
        return intent
    intent = _flagged_operation(items, flags)
    if intent is not None:
        return intent
    return _infer_from_context(items, flags, exists)


def _explicit_intent(items: list[str], flags: InferenceFlags) -> Intent | None:
    if flags.init:
        return InitIntent()
    if flags.list_entries:
        return ListIntent(sort=flags.sort)
    if flags.search is not None:
        return SearchIntent(flags.search)
    if flags.info:
        return InfoIntent(items[0] if items else None)
    if flags.history:
        return HistoryIntent()
    if flags.clean is not None:
        if flags.clean < 0:
            raise InvalidArgument("--clean takes a non-negative number of days")
        return CleanIntent(flags.clean)
    if flags.rename is not None:
        old, sep, new = flags.rename.partition(":")
        if not sep or not old or not new:
            raise InvalidArgument("--rename must be in OLD:NEW format")
        return RenameIntent(old, new)
    if flags.tar is not None:
        return ExportIntent(flags.tar)
    if flags.dump:
        return DumpIntent(force=True)
    return None


def _flagged_operation(items: list[str], flags: InferenceFlags) -> Intent | None:
    if flags.push:
        if not items:
            raise InvalidArgument("Nothing to push: give at least one path")
        return PushIntent(tuple(items), flags.name, _mode(flags))
    if flags.pop:
        return PopIntent(_single_identifier(items), flags.copy, flags.force, flags.restore)
    if flags.peek:
        return PeekIntent(_single_identifier(items), flags.force)
    if flags.delete:
        identifier = _single_identifier(items)
        if identifier is None:
            raise InvalidArgument("--delete needs an entry name or id")
        return DeleteIntent(identifier)
    return None


def _infer_from_context(
    items: list[str], flags: InferenceFlags, exists: Callable[[str], bool]
) -> Intent:
    if not items:
        return PopIntent(None, flags.copy, flags.force, flags.restore)

    existing: list[str] = []
    missing: list[str] = []
    for p in items:
        (existing if exists(p) else missing).append(p)

    if not missing:
        return PushIntent(tuple(items), flags.name, _mode(flags))

    if not existing:
        if len(missing) == 1:
            return PopIntent(missing[0], flags.copy, flags.force, flags.restore)
        raise AmbiguousOperation(
            "Cannot resolve multiple non-existent items to one entry: "
            f"{_quote(missing)}. Entries are referenced by a single name or id; "
            "use --list to see them.",
            missing=missing,
        )

    raise AmbiguousOperation(
        "Ambiguous operation:\n"
        f"  - these paths exist locally: {_quote(existing)}\n"
        f"  - these paths do not exist: {_quote(missing)}\n"
        "Separate the operations, or use --push / --pop explicitly.",
        existing=existing,
        missing=missing,
    )


def _mode(flags: InferenceFlags) -> StashMode:
    if flags.copy and flags.link:
        raise InvalidArgument("--copy and --link cannot be combined")
    if flags.link:
        return "symlink"
    if flags.copy:
        return "copy"
    return "move"


def _single_identifier(items: list[str]) -> str | None:
    if len(items) > 1:
        raise AmbiguousOperation(
            f"Expected one entry identifier, got {len(items)}: {_quote(items)}",
            missing=items,
        )
    return items[0] if items else None


def _quote(paths: list[str]) -> str:
    return ", ".join(f"'{p}'" for p in paths)
