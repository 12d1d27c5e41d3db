"""Entry lifecycle manager: creates, restores and deletes stashed entries.

Write ordering on create is what keeps the store consistent after a crash:

1. every item is physically relocated into ``<entries>/<uuid>/data/``
2. the manifest is written
3. the index record is added
4. the journal record is appended

so the index never points at missing data. Restores check every destination
before moving anything, and an entry is only deleted once all of its items
are back in place.

The manager assumes a single writer per store; see ``stash.lock`` for the
advisory lock the CLI takes around mutating commands.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

from stash import filesystem as fs
from stash.errors import (
    AmbiguousOperation,
    Collision,
    InvalidArgument,
    IOFailure,
    NotFound,
    StashError,
)
from stash.models import (
    STASH_MODES,
    Clean,
    Copy,
    Drop,
    Dump,
    Entry,
    EntryMetadata,
    Item,
    Operation,
    Pop,
    Push,
    Rename,
    StashMode,
)
from stash.storage.documents import read_manifest, write_manifest
from stash.storage.index import MetadataIndex
from stash.storage.journal import OperationJournal

logger = logging.getLogger(__name__)

DATA_DIRNAME = "data"
# Shortest uuid prefix accepted as an identifier.
MIN_PREFIX_LEN = 4

SORT_KEYS = ("date", "size", "name")


class EntryManager:
    """Orchestrates entry lifecycle against the index, journal and disk."""

    def __init__(
        self,
        entries_root: Path,
        index: MetadataIndex,
        journal: OperationJournal,
        *,
        hash_files: bool = True,
    ) -> None:
        self.entries_root = entries_root
        self.index = index
        self.journal = journal
        self.hash_files = hash_files
        self.entries_root.mkdir(parents=True, exist_ok=True)

    def entry_dir(self, identity: uuid.UUID) -> Path:
        return self.entries_root / str(identity)

    def data_dir(self, identity: uuid.UUID) -> Path:
        return self.entry_dir(identity) / DATA_DIRNAME

    # ── Identity resolution ──────────────────────────────────

    def resolve(self, identifier: uuid.UUID | str) -> EntryMetadata:
        """Map a uuid, exact name or unique uuid prefix to index metadata."""
        if isinstance(identifier, uuid.UUID):
            meta = self.index.get(identifier)
            if meta is None:
                raise NotFound(f"Entry not found: {identifier}")
            return meta

        text = identifier.strip()
        try:
            meta = self.index.get(uuid.UUID(text))
        except ValueError:
            meta = None
        if meta is not None:
            return meta

        for matches in (
            self.index.find_all_by_name(text),
            self.index.match_prefix(text) if len(text) >= MIN_PREFIX_LEN else [],
        ):
            if len(matches) == 1:
                return matches[0]
            if len(matches) > 1:
                ids = [str(m.uuid) for m in matches]
                raise AmbiguousOperation(
                    f"'{text}' matches {len(matches)} entries: {', '.join(ids)}",
                    candidates=ids,
                )
        raise NotFound(f"Entry not found: {text}")

    def _resolve_or_latest(self, identifier: uuid.UUID | str | None) -> EntryMetadata:
        if identifier is not None:
            return self.resolve(identifier)
        meta = self.index.most_recent()
        if meta is None:
            raise NotFound("No stashed entries found")
        return meta

    # ── Create ───────────────────────────────────────────────

    def create_entry(
        self,
        paths: list[Path | str],
        name: str | None = None,
        mode: StashMode = "move",
        working_directory: Path | None = None,
        link_directories: bool = False,
    ) -> Entry:
        """Stash ``paths`` as a new entry and return it."""
        if not paths:
            raise InvalidArgument("No paths provided")
        if mode not in STASH_MODES:
            raise InvalidArgument(f"Unknown stash mode: {mode}")
        if mode == "symlink" and not fs.symlinks_supported():
            raise IOFailure("Symlinks are not supported on this platform")

        cwd = Path(working_directory or Path.cwd()).absolute()
        sources: list[Path] = []
        items: list[Item] = []
        seen: set[str] = set()

        # Snapshot everything before touching anything.
        for raw in paths:
            src = Path(os.path.normpath(cwd / raw))
            if not fs.exists(src):
                raise NotFound(f"No such file or directory: {raw}")
            original, stashed = _split_path(src, cwd)
            if stashed in seen:
                raise InvalidArgument(f"Two items would be stashed as '{stashed}'")
            seen.add(stashed)
            for prior in sources:
                if prior in src.parents or src in prior.parents:
                    raise InvalidArgument(
                        f"Cannot stash both '{prior}' and '{src}': one contains the other"
                    )

            snap = fs.snapshot(src, hash_files=self.hash_files)
            if mode == "symlink" and snap.kind == "directory" and not link_directories:
                raise InvalidArgument(
                    f"Refusing to link directory '{raw}' (enable link_directories to allow)"
                )
            sources.append(src)
            items.append(
                Item(
                    original_path=original,
                    stashed_path=stashed,
                    kind=snap.kind,
                    size_bytes=snap.size_bytes,
                    permissions=snap.permissions,
                    modified=snap.modified,
                    hash=snap.hash,
                )
            )

        entry = Entry.new(name or sources[0].name or None, items, cwd, mode)
        data_dir = self.data_dir(entry.uuid)
        try:
            data_dir.mkdir(parents=True)
        except OSError as e:
            raise IOFailure(f"Failed to create {data_dir}: {e}", data_dir) from e

        relocated: list[str] = []
        for item, src in zip(items, sources):
            dest = data_dir / item.stashed_path
            try:
                self._relocate(src, dest, mode, item)
            except IOFailure as e:
                logger.error(
                    "Stash of %s aborted at %s; already relocated into %s: %s",
                    entry.uuid,
                    item.original_path,
                    data_dir,
                    relocated or "nothing",
                )
                held = ", ".join(relocated) if relocated else "none"
                raise IOFailure(
                    f"Failed to stash {item.original_path}: {e}. "
                    f"Items already stashed remain in {data_dir}: {held}",
                    e.path,
                ) from e
            relocated.append(item.original_path)

        write_manifest(self.entry_dir(entry.uuid), entry)
        self.index.add(entry.metadata())

        if mode == "move":
            kind = Push(entry.uuid, len(items))
        else:
            kind = Copy(entry.uuid, len(items))
        self.journal.append(Operation(kind))

        logger.info(
            "Stashed %d item(s) as %s (%s, %s)",
            len(items),
            entry.display_name(),
            entry.uuid,
            mode,
        )
        return entry

    def _relocate(self, src: Path, dest: Path, mode: StashMode, item: Item) -> None:
        if mode == "move":
            fs.move_path(src, dest)
        elif mode == "copy":
            fs.copy_path(src, dest)
            fs.set_modified(dest, item.modified)
        elif mode == "symlink":
            fs.link_path(src, dest)
        else:
            raise InvalidArgument(f"Unknown stash mode: {mode}")

    # ── Restore ──────────────────────────────────────────────

    def pop_entry(
        self,
        identity: uuid.UUID | str | None = None,
        destination: Path | None = None,
        copy: bool = False,
        force: bool = False,
    ) -> Entry:
        """Restore an entry into ``destination`` (default: cwd).

        With no ``identity`` the most recent entry is restored. Unless
        ``copy`` is set the entry is removed from the store once every item
        has been restored.
        """
        meta = self._resolve_or_latest(identity)
        entry = self._read_entry(meta.uuid)
        dest_root = Path(destination or Path.cwd()).absolute()

        self._restore_items(entry, dest_root, move=not copy, force=force)

        error = None if copy else self._discard(entry.uuid)
        self.journal.append(Operation(Pop(entry.uuid, dest_root)))
        logger.info(
            "%s %s to %s", "Copied out" if copy else "Popped", entry.display_name(), dest_root
        )
        if error is not None:
            raise error
        return entry

    def peek_entry(
        self,
        identity: uuid.UUID | str | None = None,
        destination: Path | None = None,
        force: bool = False,
    ) -> Entry:
        """Copy an entry's items out without changing the store or journal."""
        meta = self._resolve_or_latest(identity)
        entry = self._read_entry(meta.uuid)
        dest_root = Path(destination or Path.cwd()).absolute()
        self._restore_items(entry, dest_root, move=False, force=force)
        logger.info("Peeked %s to %s", entry.display_name(), dest_root)
        return entry

    def restore_entry(
        self,
        identity: uuid.UUID | str | None = None,
        force: bool = False,
        copy: bool = False,
    ) -> Entry:
        """Pop an entry back into the directory it was stashed from."""
        meta = self._resolve_or_latest(identity)
        entry = self._read_entry(meta.uuid)
        return self.pop_entry(entry.uuid, entry.working_directory, copy=copy, force=force)

    def _restore_items(self, entry: Entry, dest_root: Path, *, move: bool, force: bool) -> None:
        data_dir = self.data_dir(entry.uuid)
        plan = [
            (item, data_dir / item.stashed_path, dest_root / item.stashed_path)
            for item in entry.items
        ]

        missing = [src for _, src, _ in plan if not fs.exists(src)]
        if missing:
            raise IOFailure(
                f"Stashed data missing for entry {entry.uuid}: "
                + ", ".join(str(p) for p in missing),
                missing[0],
            )
        # A linked item restored over its own target is already in place.
        if entry.mode == "symlink":
            plan = [(item, src, dest) for item, src, dest in plan if not fs.same_file(src, dest)]

        collisions = [dest for _, _, dest in plan if fs.exists(dest)]
        if collisions and not force:
            raise Collision(collisions)

        for item, src, dest in plan:
            if entry.mode == "symlink":
                fs.materialize_path(src, dest)
                fs.set_permissions(dest, item.permissions)
                fs.set_modified(dest, item.modified)
                continue
            if fs.exists(dest):
                fs.remove_path(dest)
            if move:
                fs.move_path(src, dest)
            else:
                fs.copy_path(src, dest)
            fs.set_permissions(dest, item.permissions)
            fs.set_modified(dest, item.modified)

    # ── Delete ───────────────────────────────────────────────

    def delete_entry(self, identity: uuid.UUID | str) -> EntryMetadata:
        """Drop an entry without restoring it."""
        meta = self.resolve(identity)
        error = self._discard(meta.uuid)
        self.journal.append(Operation(Drop(meta.uuid, deleted=True)))
        logger.info("Deleted %s (%s)", meta.display_name(), meta.uuid)
        if error is not None:
            raise error
        return meta

    def _discard(self, identity: uuid.UUID) -> IOFailure | None:
        """Remove an entry's directory and index record.

        The index record always goes; a directory removal failure is
        returned for the caller to raise once its own bookkeeping is done.
        """
        error: IOFailure | None = None
        try:
            fs.remove_path(self.entry_dir(identity))
        except IOFailure as e:
            error = e
        self.index.remove(identity)
        return error

    def clean_old_entries(self, days: int) -> list[uuid.UUID]:
        """Delete entries created more than ``days`` days ago."""
        if days < 0:
            raise InvalidArgument("days must not be negative")
        removed = self.index.remove_older_than(days)
        for identity in removed:
            try:
                fs.remove_path(self.entry_dir(identity))
            except IOFailure as e:
                logger.warning("Could not remove directory of cleaned entry %s: %s", identity, e)
        self.journal.append(Operation(Clean(len(removed), days)))
        logger.info("Cleaned %d entries older than %d days", len(removed), days)
        return removed

    def dump_entries(self, destination: Path | None = None, force: bool = True) -> list[Entry]:
        """Pop every entry, oldest first."""
        identities = [meta.uuid for meta in self.index.entries]
        if not identities:
            return []
        restored = [self.pop_entry(identity, destination, force=force) for identity in identities]
        self.journal.append(Operation(Dump(len(restored), deleted=True)))
        return restored

    # ── Metadata ─────────────────────────────────────────────

    def rename_entry(self, identity: uuid.UUID | str, new_name: str) -> Entry:
        new_name = new_name.strip()
        if not new_name:
            raise InvalidArgument("New name must not be empty")
        meta = self.resolve(identity)
        entry = self._read_entry(meta.uuid)
        old_name = entry.name
        entry.name = new_name
        entry.touch()
        write_manifest(self.entry_dir(entry.uuid), entry)
        self.index.update_name(entry.uuid, new_name)
        self.journal.append(Operation(Rename(entry.uuid, old_name, new_name)))
        logger.info("Renamed %s from %r to %r", entry.uuid, old_name, new_name)
        return entry

    # ── Queries ──────────────────────────────────────────────

    def load_entry(self, identity: uuid.UUID) -> Entry:
        if not self.index.contains(identity):
            raise NotFound(f"Entry not found: {identity}")
        return self._read_entry(identity)

    def load_entry_by_identifier(self, identifier: str) -> Entry:
        return self._read_entry(self.resolve(identifier).uuid)

    def _read_entry(self, identity: uuid.UUID) -> Entry:
        return read_manifest(self.entry_dir(identity))

    def list_entries(self, sort: str | None = None) -> list[EntryMetadata]:
        """Index order by default, or one of ``SORT_KEYS``."""
        if sort is None:
            return list(self.index.entries)
        if sort == "date":
            return self.index.by_date()
        if sort == "size":
            return self.index.by_size()
        if sort == "name":
            return self.index.by_name()
        raise InvalidArgument(f"Unknown sort key: {sort}")

    def most_recent_entry(self) -> EntryMetadata | None:
        return self.index.most_recent()

    def search(self, pattern: str) -> list[EntryMetadata]:
        return self.index.search(pattern)

    def history(self, limit: int = 20) -> list[Operation]:
        return self.journal.recent(limit)

    def find_entries_containing(self, path: Path | str) -> list[uuid.UUID]:
        wanted = Path(os.path.normpath(path)).as_posix()
        return [
            meta.uuid
            for meta in self.index.entries
            if self._read_entry(meta.uuid).get_item(wanted) is not None
        ]

    def verify_entry(self, identity: uuid.UUID | str) -> list[str]:
        """Original paths of files whose stashed content no longer matches."""
        meta = self.resolve(identity)
        entry = self._read_entry(meta.uuid)
        data_dir = self.data_dir(entry.uuid)
        damaged = []
        for item in entry.items:
            if item.hash is None:
                continue
            stashed = data_dir / item.stashed_path
            if not stashed.exists() or fs.content_hash(stashed) != item.hash:
                damaged.append(item.original_path)
        return damaged

    # ── Maintenance ──────────────────────────────────────────

    def rebuild_index(self) -> int:
        """Register manifests on disk that the index does not know about."""
        recovered: list[Entry] = []
        for child in sorted(self.entries_root.iterdir()):
            try:
                identity = uuid.UUID(child.name)
            except ValueError:
                continue
            if not child.is_dir() or self.index.contains(identity):
                continue
            try:
                recovered.append(self._read_entry(identity))
            except StashError as e:
                logger.warning("Skipping %s during index rebuild: %s", child, e)
        for entry in sorted(recovered, key=lambda e: e.created):
            self.index.add(entry.metadata())
        if recovered:
            logger.info("Recovered %d entries into the index", len(recovered))
        return len(recovered)

    def compact_journal(self) -> int:
        return self.journal.compact(meta.uuid for meta in self.index.entries)


def _split_path(src: Path, cwd: Path) -> tuple[str, str]:
    """(original_path, stashed_path) for a normalized absolute ``src``.

    Paths under ``cwd`` keep their relative layout; anything else is stashed
    under its final component.
    """
    try:
        rel = src.relative_to(cwd)
    except ValueError:
        if not src.name:
            raise InvalidArgument(f"Cannot stash {src}") from None
        return src.as_posix(), src.name
    if rel == Path("."):
        raise InvalidArgument("Cannot stash the working directory itself")
    return rel.as_posix(), rel.as_posix()
