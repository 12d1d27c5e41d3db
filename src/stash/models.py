"""Entry, Item, EntryMetadata and Operation types plus their dict codecs.

Timestamps are timezone-aware UTC datetimes, serialized as ISO-8601 strings.
Identities are ``uuid.UUID`` values, serialized as their canonical string.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Union

ItemKind = Literal["file", "directory", "symlink"]
StashMode = Literal["move", "copy", "symlink"]

ITEM_KINDS: tuple[str, ...] = ("file", "directory", "symlink")
STASH_MODES: tuple[str, ...] = ("move", "copy", "symlink")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def short_id(identity: uuid.UUID) -> str:
    return str(identity)[:6]


# ── Items and entries ─────────────────────────────────────────


@dataclass
class Item:
    """One captured file, directory or symlink inside an entry."""

    original_path: str
    stashed_path: str
    kind: ItemKind
    size_bytes: int
    permissions: int
    modified: datetime
    hash: str | None = None

    def to_dict(self) -> dict:
        return {
            "original_path": self.original_path,
            "stashed_path": self.stashed_path,
            "kind": self.kind,
            "size_bytes": self.size_bytes,
            "permissions": self.permissions,
            "modified": self.modified.isoformat(),
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Item:
        kind = data["kind"]
        if kind not in ITEM_KINDS:
            raise ValueError(f"unknown item kind: {kind!r}")
        return cls(
            original_path=str(data["original_path"]),
            stashed_path=str(data["stashed_path"]),
            kind=kind,
            size_bytes=int(data["size_bytes"]),
            permissions=int(data["permissions"]),
            modified=parse_timestamp(str(data["modified"])),
            hash=data.get("hash"),
        )


@dataclass
class Entry:
    """Full record of one stash transaction, persisted as its manifest."""

    uuid: uuid.UUID
    name: str | None
    created: datetime
    updated: datetime
    working_directory: Path
    items: list[Item] = field(default_factory=list)
    total_size_bytes: int = 0
    was_destructive: bool = True
    mode: StashMode = "move"

    @classmethod
    def new(
        cls,
        name: str | None,
        items: list[Item],
        working_directory: Path,
        mode: StashMode = "move",
    ) -> Entry:
        now = utcnow()
        return cls(
            uuid=uuid.uuid4(),
            name=name,
            created=now,
            updated=now,
            working_directory=working_directory,
            items=items,
            total_size_bytes=sum(item.size_bytes for item in items),
            was_destructive=mode == "move",
            mode=mode,
        )

    def touch(self) -> None:
        self.updated = utcnow()

    @property
    def short_id(self) -> str:
        return short_id(self.uuid)

    def display_name(self) -> str:
        return self.name or self.short_id

    def get_item(self, original_path: str) -> Item | None:
        for item in self.items:
            if item.original_path == original_path:
                return item
        return None

    def metadata(self) -> EntryMetadata:
        return EntryMetadata(
            uuid=self.uuid,
            name=self.name,
            created=self.created,
            total_size_bytes=self.total_size_bytes,
            item_count=len(self.items),
        )

    def to_dict(self) -> dict:
        return {
            "uuid": str(self.uuid),
            "name": self.name,
            "created": self.created.isoformat(),
            "updated": self.updated.isoformat(),
            "working_directory": str(self.working_directory),
            "mode": self.mode,
            "was_destructive": self.was_destructive,
            "total_size_bytes": self.total_size_bytes,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Entry:
        mode = data.get("mode", "move" if data.get("was_destructive", True) else "copy")
        if mode not in STASH_MODES:
            raise ValueError(f"unknown stash mode: {mode!r}")
        items = [Item.from_dict(raw) for raw in data.get("items", [])]
        return cls(
            uuid=uuid.UUID(str(data["uuid"])),
            name=data.get("name"),
            created=parse_timestamp(str(data["created"])),
            updated=parse_timestamp(str(data.get("updated", data["created"]))),
            working_directory=Path(data["working_directory"]),
            items=items,
            total_size_bytes=int(
                data.get("total_size_bytes", sum(i.size_bytes for i in items))
            ),
            was_destructive=bool(data.get("was_destructive", mode == "move")),
            mode=mode,
        )


@dataclass
class EntryMetadata:
    """Index-side summary of an entry; never requires the manifest."""

    uuid: uuid.UUID
    name: str | None
    created: datetime
    total_size_bytes: int
    item_count: int

    def display_name(self) -> str:
        return self.name or short_id(self.uuid)

    def to_dict(self) -> dict:
        return {
            "uuid": str(self.uuid),
            "name": self.name,
            "created": self.created.isoformat(),
            "total_size_bytes": self.total_size_bytes,
            "item_count": self.item_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> EntryMetadata:
        return cls(
            uuid=uuid.UUID(str(data["uuid"])),
            name=data.get("name"),
            created=parse_timestamp(str(data["created"])),
            total_size_bytes=int(data["total_size_bytes"]),
            item_count=int(data["item_count"]),
        )


# ── Operations ────────────────────────────────────────────────


@dataclass(frozen=True)
class Push:
    entry_id: uuid.UUID
    file_count: int


@dataclass(frozen=True)
class Copy:
    entry_id: uuid.UUID
    file_count: int


@dataclass(frozen=True)
class Pop:
    entry_id: uuid.UUID
    destination: Path


@dataclass(frozen=True)
class Peek:
    entry_id: uuid.UUID
    destination: Path


@dataclass(frozen=True)
class Drop:
    entry_id: uuid.UUID
    deleted: bool


@dataclass(frozen=True)
class Dump:
    entry_count: int
    deleted: bool


@dataclass(frozen=True)
class Rename:
    entry_id: uuid.UUID
    old_name: str | None
    new_name: str


@dataclass(frozen=True)
class Clean:
    removed_count: int
    days: int


@dataclass(frozen=True)
class Import:
    path: Path
    entry_count: int


OperationKind = Union[Push, Copy, Pop, Peek, Drop, Dump, Rename, Clean, Import]

# Wire tag for each operation kind.
_KIND_TAGS: dict[type, str] = {
    Push: "push",
    Copy: "copy",
    Pop: "pop",
    Peek: "peek",
    Drop: "drop",
    Dump: "dump",
    Rename: "rename",
    Clean: "clean",
    Import: "import",
}
_TAG_KINDS = {tag: kind for kind, tag in _KIND_TAGS.items()}


def _encode_kind(kind: OperationKind) -> dict:
    if isinstance(kind, (Push, Copy)):
        fields = {"entry_id": str(kind.entry_id), "file_count": kind.file_count}
    elif isinstance(kind, (Pop, Peek)):
        fields = {"entry_id": str(kind.entry_id), "destination": str(kind.destination)}
    elif isinstance(kind, Drop):
        fields = {"entry_id": str(kind.entry_id), "deleted": kind.deleted}
    elif isinstance(kind, Dump):
        fields = {"entry_count": kind.entry_count, "deleted": kind.deleted}
    elif isinstance(kind, Rename):
        fields = {
            "entry_id": str(kind.entry_id),
            "old_name": kind.old_name,
            "new_name": kind.new_name,
        }
    elif isinstance(kind, Clean):
        fields = {"removed_count": kind.removed_count, "days": kind.days}
    elif isinstance(kind, Import):
        fields = {"path": str(kind.path), "entry_count": kind.entry_count}
    else:
        raise TypeError(f"unknown operation kind: {kind!r}")
    return {"type": _KIND_TAGS[type(kind)], **fields}


def _decode_kind(data: dict) -> OperationKind:
    if not isinstance(data, dict):
        raise ValueError(f"operation kind must be a mapping, got {type(data).__name__}")
    tag = data.get("type")
    cls = _TAG_KINDS.get(tag)
    if cls is None:
        raise ValueError(f"unknown operation type: {tag!r}")
    if cls in (Push, Copy):
        return cls(uuid.UUID(data["entry_id"]), int(data["file_count"]))
    if cls in (Pop, Peek):
        return cls(uuid.UUID(data["entry_id"]), Path(data["destination"]))
    if cls is Drop:
        return Drop(uuid.UUID(data["entry_id"]), bool(data["deleted"]))
    if cls is Dump:
        return Dump(int(data["entry_count"]), bool(data["deleted"]))
    if cls is Rename:
        return Rename(uuid.UUID(data["entry_id"]), data.get("old_name"), data["new_name"])
    if cls is Clean:
        return Clean(int(data["removed_count"]), int(data["days"]))
    return Import(Path(data["path"]), int(data["entry_count"]))


@dataclass
class Operation:
    """One journal record."""

    kind: OperationKind
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def entry_id(self) -> uuid.UUID | None:
        """Identity of the affected entry, or None for store-wide operations."""
        kind = self.kind
        if isinstance(kind, (Push, Copy, Pop, Peek, Drop, Rename)):
            return kind.entry_id
        if isinstance(kind, (Dump, Clean, Import)):
            return None
        raise TypeError(f"unknown operation kind: {kind!r}")

    def involves_entry(self, entry_id: uuid.UUID) -> bool:
        return self.entry_id == entry_id

    def describe(self) -> str:
        kind = self.kind
        if isinstance(kind, Push):
            return f"Pushed {kind.file_count} file(s) to entry {short_id(kind.entry_id)}"
        if isinstance(kind, Copy):
            return f"Copied {kind.file_count} file(s) to entry {short_id(kind.entry_id)}"
        if isinstance(kind, Pop):
            return f"Popped entry {short_id(kind.entry_id)} to {kind.destination}"
        if isinstance(kind, Peek):
            return f"Peeked entry {short_id(kind.entry_id)} to {kind.destination}"
        if isinstance(kind, Drop):
            if kind.deleted:
                return f"Dropped and deleted entry {short_id(kind.entry_id)}"
            return f"Dropped entry {short_id(kind.entry_id)} to disk"
        if isinstance(kind, Dump):
            if kind.deleted:
                return f"Dumped and deleted {kind.entry_count} entries"
            return f"Dumped {kind.entry_count} entries to disk"
        if isinstance(kind, Rename):
            old = kind.old_name or "(unnamed)"
            return f"Renamed entry {short_id(kind.entry_id)} from '{old}' to '{kind.new_name}'"
        if isinstance(kind, Clean):
            return f"Cleaned {kind.removed_count} entries older than {kind.days} days"
        if isinstance(kind, Import):
            return f"Imported {kind.entry_count} entries from {kind.path}"
        raise TypeError(f"unknown operation kind: {kind!r}")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "timestamp": self.timestamp.isoformat(),
            "kind": _encode_kind(self.kind),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Operation:
        return cls(
            kind=_decode_kind(data["kind"]),
            id=uuid.UUID(data["id"]),
            timestamp=parse_timestamp(data["timestamp"]),
        )
