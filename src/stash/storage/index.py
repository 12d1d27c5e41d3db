"""Metadata index: registry of entry summaries for listing and lookup.

Persisted as a single JSON document::

    {"name": null, "created": "...", "updated": "...",
     "entries": [...], "total_size_bytes": 0}

Entries are kept in insertion order; the last one is the most recent.
Every mutator rewrites the whole document before returning.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from pathlib import Path

from stash.errors import InvalidFormat
from stash.models import EntryMetadata, parse_timestamp, utcnow
from stash.storage.documents import read_json, write_json

logger = logging.getLogger(__name__)


class MetadataIndex:
    """Read/write access to ``index.json``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._load()

    # ── Persistence ──────────────────────────────────────────

    def _load(self) -> None:
        self.name: str | None = None
        self.created = utcnow()
        self.updated = self.created
        self.entries: list[EntryMetadata] = []
        self.total_size_bytes = 0
        try:
            data = read_json(self.path)
        except InvalidFormat as e:
            logger.warning("Index unreadable, starting empty: %s", e)
            return
        if data is None:
            return
        try:
            entries = [EntryMetadata.from_dict(raw) for raw in data["entries"]]
            created = parse_timestamp(data["created"])
            updated = parse_timestamp(data["updated"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Index %s malformed, starting empty: %s", self.path, e)
            return
        self.name = data.get("name")
        self.created = created
        self.updated = updated
        self.entries = entries
        # Recomputed rather than trusted so the aggregate always matches.
        self.total_size_bytes = sum(e.total_size_bytes for e in entries)

    def save(self) -> None:
        write_json(
            self.path,
            {
                "name": self.name,
                "created": self.created.isoformat(),
                "updated": self.updated.isoformat(),
                "entries": [e.to_dict() for e in self.entries],
                "total_size_bytes": self.total_size_bytes,
            },
        )

    def reload(self) -> None:
        self._load()

    def _touch(self) -> None:
        self.updated = utcnow()

    # ── Mutators ─────────────────────────────────────────────

    def add(self, metadata: EntryMetadata) -> None:
        self.entries.append(metadata)
        self.total_size_bytes += metadata.total_size_bytes
        self._touch()
        self.save()

    def remove(self, identity: uuid.UUID) -> EntryMetadata | None:
        for pos, meta in enumerate(self.entries):
            if meta.uuid == identity:
                del self.entries[pos]
                self.total_size_bytes -= meta.total_size_bytes
                self._touch()
                self.save()
                return meta
        return None

    def update_name(self, identity: uuid.UUID, name: str | None) -> None:
        meta = self.get(identity)
        if meta is None:
            raise KeyError(str(identity))
        meta.name = name
        self._touch()
        self.save()

    def remove_older_than(self, days: int, now: datetime | None = None) -> list[uuid.UUID]:
        """Evict entries created strictly before ``now - days``."""
        cutoff = (now or utcnow()) - timedelta(days=days)
        old = [e for e in self.entries if e.created < cutoff]
        if not old:
            return []
        self.entries = [e for e in self.entries if e.created >= cutoff]
        self.total_size_bytes = sum(e.total_size_bytes for e in self.entries)
        self._touch()
        self.save()
        return [e.uuid for e in old]

    def clear(self) -> None:
        self.entries = []
        self.total_size_bytes = 0
        self._touch()
        self.save()

    # ── Lookup ───────────────────────────────────────────────

    def get(self, identity: uuid.UUID) -> EntryMetadata | None:
        for meta in self.entries:
            if meta.uuid == identity:
                return meta
        return None

    def contains(self, identity: uuid.UUID) -> bool:
        return self.get(identity) is not None

    def find_by_name(self, name: str) -> EntryMetadata | None:
        for meta in self.entries:
            if meta.name == name:
                return meta
        return None

    def find_all_by_name(self, name: str) -> list[EntryMetadata]:
        return [meta for meta in self.entries if meta.name == name]

    def find_by_identifier(self, identifier: str) -> EntryMetadata | None:
        """UUID first, then name."""
        try:
            meta = self.get(uuid.UUID(identifier))
        except ValueError:
            meta = None
        return meta or self.find_by_name(identifier)

    def match_prefix(self, prefix: str) -> list[EntryMetadata]:
        p = prefix.lower()
        return [meta for meta in self.entries if str(meta.uuid).startswith(p)]

    def search(self, pattern: str) -> list[EntryMetadata]:
        """Case-insensitive substring over names, plus uuid prefix."""
        p = pattern.lower()
        return [
            meta
            for meta in self.entries
            if (meta.name is not None and p in meta.name.lower())
            or str(meta.uuid).startswith(p)
        ]

    def most_recent(self) -> EntryMetadata | None:
        return self.entries[-1] if self.entries else None

    # ── Sorted views ─────────────────────────────────────────

    def by_date(self) -> list[EntryMetadata]:
        """Newest first."""
        return sorted(self.entries, key=lambda e: e.created, reverse=True)

    def by_size(self) -> list[EntryMetadata]:
        """Largest first."""
        return sorted(self.entries, key=lambda e: e.total_size_bytes, reverse=True)

    def by_name(self) -> list[EntryMetadata]:
        """Named entries alphabetically, unnamed ones after."""
        return sorted(self.entries, key=lambda e: (e.name is None, e.name or ""))

    def __len__(self) -> int:
        return len(self.entries)
