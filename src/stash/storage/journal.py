"""Operation journal: append-only history of what the store has done.

The journal is advisory: nothing reads it to decide current state. It is a
single JSON array rewritten in full on each append, which is fine at the
volume of one record per command.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from stash.errors import InvalidFormat
from stash.models import Operation
from stash.storage.documents import read_json, write_json

logger = logging.getLogger(__name__)


class OperationJournal:
    """Read/append access to ``journal.json``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.records: list[Operation] = []
        self._load()

    def _load(self) -> None:
        try:
            data = read_json(self.path)
        except InvalidFormat as e:
            logger.warning("Journal unreadable, starting empty: %s", e)
            return
        if data is None:
            return
        try:
            self.records = [Operation.from_dict(raw) for raw in data]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Journal %s malformed, starting empty: %s", self.path, e)
            self.records = []

    def _save(self) -> None:
        write_json(self.path, [op.to_dict() for op in self.records])

    def append(self, operation: Operation) -> None:
        self.records.append(operation)
        self._save()
        logger.debug("Journal: %s", operation.describe())

    def last(self) -> Operation | None:
        return self.records[-1] if self.records else None

    def since(self, timestamp: datetime) -> list[Operation]:
        return [op for op in self.records if op.timestamp > timestamp]

    def for_entry(self, entry_id: uuid.UUID) -> list[Operation]:
        return [op for op in self.records if op.involves_entry(entry_id)]

    def recent(self, n: int) -> list[Operation]:
        """At most ``n`` newest records, oldest first."""
        if n <= 0:
            return []
        return self.records[-n:]

    def clear(self) -> None:
        self.records = []
        self._save()

    def compact(self, existing_ids: Iterable[uuid.UUID]) -> int:
        """Drop records for entries no longer indexed. Returns count dropped."""
        keep = set(existing_ids)
        before = len(self.records)
        self.records = [
            op for op in self.records if op.entry_id is None or op.entry_id in keep
        ]
        self._save()
        return before - len(self.records)

    def __len__(self) -> int:
        return len(self.records)
