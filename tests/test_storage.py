"""Tests for the metadata index, operation journal and document I/O."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from stash.errors import InvalidFormat, NotFound
from stash.models import Clean, Dump, Entry, EntryMetadata, Item, Operation, Push, Rename
from stash.storage import MetadataIndex, OperationJournal
from stash.storage.documents import (
    MANIFEST_FILENAME,
    read_json,
    read_manifest,
    write_json,
    write_manifest,
)

_NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def meta(name: str | None, days_old: float = 0, size: int = 1) -> EntryMetadata:
    return EntryMetadata(
        uuid=uuid.uuid4(),
        name=name,
        created=_NOW - timedelta(days=days_old),
        total_size_bytes=size,
        item_count=1,
    )


@pytest.fixture
def index(tmp_path: Path) -> MetadataIndex:
    return MetadataIndex(tmp_path / "index.json")


@pytest.fixture
def journal(tmp_path: Path) -> OperationJournal:
    return OperationJournal(tmp_path / "journal.json")


class TestDocuments:
    def test_json_roundtrip_leaves_no_temp_files(self, tmp_path: Path):
        path = tmp_path / "doc.json"
        write_json(path, {"a": [1, 2]})
        assert read_json(path) == {"a": [1, 2]}
        assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]

    def test_missing_json_is_none(self, tmp_path: Path):
        assert read_json(tmp_path / "nope.json") is None

    def test_bad_json_is_invalid_format(self, tmp_path: Path):
        path = tmp_path / "doc.json"
        path.write_text("{not json")
        with pytest.raises(InvalidFormat):
            read_json(path)

    def test_undecodable_json_is_invalid_format(self, tmp_path: Path):
        path = tmp_path / "doc.json"
        path.write_bytes(b'{"entries": [\xff\xfe]}')
        with pytest.raises(InvalidFormat):
            read_json(path)

    def test_manifest_roundtrip(self, tmp_path: Path):
        item = Item("a.txt", "a.txt", "file", 3, 0o644, _NOW, "sha256:00")
        entry = Entry.new("bundle", [item], tmp_path)
        write_manifest(tmp_path / "e", entry)

        text = (tmp_path / "e" / MANIFEST_FILENAME).read_text()
        assert text.startswith("---\n")
        assert "# bundle" in text
        assert "- [file] a.txt (3 bytes)" in text
        assert read_manifest(tmp_path / "e") == entry

    def test_missing_manifest(self, tmp_path: Path):
        with pytest.raises(NotFound):
            read_manifest(tmp_path)

    def test_malformed_manifest(self, tmp_path: Path):
        (tmp_path / MANIFEST_FILENAME).write_text("---\nuuid: [unclosed\n---\nbody\n")
        with pytest.raises(InvalidFormat):
            read_manifest(tmp_path)

    def test_manifest_missing_fields(self, tmp_path: Path):
        (tmp_path / MANIFEST_FILENAME).write_text("---\nname: x\n---\nbody\n")
        with pytest.raises(InvalidFormat):
            read_manifest(tmp_path)


class TestMetadataIndex:
    def test_starts_empty(self, index: MetadataIndex):
        assert len(index) == 0
        assert index.most_recent() is None
        assert not index.path.exists()

    def test_add_persists(self, index: MetadataIndex):
        m = meta("a", size=5)
        index.add(m)

        reloaded = MetadataIndex(index.path)
        assert reloaded.get(m.uuid) == m
        assert reloaded.total_size_bytes == 5
        assert json.loads(index.path.read_text())["entries"][0]["name"] == "a"

    def test_remove(self, index: MetadataIndex):
        a, b = meta("a", size=2), meta("b", size=3)
        index.add(a)
        index.add(b)

        assert index.remove(a.uuid) == a
        assert index.remove(a.uuid) is None
        assert index.total_size_bytes == 3
        assert not MetadataIndex(index.path).contains(a.uuid)

    def test_lookup(self, index: MetadataIndex):
        a = meta("alpha")
        index.add(a)
        assert index.find_by_name("alpha") == a
        assert index.find_by_identifier(str(a.uuid)) == a
        assert index.find_by_identifier("alpha") == a
        assert index.find_by_identifier("beta") is None
        assert index.match_prefix(str(a.uuid)[:5].upper()) == [a]

    def test_search(self, index: MetadataIndex):
        a, b = meta("Project Notes"), meta("photos")
        index.add(a)
        index.add(b)
        assert index.search("NOTES") == [a]
        assert index.search("o") == [a, b]
        assert index.search(str(b.uuid)[:8]) == [b]

    def test_most_recent_is_last_added(self, index: MetadataIndex):
        index.add(meta("old"))
        newest = meta("new")
        index.add(newest)
        assert index.most_recent() == newest

    def test_sorted_views(self, index: MetadataIndex):
        old = meta("zeta", days_old=5, size=10)
        mid = meta(None, days_old=3, size=30)
        new = meta("alpha", days_old=1, size=20)
        for m in (old, mid, new):
            index.add(m)

        assert index.by_date() == [new, mid, old]
        assert index.by_size() == [mid, new, old]
        assert index.by_name() == [new, old, mid]

    def test_by_name_ties_keep_insertion_order(self, index: MetadataIndex):
        first, second = meta("same"), meta("same")
        index.add(first)
        index.add(second)
        assert index.by_name() == [first, second]

    def test_remove_older_than_is_strict(self, index: MetadataIndex):
        old = meta("old", days_old=10, size=4)
        edge = meta("edge", days_old=7, size=2)
        fresh = meta("fresh", days_old=1, size=1)
        for m in (old, edge, fresh):
            index.add(m)

        removed = index.remove_older_than(7, now=_NOW)
        assert removed == [old.uuid]
        assert [m.name for m in index.entries] == ["edge", "fresh"]
        assert index.total_size_bytes == 3

    def test_update_name(self, index: MetadataIndex):
        m = meta("a")
        index.add(m)
        index.update_name(m.uuid, "b")
        assert MetadataIndex(index.path).get(m.uuid).name == "b"
        with pytest.raises(KeyError):
            index.update_name(uuid.uuid4(), "c")

    def test_clear(self, index: MetadataIndex):
        index.add(meta("a"))
        index.clear()
        assert len(MetadataIndex(index.path)) == 0

    def test_corrupt_document_degrades_to_empty(self, tmp_path: Path, caplog):
        path = tmp_path / "index.json"
        path.write_text("{garbage")
        with caplog.at_level(logging.WARNING):
            index = MetadataIndex(path)
        assert len(index) == 0
        assert "starting empty" in caplog.text

    def test_undecodable_document_degrades_to_empty(self, tmp_path: Path, caplog):
        path = tmp_path / "index.json"
        path.write_bytes(b'{"entries": [\xff\xfe]}')
        with caplog.at_level(logging.WARNING):
            index = MetadataIndex(path)
        assert len(index) == 0
        assert "starting empty" in caplog.text

    def test_malformed_entries_degrade_to_empty(self, tmp_path: Path):
        path = tmp_path / "index.json"
        path.write_text(json.dumps({"entries": [{"uuid": "nope"}]}))
        assert len(MetadataIndex(path)) == 0

    def test_total_size_recomputed_on_load(self, index: MetadataIndex):
        index.add(meta("a", size=7))
        data = json.loads(index.path.read_text())
        data["total_size_bytes"] = 999
        index.path.write_text(json.dumps(data))
        assert MetadataIndex(index.path).total_size_bytes == 7


class TestOperationJournal:
    def test_append_persists(self, journal: OperationJournal):
        op = Operation(Push(uuid.uuid4(), 2))
        journal.append(op)
        assert OperationJournal(journal.path).records == [op]

    def test_recent_is_bounded_and_chronological(self, journal: OperationJournal):
        ops = [Operation(Clean(i, 1)) for i in range(5)]
        for op in ops:
            journal.append(op)

        assert journal.recent(3) == ops[2:]
        assert journal.recent(10) == ops
        assert journal.recent(0) == []
        assert journal.last() == ops[-1]

    def test_since_is_strict(self, journal: OperationJournal):
        first = Operation(Clean(0, 1), timestamp=_NOW)
        second = Operation(Clean(0, 1), timestamp=_NOW + timedelta(seconds=1))
        journal.append(first)
        journal.append(second)
        assert journal.since(_NOW) == [second]

    def test_for_entry(self, journal: OperationJournal):
        ident = uuid.uuid4()
        push = Operation(Push(ident, 1))
        rename = Operation(Rename(ident, None, "x"))
        journal.append(push)
        journal.append(Operation(Push(uuid.uuid4(), 1)))
        journal.append(rename)
        assert journal.for_entry(ident) == [push, rename]

    def test_compact_keeps_store_wide_records(self, journal: OperationJournal):
        keep, gone = uuid.uuid4(), uuid.uuid4()
        journal.append(Operation(Push(keep, 1)))
        journal.append(Operation(Push(gone, 1)))
        journal.append(Operation(Dump(2, True)))

        assert journal.compact([keep]) == 1
        assert [op.entry_id for op in OperationJournal(journal.path).records] == [keep, None]

    def test_clear(self, journal: OperationJournal):
        journal.append(Operation(Clean(0, 1)))
        journal.clear()
        assert len(OperationJournal(journal.path)) == 0

    def test_corrupt_document_degrades_to_empty(self, tmp_path: Path, caplog):
        path = tmp_path / "journal.json"
        path.write_text("[{")
        with caplog.at_level(logging.WARNING):
            journal = OperationJournal(path)
        assert len(journal) == 0
        assert "starting empty" in caplog.text

    def test_undecodable_document_degrades_to_empty(self, tmp_path: Path, caplog):
        path = tmp_path / "journal.json"
        path.write_bytes(b"[\xff]")
        with caplog.at_level(logging.WARNING):
            journal = OperationJournal(path)
        assert len(journal) == 0
        assert "starting empty" in caplog.text

    def test_non_mapping_kind_degrades_to_empty(self, tmp_path: Path):
        path = tmp_path / "journal.json"
        record = Operation(Clean(0, 1)).to_dict()
        record["kind"] = []
        path.write_text(json.dumps([record]))
        assert len(OperationJournal(path)) == 0
