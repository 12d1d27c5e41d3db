"""Tests for intent inference from flags and path existence."""

from __future__ import annotations

from pathlib import Path

import pytest

from stash.errors import AmbiguousOperation, InvalidArgument
from stash.inference import (
    CleanIntent,
    DeleteIntent,
    DumpIntent,
    ExportIntent,
    HistoryIntent,
    InferenceFlags,
    InfoIntent,
    InitIntent,
    ListIntent,
    PeekIntent,
    PopIntent,
    PushIntent,
    RenameIntent,
    SearchIntent,
    infer,
)


def existing(*names: str):
    present = set(names)
    return lambda p: p in present


class TestContextInference:
    def test_no_paths_pops_most_recent(self):
        assert infer([]) == PopIntent(None)

    def test_all_existing_pushes(self):
        intent = infer(["a", "b"], exists=existing("a", "b"))
        assert intent == PushIntent(("a", "b"), None, "move")

    def test_single_missing_pops_by_identifier(self):
        assert infer(["project-x"], exists=existing()) == PopIntent("project-x")

    def test_existence_wins_over_identifier(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "project-x").write_text("")
        assert isinstance(infer(["project-x"]), PushIntent)

    def test_multiple_missing_is_ambiguous(self):
        with pytest.raises(AmbiguousOperation) as exc:
            infer(["x", "y"], exists=existing())
        assert exc.value.missing == ["x", "y"]
        assert "multiple non-existent" in str(exc.value)

    def test_mixed_reports_both_partitions(self):
        with pytest.raises(AmbiguousOperation) as exc:
            infer(["here", "gone", "also-here"], exists=existing("here", "also-here"))
        assert exc.value.existing == ["here", "also-here"]
        assert exc.value.missing == ["gone"]
        assert "'here', 'also-here'" in str(exc.value)
        assert "'gone'" in str(exc.value)

    def test_modifiers_carried(self):
        flags = InferenceFlags(name="bundle", copy=True)
        assert infer(["a"], flags, exists=existing("a")) == PushIntent(("a",), "bundle", "copy")

        flags = InferenceFlags(link=True)
        assert infer(["a"], flags, exists=existing("a")).mode == "symlink"

        flags = InferenceFlags(copy=True, force=True, restore=True)
        assert infer(["n"], flags, exists=existing()) == PopIntent("n", True, True, True)

    def test_copy_and_link_conflict(self):
        with pytest.raises(InvalidArgument):
            infer(["a"], InferenceFlags(copy=True, link=True), exists=existing("a"))


class TestExplicitIntents:
    def test_management_flags_ignore_paths(self):
        always = existing("a")
        flags = InferenceFlags(list_entries=True, sort="size")
        assert infer(["a"], flags, always) == ListIntent("size")
        assert infer(["a"], InferenceFlags(search="rep"), always) == SearchIntent("rep")
        assert infer(["a"], InferenceFlags(history=True), always) == HistoryIntent()
        assert infer(["a"], InferenceFlags(clean=30), always) == CleanIntent(30)
        assert infer(["a"], InferenceFlags(dump=True), always) == DumpIntent(True)
        assert infer(["a"], InferenceFlags(init=True), always) == InitIntent()
        assert infer([], InferenceFlags(tar=Path("out.tar"))) == ExportIntent(Path("out.tar"))

    def test_info_takes_first_item(self):
        assert infer(["x"], InferenceFlags(info=True)) == InfoIntent("x")
        assert infer([], InferenceFlags(info=True)) == InfoIntent(None)

    def test_rename(self):
        assert infer([], InferenceFlags(rename="old:new")) == RenameIntent("old", "new")

    @pytest.mark.parametrize("value", ["nocolon", ":new", "old:"])
    def test_rename_requires_old_and_new(self, value: str):
        with pytest.raises(InvalidArgument):
            infer([], InferenceFlags(rename=value))

    def test_negative_clean_rejected(self):
        with pytest.raises(InvalidArgument):
            infer([], InferenceFlags(clean=-1))

    def test_explicit_push_of_missing_path(self):
        intent = infer(["ghost"], InferenceFlags(push=True), exists=existing())
        assert intent == PushIntent(("ghost",), None, "move")

    def test_push_needs_paths(self):
        with pytest.raises(InvalidArgument):
            infer([], InferenceFlags(push=True))

    def test_explicit_pop_of_existing_path(self):
        intent = infer(["a"], InferenceFlags(pop=True), exists=existing("a"))
        assert intent == PopIntent("a")

    def test_peek_and_delete(self):
        assert infer(["a"], InferenceFlags(peek=True)) == PeekIntent("a")
        assert infer(["a"], InferenceFlags(delete=True)) == DeleteIntent("a")

    def test_delete_needs_identifier(self):
        with pytest.raises(InvalidArgument):
            infer([], InferenceFlags(delete=True))

    def test_pop_takes_one_identifier(self):
        with pytest.raises(AmbiguousOperation):
            infer(["a", "b"], InferenceFlags(pop=True))
