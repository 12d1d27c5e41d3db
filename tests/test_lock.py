"""Tests for the store lock file."""

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from stash.errors import StoreLocked
from stash.lock import StoreLock


class TestStoreLock:
    def test_acquire_and_release(self, tmp_path: Path):
        path = tmp_path / "store" / ".lock"
        with StoreLock(path):
            assert path.exists()
            assert path.read_text().split()[0] == str(os.getpid())
        assert not path.exists()

    def test_held_lock_refused(self, tmp_path: Path):
        path = tmp_path / ".lock"
        with StoreLock(path):
            with pytest.raises(StoreLocked) as exc:
                StoreLock(path).acquire()
        assert f"pid={os.getpid()}" in str(exc.value)
        assert str(path) in str(exc.value)

    def test_stale_lock_replaced(self, tmp_path: Path):
        path = tmp_path / ".lock"
        path.write_text("99999 0\n")
        old = time.time() - 600
        os.utime(path, (old, old))

        with StoreLock(path, timeout=300):
            assert path.read_text().split()[0] == str(os.getpid())

    def test_release_after_failure_keeps_foreign_lock(self, tmp_path: Path):
        path = tmp_path / ".lock"
        path.write_text("12345 0\n")
        lock = StoreLock(path)
        with pytest.raises(StoreLocked):
            lock.acquire()
        lock.release()
        assert path.exists()
