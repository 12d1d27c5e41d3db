"""Advisory lock file guarding a store against concurrent writers.

The library itself is single-writer and never locks; the CLI wraps each
mutating command in ``StoreLock`` so two shells cannot interleave writes to
the same index and journal. A lock older than ``timeout`` seconds is treated
as left behind by a crashed process and replaced.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from stash.errors import IOFailure, StoreLocked

logger = logging.getLogger(__name__)


class StoreLock:
    """Context manager holding ``<data_dir>/.lock`` for its duration."""

    def __init__(self, path: Path, timeout: float = 300) -> None:
        self.path = path
        self.timeout = timeout
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if not self._clear_stale():
                    raise StoreLocked(
                        f"Store is locked by another stash process ({self._describe_holder()}). "
                        f"Remove {self.path} if that process is gone."
                    ) from None
                continue
            except OSError as e:
                raise IOFailure(f"Failed to create lock {self.path}: {e}", self.path) from e
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"{os.getpid()} {time.time()}\n")
            self._held = True
            return
        raise StoreLocked(f"Could not acquire {self.path}")

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False

    def _clear_stale(self) -> bool:
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            return True
        if time.time() - mtime < self.timeout:
            return False
        logger.warning("Removing stale lock %s", self.path)
        self.path.unlink(missing_ok=True)
        return True

    def _describe_holder(self) -> str:
        try:
            pid = self.path.read_text(encoding="utf-8").split()[0]
        except (OSError, IndexError):
            return "unknown pid"
        return f"pid={pid}"

    def __enter__(self) -> StoreLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()
