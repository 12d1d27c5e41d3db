"""Exception hierarchy shared by the resolver, manager and stores."""

from __future__ import annotations

from pathlib import Path


class StashError(Exception):
    """Base class for every failure the CLI reports to the user."""


class NotFound(StashError):
    """An identity or identifier does not resolve to a stashed entry."""


class AmbiguousOperation(StashError):
    """Input could mean more than one thing; nothing was changed."""

    def __init__(
        self,
        message: str,
        *,
        existing: list[str] | None = None,
        missing: list[str] | None = None,
        candidates: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.existing = existing or []
        self.missing = missing or []
        self.candidates = candidates or []


class Collision(StashError):
    """Restore destinations already exist and force was not given."""

    def __init__(self, paths: list[Path]) -> None:
        listed = ", ".join(f"'{p}'" for p in paths)
        super().__init__(f"Destination already exists: {listed}. Use --force to overwrite.")
        self.paths = paths


class IOFailure(StashError):
    """A filesystem or document operation failed."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = path


class InvalidFormat(StashError):
    """A persisted document could not be parsed."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = path


class InvalidArgument(StashError, ValueError):
    """Caller supplied arguments the operation cannot accept."""


class StoreLocked(StashError):
    """Another invocation holds the store lock."""
