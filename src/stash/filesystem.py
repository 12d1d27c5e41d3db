"""Filesystem primitives used by the entry manager.

Everything here is symlink-aware: metadata is read with ``lstat`` and links
are copied as links, never dereferenced. ``OSError`` is wrapped in
``IOFailure`` carrying the offending path.
"""

from __future__ import annotations

import errno
import hashlib
import logging
import os
import shutil
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from stash.errors import IOFailure
from stash.models import ItemKind

logger = logging.getLogger(__name__)

_HASH_CHUNK = 64 * 1024


@dataclass(frozen=True)
class PathSnapshot:
    """State of a path captured before it is relocated."""

    kind: ItemKind
    size_bytes: int
    permissions: int
    modified: datetime
    hash: str | None


def exists(path: Path | str) -> bool:
    """True for anything present on disk, including dangling symlinks."""
    return os.path.lexists(path)


def snapshot(path: Path, hash_files: bool = True) -> PathSnapshot:
    st = _lstat(path)
    if stat.S_ISLNK(st.st_mode):
        kind: ItemKind = "symlink"
    elif stat.S_ISDIR(st.st_mode):
        kind = "directory"
    else:
        kind = "file"
    return PathSnapshot(
        kind=kind,
        size_bytes=path_size(path),
        permissions=stat.S_IMODE(st.st_mode),
        modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        hash=content_hash(path) if hash_files and kind == "file" else None,
    )


def path_size(path: Path) -> int:
    """Bytes held by regular files under ``path``; symlinks count as 0."""
    st = _lstat(path)
    if stat.S_ISREG(st.st_mode):
        return st.st_size
    if not stat.S_ISDIR(st.st_mode):
        return 0
    total = 0
    try:
        children = list(path.iterdir())
    except OSError as e:
        raise IOFailure(f"Failed to list {path}: {e}", path) from e
    for child in children:
        total += path_size(child)
    return total


def content_hash(path: Path) -> str:
    digest = hashlib.sha256()
    try:
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(_HASH_CHUNK), b""):
                digest.update(chunk)
    except OSError as e:
        raise IOFailure(f"Failed to hash {path}: {e}", path) from e
    return f"sha256:{digest.hexdigest()}"


# ── Permissions and timestamps ────────────────────────────────


def get_permissions(path: Path) -> int:
    return stat.S_IMODE(_lstat(path).st_mode)


def set_permissions(path: Path, permissions: int) -> None:
    # chmod would follow the link and change its target.
    if path.is_symlink():
        return
    try:
        os.chmod(path, permissions)
    except OSError as e:
        raise IOFailure(f"Failed to set permissions on {path}: {e}", path) from e


def get_modified(path: Path) -> datetime:
    return datetime.fromtimestamp(_lstat(path).st_mtime, tz=timezone.utc)


def set_modified(path: Path, modified: datetime) -> None:
    """Set atime and mtime to ``modified`` without following symlinks."""
    ts = modified.timestamp()
    follow = not path.is_symlink()
    if not follow and os.utime not in os.supports_follow_symlinks:
        return
    try:
        os.utime(path, (ts, ts), follow_symlinks=follow)
    except OSError as e:
        raise IOFailure(f"Failed to set timestamps on {path}: {e}", path) from e


# ── Relocation ────────────────────────────────────────────────


def copy_path(src: Path, dest: Path) -> None:
    """Structural copy of ``src`` to ``dest``; links stay links."""
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        if src.is_symlink():
            os.symlink(os.readlink(src), dest)
        elif src.is_dir():
            shutil.copytree(src, dest, symlinks=True)
        else:
            shutil.copy2(src, dest, follow_symlinks=False)
    except OSError as e:
        raise IOFailure(f"Failed to copy {src} to {dest}: {e}", src) from e


def move_path(src: Path, dest: Path) -> None:
    """Rename ``src`` to ``dest``, falling back to copy+delete across devices.

    A rename keeps timestamps; the fallback does not, so the source
    modification time is reapplied to the copy before the source is removed.
    """
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        os.rename(src, dest)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise IOFailure(f"Failed to move {src} to {dest}: {e}", src) from e
    logger.debug("Cross-device move of %s, copying instead", src)
    modified = get_modified(src)
    copy_path(src, dest)
    set_modified(dest, modified)
    remove_path(src)


def same_file(a: Path, b: Path) -> bool:
    """True when both paths (links followed) name the same file."""
    try:
        return os.path.samefile(a, b)
    except OSError:
        return False


def materialize_path(src: Path, dest: Path) -> None:
    """Copy what ``src`` points at (following links) to ``dest``.

    The copy is built beside ``dest`` and swapped in, so an existing
    ``dest`` is only removed once the new content is complete.
    """
    tmp = dest.with_name(f".{dest.name}.stash-tmp")
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        if exists(tmp):
            remove_path(tmp)
        if src.is_dir():
            shutil.copytree(src, tmp, symlinks=True)
        else:
            shutil.copy2(src, tmp)
    except OSError as e:
        if exists(tmp):
            remove_path(tmp)
        raise IOFailure(f"Failed to copy {src} to {dest}: {e}", src) from e
    if exists(dest):
        remove_path(dest)
    try:
        os.replace(tmp, dest)
    except OSError as e:
        raise IOFailure(f"Failed to move {tmp} to {dest}: {e}", dest) from e


def symlinks_supported() -> bool:
    return hasattr(os, "symlink") and os.name != "nt"


def link_path(target: Path, link: Path) -> None:
    """Create ``link`` pointing at the absolute ``target``."""
    if not symlinks_supported():
        raise IOFailure("Symlinks are not supported on this platform", link)
    try:
        link.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(target.absolute(), link, target_is_directory=target.is_dir())
    except OSError as e:
        raise IOFailure(f"Failed to link {link} to {target}: {e}", link) from e


def remove_path(path: Path) -> None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        raise IOFailure(f"Failed to remove {path}: {e}", path) from e


def _lstat(path: Path) -> os.stat_result:
    try:
        return os.lstat(path)
    except OSError as e:
        raise IOFailure(f"Failed to read {path}: {e}", path) from e
