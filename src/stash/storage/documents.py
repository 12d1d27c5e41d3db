"""Durable document I/O: atomic JSON documents and entry manifests.

Every write goes to a temporary file in the target directory, is flushed and
fsynced, then swapped into place with ``os.replace`` so a crash never leaves
a truncated document behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import frontmatter
import yaml

from stash.errors import InvalidFormat, IOFailure, NotFound
from stash.models import Entry

MANIFEST_FILENAME = "manifest.md"


def atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            delete=False,
            dir=path.parent,
            prefix=path.name + ".tmp.",
        ) as f:
            tmp_path = Path(f.name)
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        raise IOFailure(f"Failed to write {path}: {e}", path) from e


def write_json(path: Path, payload: Any) -> None:
    atomic_write(path, json.dumps(payload, ensure_ascii=False, indent=2) + "\n")


def read_json(path: Path) -> Any:
    """Load a JSON document. Missing file → None; bad JSON → InvalidFormat."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except UnicodeDecodeError as e:
        raise InvalidFormat(f"Document {path} is not valid UTF-8: {e}", path) from e
    except OSError as e:
        raise IOFailure(f"Failed to read {path}: {e}", path) from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidFormat(f"Malformed document {path}: {e}", path) from e


# ── Manifests ─────────────────────────────────────────────────


def render_manifest(entry: Entry) -> str:
    """Entry as YAML front matter plus a readable item list."""
    lines = [f"# {entry.display_name()}", "", "## Items"]
    for item in entry.items:
        lines.append(f"- [{item.kind}] {item.original_path} ({item.size_bytes} bytes)")
    post = frontmatter.Post("\n".join(lines) + "\n", **entry.to_dict())
    return frontmatter.dumps(post, sort_keys=False) + "\n"


def write_manifest(entry_dir: Path, entry: Entry) -> Path:
    path = entry_dir / MANIFEST_FILENAME
    atomic_write(path, render_manifest(entry))
    return path


def read_manifest(entry_dir: Path) -> Entry:
    path = entry_dir / MANIFEST_FILENAME
    if not path.exists():
        raise NotFound(f"No manifest at {path}")
    try:
        post = frontmatter.load(str(path))
    except (yaml.YAMLError, TypeError, ValueError) as e:
        raise InvalidFormat(f"Malformed manifest {path}: {e}", path) from e
    except OSError as e:
        raise IOFailure(f"Failed to read {path}: {e}", path) from e
    try:
        return Entry.from_dict(dict(post.metadata))
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidFormat(f"Malformed manifest {path}: {e}", path) from e
