"""Persisted stores: the metadata index and the operation journal.

Layout (under the configured data directory)::

    ~/.stash/
    ├── index.json          # MetadataIndex: one summary per entry
    ├── journal.json        # OperationJournal: advisory history
    └── entries/
        └── <uuid>/
            ├── manifest.md # Full entry as YAML front matter
            └── data/       # Items at their relative paths

The index and on-disk entry directories are authoritative; the journal is not.
"""

from stash.storage.index import MetadataIndex
from stash.storage.journal import OperationJournal

__all__ = ["MetadataIndex", "OperationJournal"]
