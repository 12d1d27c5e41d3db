"""Configuration loading from environment variables and stash.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_DATA_DIR = Path.home() / ".stash"
_CONFIG_FILENAME = "stash.toml"


@dataclass
class StoreConfig:
    """Where the store lives and how long a lock is honoured."""

    data_dir: Path = _DEFAULT_DATA_DIR
    lock_timeout: int = 300

    @property
    def entries_dir(self) -> Path:
        return self.data_dir / "entries"

    @property
    def index_file(self) -> Path:
        return self.data_dir / "index.json"

    @property
    def journal_file(self) -> Path:
        return self.data_dir / "journal.json"

    @property
    def lock_file(self) -> Path:
        return self.data_dir / ".lock"


@dataclass
class BehaviorConfig:
    """Defaults for stash operations."""

    clean_days: int = 30
    hash_files: bool = True
    link_directories: bool = False


@dataclass
class StashConfig:
    """Top-level configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    behavior: BehaviorConfig = field(default_factory=BehaviorConfig)
    log_level: str = "WARNING"


def load_config(config_path: Path | None = None) -> StashConfig:
    """Load configuration from environment variables and optional stash.toml.

    Priority: environment variables > stash.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.config/stash/
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".config" / "stash" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    store_data = file_data.get("store", {})
    behavior_data = file_data.get("behavior", {})

    data_dir = os.getenv("STASH_DIR", store_data.get("data_dir"))

    config = StashConfig(
        store=StoreConfig(
            data_dir=Path(data_dir).expanduser() if data_dir else _DEFAULT_DATA_DIR,
            lock_timeout=int(
                os.getenv("STASH_LOCK_TIMEOUT", store_data.get("lock_timeout", 300))
            ),
        ),
        behavior=BehaviorConfig(
            clean_days=int(os.getenv("STASH_CLEAN_DAYS", behavior_data.get("clean_days", 30))),
            hash_files=bool(behavior_data.get("hash_files", True)),
            link_directories=bool(behavior_data.get("link_directories", False)),
        ),
        log_level=os.getenv("STASH_LOG_LEVEL", file_data.get("log_level", "WARNING")),
    )
    return config
