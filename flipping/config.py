"""
Storage configuration for the flipping trade store.

Centralizes file names and locations used by the database layer and the
legacy JSON conversion, and resolves the data directory.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# =============================================================================
# File names
# =============================================================================

DATABASE_FILE_NAME = "flipping.db"

# Legacy flat documents
JSON_EXTENSION = ".json"
BACKUP_SUFFIX = ".backup.json"
SPECIAL_SUFFIX = ".special.json"
PRE_SQLITE_BACKUP_INFIX = ".pre_sqlite"
ACCOUNT_WIDE_FILE = "accountwide.json"
# Single-file format that predates per-account documents; never converted
OLD_TRADES_FILE = "trades.json"

# Zero-byte sentinel written once the legacy conversion has run
MIGRATION_MARKER = ".sqlite_migrated"

LOG_FILE_NAME = "flipping.log"


def get_data_dir() -> Path:
    """
    Get the default data directory.

    Returns:
        Path to the data directory (~/.runelite/flipping/)
    """
    data_dir = Path.home() / ".runelite" / "flipping"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


@dataclass(frozen=True)
class StoreConfig:
    """Resolved locations for one installation's data directory."""

    data_dir: Path

    @classmethod
    def from_data_dir(cls, data_dir: Optional[Path] = None) -> "StoreConfig":
        """Build a config, falling back to the default data directory."""
        if data_dir is None:
            return cls(data_dir=get_data_dir())
        return cls(data_dir=Path(data_dir))

    @property
    def db_path(self) -> Path:
        return self.data_dir / DATABASE_FILE_NAME

    @property
    def marker_path(self) -> Path:
        return self.data_dir / MIGRATION_MARKER

    @property
    def log_dir(self) -> Path:
        return self.data_dir
