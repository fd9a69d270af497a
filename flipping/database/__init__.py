"""
Database Package.

This package provides SQLite-backed persistence for the flipping trade store.

Public API:
- ConnectionManager: Lazily opened, lock-guarded shared connection
- MigrationRunner: Versioned schema migrations
- SCHEMA_VERSION: Current schema version number
- StorageError / MigrationError: Failure conditions surfaced to callers

Repositories live in flipping.database.repositories and the one-time JSON
conversion in flipping.database.legacy_converter; both depend on
flipping.models and are imported from there directly.

Example:
    from flipping.database import ConnectionManager, MigrationRunner
    connections = ConnectionManager(db_path)
    MigrationRunner(connections).migrate()
"""
from flipping.database.connection import ConnectionManager
from flipping.database.errors import MigrationError, StorageError
from flipping.database.migrations import MigrationRunner
from flipping.database.schema import SCHEMA_VERSION

__all__ = [
    "ConnectionManager",
    "MigrationError",
    "MigrationRunner",
    "SCHEMA_VERSION",
    "StorageError",
]
