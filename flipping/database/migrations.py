"""
Database migration runner for schema versioning.

Applies ordered SQL scripts named V<version>__<description>.sql to bring a
store from its recorded version to the current one. Every version applied in
one run shares a single transaction, so a failure leaves the recorded version
and the schema exactly as they were.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from flipping.database.connection import ConnectionManager
from flipping.database.errors import MigrationError
from flipping.database.schema import SCHEMA_VERSION, SQL_DIR
from flipping.database.utils import format_db_timestamp

logger = logging.getLogger(__name__)

CREATE_SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
)
"""

SCRIPT_PREFIX = "V"
SCRIPT_SEPARATOR = "__"
SCRIPT_EXTENSION = ".sql"


def load_statements(path: Path) -> List[str]:
    """
    Split a migration script into executable statements.

    Blank lines and lines starting with `--` are dropped. A statement ends at
    a line whose trimmed text ends with `;`; the semicolon is removed.

    Args:
        path: Script file to read

    Returns:
        Statements in file order
    """
    statements: List[str] = []
    current: List[str] = []

    for line in path.read_text(encoding="utf-8").splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("--"):
            continue

        current.append(line)
        if trimmed.endswith(";"):
            stmt = " ".join(current).strip()
            current = []
            stmt = stmt[:-1].strip()
            if stmt:
                statements.append(stmt)

    if current:
        tail = " ".join(current).strip()
        logger.debug(f"{path.name}: final statement has no terminating ';'")
        statements.append(tail)

    return statements


class MigrationRunner:
    """
    Handles schema migrations for the trade store.

    Responsible for:
    - Creating and reading the schema_version table
    - Locating the script for each pending version
    - Applying all pending versions atomically
    """

    def __init__(
        self,
        connections: ConnectionManager,
        scripts_dir: Optional[Path] = None,
        target_version: int = SCHEMA_VERSION,
    ):
        """
        Initialize the migration runner.

        Args:
            connections: Shared connection manager
            scripts_dir: Directory holding V<n>__*.sql files (defaults to
                the scripts shipped with the package)
            target_version: Version to migrate up to
        """
        self._connections = connections
        self.scripts_dir = Path(scripts_dir) if scripts_dir else SQL_DIR
        self.target_version = target_version

    def get_schema_version(self) -> int:
        """Return the highest recorded schema version, 0 if none."""
        with self._connections.lock:
            conn = self._connections.get_connection()
            conn.execute(CREATE_SCHEMA_VERSION_TABLE)
            row = conn.execute(
                "SELECT MAX(version) AS version FROM schema_version"
            ).fetchone()
            if row is None or row["version"] is None:
                return 0
            return int(row["version"])

    def find_migration_script(self, version: int) -> Path:
        """
        Locate the script for a version.

        Raises:
            MigrationError: If no script, or more than one, matches
        """
        pattern = f"{SCRIPT_PREFIX}{version}{SCRIPT_SEPARATOR}*{SCRIPT_EXTENSION}"
        matches = sorted(self.scripts_dir.glob(pattern))

        if not matches:
            raise MigrationError(
                f"Migration script not found for version {version} "
                f"in {self.scripts_dir}",
                version=version,
            )
        if len(matches) > 1:
            names = ", ".join(m.name for m in matches)
            raise MigrationError(
                f"Ambiguous migration scripts for version {version}: {names}",
                version=version,
            )
        return matches[0]

    def migrate(self) -> int:
        """
        Bring the schema up to the target version.

        Returns:
            The schema version after the run

        Raises:
            MigrationError: If a script is missing or unreadable
            sqlite3.Error: If a statement fails (the whole run is rolled back)
        """
        current = self.get_schema_version()

        if current == self.target_version:
            logger.debug(f"Schema v{current} is up-to-date.")
            return current
        if current > self.target_version:
            logger.warning(
                f"Schema v{current} is newer than this build (v{self.target_version}); "
                "leaving it untouched"
            )
            return current

        logger.info(
            f"Migrating database from v{current} to v{self.target_version}"
        )
        plan = self._plan(current)

        try:
            with self._connections.transaction() as conn:
                for version, statements in plan:
                    self._apply_version(conn, version, statements)
        except sqlite3.Error:
            logger.error(
                f"Database migration failed, rolled back to v{current}"
            )
            raise

        logger.info(f"Schema migration complete. Now at v{self.target_version}.")
        return self.target_version

    def _plan(self, current: int) -> List[Tuple[int, List[str]]]:
        """Resolve and read every pending script before touching the schema."""
        plan: List[Tuple[int, List[str]]] = []
        for version in range(current + 1, self.target_version + 1):
            path = self.find_migration_script(version)
            try:
                statements = load_statements(path)
            except OSError as exc:
                raise MigrationError(
                    f"Failed to read migration script {path}: {exc}",
                    version=version,
                ) from exc
            plan.append((version, statements))
        return plan

    def _apply_version(
        self, conn: sqlite3.Connection, version: int, statements: List[str]
    ) -> None:
        logger.debug(f"Applying schema version {version} ({len(statements)} statements)")
        for sql in statements:
            conn.execute(sql)

        conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (version, format_db_timestamp(datetime.now(timezone.utc))),
        )
