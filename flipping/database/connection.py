"""
Shared SQLite connection for the trade store.

One connection is opened lazily and reused for the process lifetime. It runs
in autocommit mode; multi-statement units of work go through transaction(),
which issues explicit BEGIN/COMMIT/ROLLBACK (or a SAVEPOINT when nested) so
DDL and DML alike are rolled back on failure.

Thread Safety:
- A single threading.RLock guards connection acquisition, teardown and every
  statement executed by the repositories
- The store assumes a single logical writer; the lock only serializes calls
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Owns the process-wide SQLite connection.

    Usage:
        connections = ConnectionManager(db_path)
        with connections.transaction() as conn:
            conn.execute(...)
            conn.execute(...)
        # Commits on success, rolls back on error
        connections.close()
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Location of the database file; the parent directory is
                created on first connect
        """
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._savepoint_seq = 0

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def get_connection(self) -> sqlite3.Connection:
        """Return the shared connection, opening it if needed."""
        with self._lock:
            if self._conn is None:
                self._conn = self._open()
            return self._conn

    def _open(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")

        logger.info(f"Database connection opened: {self.db_path}")
        return conn

    def is_database_initialized(self) -> bool:
        """True if the database file already exists on disk."""
        return self.db_path.exists()

    def close(self) -> None:
        """Close the shared connection. Safe to call more than once."""
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
                logger.debug("Database connection closed")
            except sqlite3.Error as exc:
                logger.error(f"Failed to close database connection: {exc}")
            finally:
                self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Provide a transaction scope with thread safety.

        Commits on success, rolls back on error. When a transaction is
        already open the scope becomes a savepoint: an error rolls back only
        the inner work and propagates to the outer scope.

        Yields:
            The SQLite connection within the transaction
        """
        with self._lock:
            conn = self.get_connection()
            if conn.in_transaction:
                with self._savepoint(conn):
                    yield conn
                return

            conn.execute("BEGIN")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException as exc:
                # Interrupts too, or the connection is left mid-transaction
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                logger.error(f"Transaction failed: {exc!r}")
                raise

    @contextmanager
    def _savepoint(self, conn: sqlite3.Connection) -> Iterator[None]:
        self._savepoint_seq += 1
        name = f"sp_{self._savepoint_seq}"

        conn.execute(f"SAVEPOINT {name}")
        try:
            yield
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        conn.execute(f"RELEASE SAVEPOINT {name}")
