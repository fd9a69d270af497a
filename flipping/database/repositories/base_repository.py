"""
Shared plumbing for the trade store repositories.

Every repository talks to the one ConnectionManager; statements run under its
lock, and multi-statement work goes through transaction().
"""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from flipping.database.connection import ConnectionManager

SqlParams = Union[Tuple[()], Tuple[object, ...]]


class BaseRepository:
    """Lock-guarded execute/fetch helpers over the shared store connection."""

    def __init__(self, connections: ConnectionManager):
        self._connections = connections

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        All-or-nothing scope for a repository operation.

        Inside another repository's transaction this becomes a savepoint, so
        e.g. an item save called from an account save commits or rolls back
        with the account.
        """
        with self._connections.transaction() as conn:
            yield conn

    def _execute(self, sql: str, params: SqlParams = ()) -> sqlite3.Cursor:
        # Autocommits unless called inside transaction()
        with self._connections.lock:
            return self._connections.get_connection().execute(sql, params)

    def _executemany(
        self, sql: str, rows: Iterable[Sequence[object]]
    ) -> sqlite3.Cursor:
        with self._connections.lock:
            return self._connections.get_connection().executemany(sql, rows)

    def _execute_fetchone(
        self, sql: str, params: SqlParams = ()
    ) -> Optional[sqlite3.Row]:
        with self._connections.lock:
            return self._connections.get_connection().execute(sql, params).fetchone()

    def _execute_fetchall(self, sql: str, params: SqlParams = ()) -> List[sqlite3.Row]:
        with self._connections.lock:
            return self._connections.get_connection().execute(sql, params).fetchall()
