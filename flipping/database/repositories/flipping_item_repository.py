"""
Flipping item repository.

Handles the per-account item rows. Each row has a surrogate id (the foreign
key target for its offer events) and a natural key (account_name, item_id)
which the save path uses to decide between insert and update.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Dict, List, Optional, Tuple

from flipping.database.repositories.base_repository import BaseRepository
from flipping.database.repositories.offer_event_repository import OfferEventRepository
from flipping.database.connection import ConnectionManager
from flipping.database.utils import format_db_timestamp, parse_db_timestamp
from flipping.models import FlippingItem

logger = logging.getLogger(__name__)


class FlippingItemRepository(BaseRepository):
    """Repository for flipping item database operations."""

    def __init__(
        self,
        connections: ConnectionManager,
        offer_event_repository: OfferEventRepository,
    ):
        super().__init__(connections)
        self._offers = offer_event_repository

    @staticmethod
    def _field_params(item: FlippingItem) -> Tuple[object, ...]:
        return (
            item.item_name,
            item.total_ge_limit,
            item.flipped_by,
            int(item.valid_flipping_panel_item),
            int(item.favorite),
            item.favorite_code,
            format_db_timestamp(item.ge_limit_reset_time),
            item.items_bought_this_limit_window,
        )

    def insert(self, item: FlippingItem, account_name: str) -> int:
        """
        Insert an item row (without its offers).

        Returns:
            The new surrogate id

        Raises:
            sqlite3.IntegrityError: If the account already has a row for
                this item id, or the account does not exist
        """
        cursor = self._execute(
            """
            INSERT INTO flipping_item (
                account_name, item_id, item_name, total_ge_limit, flipped_by,
                valid_flipping_panel_item, favorite, favorite_code,
                next_ge_limit_refresh, items_bought_this_limit_window
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (account_name, item.item_id) + self._field_params(item),
        )
        return cursor.lastrowid or 0

    def insert_with_offers(self, item: FlippingItem, account_name: str) -> int:
        """Insert an item row and all of its offers as one unit."""
        with self.transaction():
            flipping_item_id = self.insert(item, account_name)
            self._offers.insert_all(item.history, flipping_item_id)
        return flipping_item_id

    def update(self, item: FlippingItem, flipping_item_id: int) -> None:
        """Overwrite the row's fields (the natural key is left unchanged)."""
        self._execute(
            """
            UPDATE flipping_item
            SET item_name = ?, total_ge_limit = ?, flipped_by = ?,
                valid_flipping_panel_item = ?, favorite = ?, favorite_code = ?,
                next_ge_limit_refresh = ?, items_bought_this_limit_window = ?
            WHERE id = ?
            """,
            self._field_params(item) + (flipping_item_id,),
        )

    def save(self, item: FlippingItem, account_name: str) -> int:
        """
        Upsert an item by natural key and replace its offers.

        Returns:
            The item's surrogate id
        """
        with self.transaction():
            existing_id = self.find_id_by_account_and_item_id(account_name, item.item_id)
            if existing_id is None:
                return self.insert_with_offers(item, account_name)

            self.update(item, existing_id)
            self._offers.replace_all(item.history, existing_id)
            return existing_id

    def find_by_account_name(self, account_name: str) -> List[FlippingItem]:
        """Return an account's items without their offer history."""
        rows = self._execute_fetchall(
            "SELECT * FROM flipping_item WHERE account_name = ? ORDER BY id ASC",
            (account_name,),
        )
        return [self._row_to_item(row) for row in rows]

    def find_by_account_name_with_offers(self, account_name: str) -> List[FlippingItem]:
        """Return an account's items, each with its offers loaded (oldest first)."""
        rows = self._execute_fetchall(
            "SELECT * FROM flipping_item WHERE account_name = ? ORDER BY id ASC",
            (account_name,),
        )
        items = []
        for row in rows:
            item = self._row_to_item(row)
            item.history = self._offers.find_by_flipping_item_id(row["id"])
            items.append(item)
        return items

    def find_id_by_account_and_item_id(
        self, account_name: str, item_id: int
    ) -> Optional[int]:
        row = self._execute_fetchone(
            "SELECT id FROM flipping_item WHERE account_name = ? AND item_id = ?",
            (account_name, item_id),
        )
        return row["id"] if row else None

    def find_ids_by_account_name(self, account_name: str) -> Dict[int, int]:
        """Map each of an account's game item ids to its surrogate id."""
        rows = self._execute_fetchall(
            "SELECT id, item_id FROM flipping_item WHERE account_name = ?",
            (account_name,),
        )
        return {row["item_id"]: row["id"] for row in rows}

    def delete_by_id(self, flipping_item_id: int) -> None:
        """Delete an item row; its offers go with it."""
        self._execute("DELETE FROM flipping_item WHERE id = ?", (flipping_item_id,))

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> FlippingItem:
        return FlippingItem(
            item_id=row["item_id"],
            item_name=row["item_name"] or "",
            total_ge_limit=row["total_ge_limit"],
            flipped_by=row["flipped_by"],
            valid_flipping_panel_item=row["valid_flipping_panel_item"] == 1,
            favorite=row["favorite"] == 1,
            favorite_code=row["favorite_code"] or "1",
            ge_limit_reset_time=parse_db_timestamp(row["next_ge_limit_refresh"]),
            items_bought_this_limit_window=row["items_bought_this_limit_window"],
        )
