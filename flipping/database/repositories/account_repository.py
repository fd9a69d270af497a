"""
Account repository.

The account row is the aggregate root: items, recipe flip groups and the
per-slot last-offer pointers all hang off its display name and are removed
with it. Reads compose the child repositories level by level; save() writes
the whole aggregate in one transaction.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Dict, List, Mapping, Optional, Tuple

from flipping.database.connection import ConnectionManager
from flipping.database.repositories.base_repository import BaseRepository
from flipping.database.repositories.flipping_item_repository import FlippingItemRepository
from flipping.database.repositories.offer_event_repository import OfferEventRepository
from flipping.database.repositories.recipe_flip_repository import RecipeFlipRepository
from flipping.database.utils import format_db_timestamp, parse_db_timestamp
from flipping.models import AccountData, OfferEvent

logger = logging.getLogger(__name__)


class AccountRepository(BaseRepository):
    """Repository for account aggregate operations."""

    def __init__(
        self,
        connections: ConnectionManager,
        flipping_item_repository: FlippingItemRepository,
        recipe_flip_repository: RecipeFlipRepository,
        offer_event_repository: OfferEventRepository,
    ):
        super().__init__(connections)
        self._items = flipping_item_repository
        self._recipes = recipe_flip_repository
        self._offers = offer_event_repository

    @staticmethod
    def _field_params(data: AccountData) -> Tuple[object, ...]:
        return (
            format_db_timestamp(data.session_start_time),
            data.accumulated_session_time_millis,
            format_db_timestamp(data.last_session_time_update),
            format_db_timestamp(data.last_stored_at),
            format_db_timestamp(data.last_modified_at),
        )

    # ------------------------------------------------------------------
    # Account row
    # ------------------------------------------------------------------

    def insert(self, display_name: str, data: AccountData) -> None:
        """
        Insert the account row only.

        Raises:
            sqlite3.IntegrityError: If the display name is already stored
        """
        self._execute(
            """
            INSERT INTO account (
                display_name, session_start_time, accumulated_session_time_millis,
                last_session_time_update, last_stored_at, last_modified_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (display_name,) + self._field_params(data),
        )

    def update(self, display_name: str, data: AccountData) -> None:
        self._execute(
            """
            UPDATE account
            SET session_start_time = ?, accumulated_session_time_millis = ?,
                last_session_time_update = ?, last_stored_at = ?,
                last_modified_at = ?
            WHERE display_name = ?
            """,
            self._field_params(data) + (display_name,),
        )

    def exists(self, display_name: str) -> bool:
        row = self._execute_fetchone(
            "SELECT 1 FROM account WHERE display_name = ?", (display_name,)
        )
        return row is not None

    def insert_or_update(self, display_name: str, data: AccountData) -> None:
        """Insert the account row, or overwrite it if the name is taken."""
        with self.transaction():
            if self.exists(display_name):
                self.update(display_name, data)
            else:
                self.insert(display_name, data)

    def find_all_account_names(self) -> List[str]:
        rows = self._execute_fetchall(
            "SELECT display_name FROM account ORDER BY display_name ASC"
        )
        return [row["display_name"] for row in rows]

    def delete(self, display_name: str) -> None:
        """Delete an account and everything it owns."""
        self._execute("DELETE FROM account WHERE display_name = ?", (display_name,))
        logger.info(f"Deleted account {display_name}")

    # ------------------------------------------------------------------
    # Slot pointers
    # ------------------------------------------------------------------

    def save_last_offers(
        self, display_name: str, last_offers: Mapping[int, OfferEvent]
    ) -> None:
        """Upsert the slot -> offer uuid pointers given; other slots are left alone."""
        if not last_offers:
            return

        with self.transaction():
            self._executemany(
                """
                INSERT INTO last_offer (account_name, slot, offer_event_uuid)
                VALUES (?, ?, ?)
                ON CONFLICT (account_name, slot)
                DO UPDATE SET offer_event_uuid = excluded.offer_event_uuid
                """,
                [(display_name, slot, offer.uuid) for slot, offer in last_offers.items()],
            )

    def replace_last_offers(
        self, display_name: str, last_offers: Mapping[int, OfferEvent]
    ) -> None:
        """Make the stored pointers exactly the given ones."""
        with self.transaction():
            self._execute(
                "DELETE FROM last_offer WHERE account_name = ?", (display_name,)
            )
            self.save_last_offers(display_name, last_offers)

    def load_last_offers(self, display_name: str) -> Dict[int, OfferEvent]:
        """
        Resolve each slot pointer to its offer event.

        Pointers to offers that no longer exist are left out of the result.
        """
        rows = self._execute_fetchall(
            "SELECT slot, offer_event_uuid FROM last_offer WHERE account_name = ? ORDER BY slot",
            (display_name,),
        )
        last_offers: Dict[int, OfferEvent] = {}
        for row in rows:
            offer = self._offers.find_by_uuid(row["offer_event_uuid"])
            if offer is None:
                logger.warning(
                    f"Last offer {row['offer_event_uuid']} for slot {row['slot']} "
                    f"of {display_name} no longer exists; skipping it"
                )
                continue
            last_offers[row["slot"]] = offer
        return last_offers

    # ------------------------------------------------------------------
    # Aggregate
    # ------------------------------------------------------------------

    def find_by_name(self, display_name: str) -> Optional[AccountData]:
        """
        Load a fully hydrated account.

        Returns:
            The account's data, or None if no account has this name
        """
        row = self._execute_fetchone(
            "SELECT * FROM account WHERE display_name = ?", (display_name,)
        )
        if row is None:
            return None

        data = self._row_to_account(row)
        data.trades = self._items.find_by_account_name_with_offers(display_name)
        data.last_offers = self.load_last_offers(display_name)
        data.recipe_flip_groups = self._recipes.find_groups_by_account_name(display_name)
        return data

    def find_all(self) -> Dict[str, AccountData]:
        accounts = {}
        for name in self.find_all_account_names():
            data = self.find_by_name(name)
            if data is not None:
                accounts[name] = data
        return accounts

    def save(self, display_name: str, data: AccountData) -> None:
        """
        Store the whole aggregate as one transaction.

        Items and recipe groups are upserted by natural key and their
        children replaced. Items, groups and slot pointers that are no longer
        part of the aggregate are deleted.

        Raises:
            ValueError: If two entries of trades share an item id; nothing
                is written
        """
        duplicates = data.duplicate_item_ids()
        if duplicates:
            raise ValueError(
                f"Account {display_name} lists item ids more than once: {duplicates}"
            )

        with self.transaction():
            self.insert_or_update(display_name, data)

            stored_items = self._items.find_ids_by_account_name(display_name)
            for item in data.trades:
                self._items.save(item, display_name)
            kept_items = {item.item_id for item in data.trades}
            for item_id, flipping_item_id in stored_items.items():
                if item_id not in kept_items:
                    self._items.delete_by_id(flipping_item_id)

            stored_groups = self._recipes.find_group_ids_by_account_name(display_name)
            for group in data.recipe_flip_groups:
                self._recipes.insert_group(group, display_name)
            kept_groups = {group.recipe.name for group in data.recipe_flip_groups}
            for recipe_name, group_id in stored_groups.items():
                if recipe_name not in kept_groups:
                    self._recipes.delete_group(group_id)

            self.replace_last_offers(display_name, data.last_offers)

        logger.debug(
            f"Saved account {display_name}: {len(data.trades)} items, "
            f"{len(data.recipe_flip_groups)} recipe groups"
        )

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> AccountData:
        return AccountData(
            session_start_time=parse_db_timestamp(row["session_start_time"]),
            accumulated_session_time_millis=row["accumulated_session_time_millis"],
            last_session_time_update=parse_db_timestamp(row["last_session_time_update"]),
            last_stored_at=parse_db_timestamp(row["last_stored_at"]),
            last_modified_at=parse_db_timestamp(row["last_modified_at"]),
        )
