"""
Offer event repository.

Offer events are the leaves of the model: owned by one flipping item through
flipping_item_id, and referenced by uuid (without ownership) from partial
offers and per-slot last-offer pointers. Point lookups by uuid therefore
return None rather than raising when the event is gone.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional, Sequence, Tuple

from flipping.database.repositories.base_repository import BaseRepository
from flipping.database.utils import format_db_timestamp, parse_db_timestamp
from flipping.models import OfferEvent, OfferState

logger = logging.getLogger(__name__)

INSERT_SQL = """
    INSERT INTO offer_event (
        uuid, flipping_item_id, is_buy, item_id, current_quantity_in_trade,
        price, time, slot, state, tick_arrived_at, ticks_since_first_offer,
        total_quantity_in_trade, trade_started_at, before_login
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

UPDATE_SQL = """
    UPDATE offer_event
    SET is_buy = ?, item_id = ?, current_quantity_in_trade = ?, price = ?,
        time = ?, slot = ?, state = ?, tick_arrived_at = ?,
        ticks_since_first_offer = ?, total_quantity_in_trade = ?,
        trade_started_at = ?, before_login = ?
    WHERE uuid = ?
"""


class OfferEventRepository(BaseRepository):
    """Repository for offer event database operations."""

    @staticmethod
    def _insert_params(offer: OfferEvent, flipping_item_id: int) -> Tuple[object, ...]:
        return (
            offer.uuid,
            flipping_item_id,
            int(offer.is_buy),
            offer.item_id,
            offer.current_quantity_in_trade,
            offer.price,
            format_db_timestamp(offer.time),
            offer.slot,
            offer.state.name,
            offer.tick_arrived_at,
            offer.ticks_since_first_offer,
            offer.total_quantity_in_trade,
            format_db_timestamp(offer.trade_started_at),
            int(offer.before_login),
        )

    def insert(self, offer: OfferEvent, flipping_item_id: int) -> None:
        """
        Insert one offer event.

        Args:
            offer: The event to store
            flipping_item_id: Surrogate id of the owning flipping item

        Raises:
            sqlite3.IntegrityError: If the uuid already exists or the owning
                item does not
        """
        self._execute(INSERT_SQL, self._insert_params(offer, flipping_item_id))

    def insert_all(self, offers: Sequence[OfferEvent], flipping_item_id: int) -> None:
        """
        Insert a batch of offer events, all or nothing.

        Any failing row rolls back the whole batch.
        """
        if not offers:
            return

        with self.transaction():
            self._executemany(
                INSERT_SQL,
                [self._insert_params(o, flipping_item_id) for o in offers],
            )
        logger.debug(f"Inserted {len(offers)} offers for flipping item {flipping_item_id}")

    def replace_all(self, offers: Sequence[OfferEvent], flipping_item_id: int) -> None:
        """Replace every offer of a flipping item with the given ones."""
        with self.transaction():
            self.delete_by_flipping_item_id(flipping_item_id)
            self.insert_all(offers, flipping_item_id)

    def update(self, offer: OfferEvent) -> None:
        """Overwrite every mutable field of the event with this uuid."""
        self._execute(
            UPDATE_SQL,
            (
                int(offer.is_buy),
                offer.item_id,
                offer.current_quantity_in_trade,
                offer.price,
                format_db_timestamp(offer.time),
                offer.slot,
                offer.state.name,
                offer.tick_arrived_at,
                offer.ticks_since_first_offer,
                offer.total_quantity_in_trade,
                format_db_timestamp(offer.trade_started_at),
                int(offer.before_login),
                offer.uuid,
            ),
        )

    def find_by_flipping_item_id(self, flipping_item_id: int) -> List[OfferEvent]:
        """Return an item's offers, oldest first."""
        rows = self._execute_fetchall(
            "SELECT * FROM offer_event WHERE flipping_item_id = ? ORDER BY time ASC",
            (flipping_item_id,),
        )
        return [self._row_to_offer(row) for row in rows]

    def find_by_uuid(self, uuid: str) -> Optional[OfferEvent]:
        """
        Look up one offer event.

        Returns:
            The event, or None when nothing with this uuid is stored
        """
        row = self._execute_fetchone(
            "SELECT * FROM offer_event WHERE uuid = ?", (uuid,)
        )
        if row is None:
            return None
        return self._row_to_offer(row)

    def delete_by_uuid(self, uuid: str) -> None:
        self._execute("DELETE FROM offer_event WHERE uuid = ?", (uuid,))

    def delete_by_flipping_item_id(self, flipping_item_id: int) -> None:
        self._execute(
            "DELETE FROM offer_event WHERE flipping_item_id = ?",
            (flipping_item_id,),
        )

    @staticmethod
    def _row_to_offer(row: sqlite3.Row) -> OfferEvent:
        time = parse_db_timestamp(row["time"])
        if time is None:
            raise ValueError(f"Offer {row['uuid']} has an unreadable time: {row['time']!r}")

        return OfferEvent(
            uuid=row["uuid"],
            is_buy=row["is_buy"] == 1,
            item_id=row["item_id"],
            current_quantity_in_trade=row["current_quantity_in_trade"],
            price=row["price"],
            time=time,
            slot=row["slot"],
            state=OfferState[row["state"]],
            tick_arrived_at=row["tick_arrived_at"],
            ticks_since_first_offer=row["ticks_since_first_offer"],
            total_quantity_in_trade=row["total_quantity_in_trade"],
            trade_started_at=parse_db_timestamp(row["trade_started_at"]),
            before_login=row["before_login"] == 1,
        )
