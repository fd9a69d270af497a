"""
Recipe flip repository.

Stores recipe flip groups (one per account and recipe name), their flips, and
the partial offers each flip consumed or produced.

A partial offer row records (flip, direction, item id, offer uuid, amount
consumed). The uuid is a reference, not a foreign key: the offer is owned by
a flipping item and the same uuid may appear in several flips. When flips are
loaded each uuid is resolved through the offer repository; references whose
offer no longer exists are dropped with a warning.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from flipping.database.connection import ConnectionManager
from flipping.database.repositories.base_repository import BaseRepository
from flipping.database.repositories.offer_event_repository import OfferEventRepository
from flipping.database.utils import decode_blob, encode_blob, format_db_timestamp, parse_db_timestamp
from flipping.models import (
    PartialOffer,
    PartialOfferMap,
    Recipe,
    RecipeFlip,
    RecipeFlipGroup,
)

logger = logging.getLogger(__name__)

INSERT_PARTIAL_OFFER_SQL = """
    INSERT INTO partial_offer (
        recipe_flip_id, offer_event_uuid, amount_consumed, is_input, item_id
    )
    VALUES (?, ?, ?, ?, ?)
"""


class RecipeFlipRepository(BaseRepository):
    """Repository for recipe flip group, flip and partial offer operations."""

    def __init__(
        self,
        connections: ConnectionManager,
        offer_event_repository: OfferEventRepository,
    ):
        super().__init__(connections)
        self._offers = offer_event_repository

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_group(self, group: RecipeFlipGroup, account_name: str) -> int:
        """
        Upsert a group by (account, recipe name) and store its flips.

        Flips already stored for the group are replaced, so inserting the
        same group twice leaves one copy of each flip.

        Returns:
            The group's id
        """
        recipe_name = group.recipe.name
        with self.transaction():
            self._execute(
                """
                INSERT INTO recipe_flip_group (account_name, recipe_name, recipe_data)
                VALUES (?, ?, ?)
                ON CONFLICT (account_name, recipe_name)
                DO UPDATE SET recipe_data = excluded.recipe_data
                """,
                (account_name, recipe_name, encode_blob(group.recipe.to_dict())),
            )
            group_id = self.find_group_id(account_name, recipe_name)
            if group_id is None:
                raise LookupError(
                    f"Recipe flip group {recipe_name!r} vanished after upsert"
                )

            self._execute(
                "DELETE FROM recipe_flip WHERE recipe_flip_group_id = ?", (group_id,)
            )
            for flip in group.recipe_flips:
                self.insert_flip(flip, group_id)

        logger.debug(
            f"Saved recipe flip group {recipe_name!r} for {account_name} "
            f"({len(group.recipe_flips)} flips)"
        )
        return group_id

    def insert_flip(self, flip: RecipeFlip, group_id: int) -> int:
        """
        Insert a flip row followed by its input and output partial offers.

        Returns:
            The new flip id
        """
        with self.transaction():
            cursor = self._execute(
                """
                INSERT INTO recipe_flip (recipe_flip_group_id, time_of_creation, coin_cost)
                VALUES (?, ?, ?)
                """,
                (group_id, format_db_timestamp(flip.time_of_creation), flip.coin_cost),
            )
            flip_id = cursor.lastrowid or 0
            self._insert_partial_offers(flip.inputs, flip_id, is_input=True)
            self._insert_partial_offers(flip.outputs, flip_id, is_input=False)
        return flip_id

    def _insert_partial_offers(
        self, offers: PartialOfferMap, flip_id: int, is_input: bool
    ) -> None:
        params: List[Tuple[object, ...]] = []
        for item_id, by_uuid in offers.items():
            for partial in by_uuid.values():
                params.append(
                    (flip_id, partial.offer.uuid, partial.amount_consumed, int(is_input), item_id)
                )
        if params:
            self._executemany(INSERT_PARTIAL_OFFER_SQL, params)

    def delete_group(self, group_id: int) -> None:
        """Delete a group; its flips and their partial offers go with it."""
        self._execute("DELETE FROM recipe_flip_group WHERE id = ?", (group_id,))

    def delete_flip(self, flip_id: int) -> None:
        self._execute("DELETE FROM recipe_flip WHERE id = ?", (flip_id,))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_group_id(self, account_name: str, recipe_name: str) -> Optional[int]:
        row = self._execute_fetchone(
            "SELECT id FROM recipe_flip_group WHERE account_name = ? AND recipe_name = ?",
            (account_name, recipe_name),
        )
        return row["id"] if row else None

    def find_group_ids_by_account_name(self, account_name: str) -> Dict[str, int]:
        """Map each of an account's recipe names to its group id."""
        rows = self._execute_fetchall(
            "SELECT id, recipe_name FROM recipe_flip_group WHERE account_name = ?",
            (account_name,),
        )
        return {row["recipe_name"]: row["id"] for row in rows}

    def find_groups_by_account_name(self, account_name: str) -> List[RecipeFlipGroup]:
        """Return an account's groups with their flips fully loaded."""
        rows = self._execute_fetchall(
            "SELECT * FROM recipe_flip_group WHERE account_name = ? ORDER BY id ASC",
            (account_name,),
        )
        groups = []
        for row in rows:
            recipe = Recipe.from_dict(decode_blob(row["recipe_data"], default={}))
            group = RecipeFlipGroup(recipe=recipe)
            group.recipe_flips = self.find_flips_by_group_id(row["id"])
            groups.append(group)
        return groups

    def find_flips_by_group_id(self, group_id: int) -> List[RecipeFlip]:
        """Return a group's flips, oldest first, with partial offers resolved."""
        rows = self._execute_fetchall(
            """
            SELECT * FROM recipe_flip
            WHERE recipe_flip_group_id = ?
            ORDER BY time_of_creation ASC, id ASC
            """,
            (group_id,),
        )
        flips = []
        for row in rows:
            created = parse_db_timestamp(row["time_of_creation"])
            if created is None:
                raise ValueError(
                    f"Recipe flip {row['id']} has an unreadable time of creation"
                )
            inputs, outputs = self._load_partial_offers(row["id"])
            flips.append(
                RecipeFlip(
                    time_of_creation=created,
                    coin_cost=row["coin_cost"],
                    inputs=inputs,
                    outputs=outputs,
                )
            )
        return flips

    def _load_partial_offers(self, flip_id: int) -> Tuple[PartialOfferMap, PartialOfferMap]:
        """
        Rebuild a flip's input and output maps.

        Rows are grouped by direction, then item id, then offer uuid. A
        duplicate (item, uuid) pair in one direction keeps the last row.
        """
        inputs: PartialOfferMap = {}
        outputs: PartialOfferMap = {}

        rows = self._execute_fetchall(
            "SELECT * FROM partial_offer WHERE recipe_flip_id = ? ORDER BY id ASC",
            (flip_id,),
        )
        for row in rows:
            uuid = row["offer_event_uuid"]
            offer = self._offers.find_by_uuid(uuid)
            if offer is None:
                logger.warning(
                    f"Could not find offer event {uuid} for a partial offer of "
                    f"recipe flip {flip_id}; skipping it"
                )
                continue

            target = inputs if row["is_input"] == 1 else outputs
            target.setdefault(row["item_id"], {})[uuid] = PartialOffer(
                offer=offer, amount_consumed=row["amount_consumed"]
            )

        return inputs, outputs
