"""
Account-wide data repository.

A single row (id = 1) holds the preferences shared by every account. The
list fields are kept as opaque JSON blobs.
"""
from __future__ import annotations

import logging

from flipping.database.repositories.base_repository import BaseRepository
from flipping.database.utils import decode_blob, encode_blob
from flipping.models import AccountWideData, Recipe

logger = logging.getLogger(__name__)

SINGLETON_ID = 1


class AccountWideDataRepository(BaseRepository):
    """Repository for the account-wide singleton row."""

    def save(self, data: AccountWideData) -> None:
        self._execute(
            """
            INSERT INTO account_wide_data (
                id, options_json, sections_json, local_recipes_json,
                should_make_new_additions, enhanced_slots, jwt
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
                options_json = excluded.options_json,
                sections_json = excluded.sections_json,
                local_recipes_json = excluded.local_recipes_json,
                should_make_new_additions = excluded.should_make_new_additions,
                enhanced_slots = excluded.enhanced_slots,
                jwt = excluded.jwt
            """,
            (
                SINGLETON_ID,
                encode_blob(data.options),
                encode_blob(data.sections),
                encode_blob([r.to_dict() for r in data.local_recipes]),
                int(data.should_make_new_additions),
                int(data.enhanced_slots),
                data.jwt,
            ),
        )
        logger.debug("Saved account-wide data")

    def load(self) -> AccountWideData:
        """
        Load the singleton row.

        Returns defaults when nothing is stored; null list columns come back
        as empty lists.
        """
        row = self._execute_fetchone(
            "SELECT * FROM account_wide_data WHERE id = ?", (SINGLETON_ID,)
        )
        if row is None:
            return AccountWideData()

        return AccountWideData(
            options=list(decode_blob(row["options_json"], default=[])),
            sections=list(decode_blob(row["sections_json"], default=[])),
            local_recipes=[
                Recipe.from_dict(r)
                for r in decode_blob(row["local_recipes_json"], default=[])
            ],
            should_make_new_additions=row["should_make_new_additions"] == 1,
            enhanced_slots=row["enhanced_slots"] == 1,
            jwt=row["jwt"],
        )

    def delete(self) -> None:
        self._execute("DELETE FROM account_wide_data WHERE id = ?", (SINGLETON_ID,))
