"""
Repository classes for the trade store.

Each repository handles one table family; AccountRepository composes the
others into the account aggregate.
"""
from flipping.database.repositories.account_repository import AccountRepository
from flipping.database.repositories.account_wide_data_repository import (
    AccountWideDataRepository,
)
from flipping.database.repositories.base_repository import BaseRepository
from flipping.database.repositories.flipping_item_repository import FlippingItemRepository
from flipping.database.repositories.offer_event_repository import OfferEventRepository
from flipping.database.repositories.recipe_flip_repository import RecipeFlipRepository

__all__ = [
    "AccountRepository",
    "AccountWideDataRepository",
    "BaseRepository",
    "FlippingItemRepository",
    "OfferEventRepository",
    "RecipeFlipRepository",
]
