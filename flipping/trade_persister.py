"""
Entry point to the trade store for a host application.

TradePersister owns the connection and the repositories for one data
directory. Reads never raise: a storage failure is logged and an empty or
default aggregate is returned so the caller always gets something usable.
Writes raise StorageError so the caller can tell the user and retry.

Usage:
    with TradePersister() as persister:
        persister.setup()
        data = persister.load_account("Zez")
        ...
        persister.save_account("Zez", data)
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from flipping.config import JSON_EXTENSION, StoreConfig
from flipping.csv_export import export_trades_to_csv
from flipping.database.connection import ConnectionManager
from flipping.database.errors import MigrationError, StorageError
from flipping.database.legacy_converter import ConversionReport, LegacyConverter
from flipping.database.migrations import MigrationRunner
from flipping.database.repositories import (
    AccountRepository,
    AccountWideDataRepository,
    FlippingItemRepository,
    OfferEventRepository,
    RecipeFlipRepository,
)
from flipping.models import AccountData, AccountWideData, FlippingItem

logger = logging.getLogger(__name__)


class TradePersister:
    """Loads and stores account data for one data directory."""

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Args:
            data_dir: Data directory; defaults to ~/.runelite/flipping
        """
        self.config = StoreConfig.from_data_dir(data_dir)
        self.connections = ConnectionManager(self.config.db_path)

        self.offers = OfferEventRepository(self.connections)
        self.items = FlippingItemRepository(self.connections, self.offers)
        self.recipes = RecipeFlipRepository(self.connections, self.offers)
        self.accounts = AccountRepository(
            self.connections, self.items, self.recipes, self.offers
        )
        self.account_wide = AccountWideDataRepository(self.connections)

        self.migrator = MigrationRunner(self.connections)
        self.converter = LegacyConverter(
            self.config.data_dir, self.accounts, self.account_wide
        )

    @property
    def data_dir(self) -> Path:
        return self.config.data_dir

    # ----------------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------------

    def setup(self) -> ConversionReport:
        """
        Prepare the store: create the data directory, bring the schema up to
        date, then convert any legacy JSON documents.

        Returns:
            Report of the legacy conversion (empty when nothing was converted)

        Raises:
            MigrationError: If the schema cannot be migrated
            StorageError: If the directory or the conversion fails
        """
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Unable to create data directory {self.data_dir}") from exc

        try:
            self.migrator.migrate()
        except sqlite3.Error as exc:
            raise MigrationError(f"Schema migration failed: {exc}") from exc

        try:
            return self.converter.run()
        except (sqlite3.Error, OSError) as exc:
            logger.error(f"Legacy JSON conversion failed: {exc}")
            raise StorageError("Failed to convert legacy JSON documents") from exc

    def close(self) -> None:
        self.connections.close()

    def __enter__(self) -> "TradePersister":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ----------------------------------------------------------------------
    # Reads
    # ----------------------------------------------------------------------

    def load_all_accounts(self) -> Dict[str, AccountData]:
        try:
            return self.accounts.find_all()
        except (sqlite3.Error, ValueError):
            logger.exception("Failed to load accounts from database")
            return {}

    def load_account(self, display_name: str) -> AccountData:
        """Load one account, or a fresh AccountData if it is missing or unreadable."""
        logger.debug(f"Loading data for {display_name}")
        try:
            data = self.accounts.find_by_name(display_name)
        except (sqlite3.Error, ValueError):
            logger.exception(f"Failed to load account data for {display_name}")
            return AccountData()

        if data is None:
            logger.debug(f"No data found for {display_name}, returning new AccountData")
            return AccountData()
        return data

    def load_account_wide_data(self) -> AccountWideData:
        try:
            return self.account_wide.load()
        except (sqlite3.Error, KeyError, TypeError, ValueError):
            logger.exception("Failed to load account wide data")
            return AccountWideData()

    def account_names(self) -> List[str]:
        """Names of all stored accounts, sorted. Empty on storage failure."""
        try:
            return self.accounts.find_all_account_names()
        except sqlite3.Error:
            logger.exception("Failed to list accounts")
            return []

    # ----------------------------------------------------------------------
    # Writes
    # ----------------------------------------------------------------------

    def save_account(self, display_name: str, data: AccountData) -> None:
        """
        Store a whole account and stamp its last_stored_at.

        Raises:
            StorageError: If the write fails; nothing of it is kept
        """
        data.last_stored_at = datetime.now(timezone.utc)
        try:
            self.accounts.save(display_name, data)
        except sqlite3.Error as exc:
            logger.error(f"Failed to write data for {display_name}: {exc}")
            raise StorageError(f"Failed to save account {display_name}") from exc

    def save_account_wide_data(self, data: AccountWideData) -> None:
        try:
            self.account_wide.save(data)
        except sqlite3.Error as exc:
            logger.error(f"Failed to write account wide data: {exc}")
            raise StorageError("Failed to save account wide data") from exc

    def write(self, display_name: str, data: Union[AccountData, AccountWideData]) -> None:
        """Store either kind of data; display_name is ignored for account-wide data."""
        logger.debug(f"Writing to database for {display_name}")
        if isinstance(data, AccountData):
            self.save_account(display_name, data)
        elif isinstance(data, AccountWideData):
            self.save_account_wide_data(data)
        else:
            raise TypeError(f"Cannot store data of type {type(data).__name__}")

    def delete_account(self, display_name: str) -> None:
        try:
            self.accounts.delete(display_name)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to delete account {display_name}") from exc

    # ----------------------------------------------------------------------
    # Misc
    # ----------------------------------------------------------------------

    def export_to_csv(
        self, path: Path, trades: Iterable[FlippingItem], interval_name: str
    ) -> int:
        return export_trades_to_csv(path, trades, interval_name)

    def last_modified(self, file_name: str) -> float:
        """
        Modification time (seconds since the epoch) of a legacy document, or
        of the database file for any other name. 0.0 if it does not exist.
        """
        if file_name.endswith(JSON_EXTENSION):
            path = self.data_dir / file_name
        else:
            path = self.config.db_path
        try:
            return path.stat().st_mtime
        except FileNotFoundError:
            return 0.0
