"""
One-time conversion of the flat JSON documents into the SQLite store.

Before the relational store existed every account was kept as
``<display name>.json`` in the data directory, with the shared preferences in
``accountwide.json``. The converter loads each of those documents into the
repositories exactly once per installation:

- A zero-byte marker file records that the conversion has run; once it
  exists the converter does nothing.
- Each document is written through the repositories' upsert paths inside its
  own transaction, so a run interrupted by a storage error can simply be
  retried without duplicating items or recipe flips.
- Unreadable or malformed documents are logged and skipped; the rest of the
  run continues.
- Originals are never deleted. A ``.pre_sqlite.backup.json`` copy is taken
  after each successful write (an existing backup is left untouched).
"""
from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List

from flipping.config import (
    ACCOUNT_WIDE_FILE,
    BACKUP_SUFFIX,
    JSON_EXTENSION,
    OLD_TRADES_FILE,
    PRE_SQLITE_BACKUP_INFIX,
    SPECIAL_SUFFIX,
    StoreConfig,
)
from flipping.database.repositories import AccountRepository, AccountWideDataRepository
from flipping.models import AccountData, AccountWideData

logger = logging.getLogger(__name__)


class ConversionState(Enum):
    """Where the converter is in its check/convert cycle."""

    NEEDS_CHECK = "needs_check"
    UP_TO_DATE = "up_to_date"
    NEEDS_MIGRATION = "needs_migration"
    DONE = "done"


@dataclass
class ConversionReport:
    """Outcome of a conversion run."""

    converted_accounts: List[str] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)
    account_wide_converted: bool = False

    @property
    def converted_count(self) -> int:
        return len(self.converted_accounts) + int(self.account_wide_converted)

    def __str__(self) -> str:
        parts = [f"{len(self.converted_accounts)} accounts converted"]
        if self.account_wide_converted:
            parts.append("account-wide data converted")
        if self.skipped_files:
            parts.append(f"skipped: {', '.join(self.skipped_files)}")
        return "; ".join(parts)


class LegacyConverter:
    """
    Converts legacy JSON documents in a data directory.

    Usage:
        converter = LegacyConverter(data_dir, accounts, account_wide)
        report = converter.run()   # empty report when there was nothing to do
    """

    def __init__(
        self,
        data_dir: Path,
        account_repository: AccountRepository,
        account_wide_repository: AccountWideDataRepository,
    ):
        self.config = StoreConfig.from_data_dir(data_dir)
        self.data_dir = self.config.data_dir
        self._accounts = account_repository
        self._account_wide = account_wide_repository
        self.state = ConversionState.NEEDS_CHECK

    @property
    def marker_path(self) -> Path:
        return self.config.marker_path

    def find_documents(self) -> List[Path]:
        """List convertible documents, sorted by name."""
        if not self.data_dir.is_dir():
            return []

        documents = []
        for path in sorted(self.data_dir.iterdir()):
            name = path.name
            if not path.is_file() or not name.endswith(JSON_EXTENSION):
                continue
            if name.endswith(BACKUP_SUFFIX) or name.endswith(SPECIAL_SUFFIX):
                continue
            if name == OLD_TRADES_FILE:
                continue
            documents.append(path)
        return documents

    def check(self) -> ConversionState:
        """Decide whether a conversion is needed and record the answer in state."""
        if self.marker_path.exists():
            logger.debug("Legacy conversion marker present; nothing to convert")
            self.state = ConversionState.UP_TO_DATE
        elif not self.find_documents():
            self.state = ConversionState.UP_TO_DATE
        else:
            self.state = ConversionState.NEEDS_MIGRATION
        return self.state

    def needs_conversion(self) -> bool:
        return self.check() == ConversionState.NEEDS_MIGRATION

    def convert(self) -> ConversionReport:
        """
        Convert every document and write the completion marker.

        Raises:
            sqlite3.Error: If the store fails; the marker is not written and
                documents converted so far stay committed
            OSError: If a backup or the marker cannot be written
        """
        documents = self.find_documents()
        logger.info(f"Starting legacy JSON conversion of {len(documents)} documents")

        report = ConversionReport()
        for path in documents:
            if path.name == ACCOUNT_WIDE_FILE:
                if self._convert_account_wide(path):
                    report.account_wide_converted = True
                else:
                    report.skipped_files.append(path.name)
            elif self._convert_account(path):
                report.converted_accounts.append(path.name[: -len(JSON_EXTENSION)])
            else:
                report.skipped_files.append(path.name)

        self.marker_path.touch()
        self.state = ConversionState.DONE
        logger.info(f"Legacy JSON conversion completed: {report}")
        return report

    def run(self) -> ConversionReport:
        """Check, then convert if needed. Returns an empty report when up to date."""
        if self.check() != ConversionState.NEEDS_MIGRATION:
            return ConversionReport()
        return self.convert()

    def _read_document(self, path: Path) -> Any:
        """Parse a document, returning None (after logging) if it cannot be read."""
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning(f"Could not read legacy document {path.name}: {exc}")
            return None

    def _convert_account(self, path: Path) -> bool:
        display_name = path.name[: -len(JSON_EXTENSION)]
        document = self._read_document(path)
        if document is None:
            return False

        try:
            data = AccountData.from_dict(document)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Skipping malformed account document {path.name}: {exc}")
            return False

        self._accounts.save(display_name, data)
        logger.debug(
            f"Converted account {display_name}: {len(data.trades)} items, "
            f"{len(data.recipe_flip_groups)} recipe groups"
        )
        self._backup(path)
        return True

    def _convert_account_wide(self, path: Path) -> bool:
        document = self._read_document(path)
        if document is None:
            return False

        try:
            data = AccountWideData.from_dict(document)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Skipping malformed account-wide document {path.name}: {exc}")
            return False

        self._account_wide.save(data)
        logger.debug("Converted account-wide data")
        self._backup(path)
        return True

    def _backup(self, path: Path) -> None:
        stem = path.name[: -len(JSON_EXTENSION)]
        backup = path.with_name(stem + PRE_SQLITE_BACKUP_INFIX + BACKUP_SUFFIX)
        if backup.exists():
            logger.debug(f"Backup {backup.name} already exists; leaving it")
            return
        shutil.copy2(path, backup)
        logger.debug(f"Created backup: {backup.name}")
