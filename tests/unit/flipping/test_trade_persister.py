"""
Tests for flipping/trade_persister.py

Tests setup, degraded reads and StorageError on writes.
"""
import json
import sqlite3
from unittest.mock import patch

import pytest

from flipping.database import SCHEMA_VERSION, MigrationError, StorageError
from flipping.models import AccountData, AccountWideData, OfferState
from flipping.trade_persister import TradePersister
from tests.conftest_utils import make_full_account, make_item, make_offer

pytestmark = pytest.mark.unit


@pytest.fixture
def persister(tmp_path):
    persister = TradePersister(tmp_path / "flipping")
    persister.setup()
    yield persister
    persister.close()


class TestSetup:
    """Tests for setup."""

    def test_creates_directory_and_schema(self, tmp_path):
        data_dir = tmp_path / "new" / "flipping"
        with TradePersister(data_dir) as persister:
            report = persister.setup()

            assert data_dir.is_dir()
            assert persister.config.db_path.exists()
            assert persister.migrator.get_schema_version() == SCHEMA_VERSION
            assert report.converted_count == 0

    def test_converts_legacy_documents(self, tmp_path):
        data_dir = tmp_path / "flipping"
        data_dir.mkdir()
        data = make_full_account()
        (data_dir / "Zez.json").write_text(
            json.dumps(data.to_dict()), encoding="utf-8"
        )

        with TradePersister(data_dir) as persister:
            report = persister.setup()
            loaded = persister.load_account("Zez")

        assert report.converted_accounts == ["Zez"]
        assert loaded == data

    def test_setup_twice_is_safe(self, persister):
        persister.save_account("Zez", make_full_account())

        persister.setup()

        assert persister.account_names() == ["Zez"]

    def test_migration_failure_raises_migration_error(self, tmp_path):
        with TradePersister(tmp_path / "flipping") as persister:
            with patch.object(
                persister.migrator, "migrate", side_effect=sqlite3.OperationalError("locked")
            ):
                with pytest.raises(MigrationError):
                    persister.setup()

    def test_conversion_failure_raises_storage_error(self, tmp_path):
        data_dir = tmp_path / "flipping"
        data_dir.mkdir()
        (data_dir / "Zez.json").write_text("{}", encoding="utf-8")

        with TradePersister(data_dir) as persister:
            with patch.object(
                persister.accounts, "save", side_effect=sqlite3.OperationalError("disk full")
            ):
                with pytest.raises(StorageError):
                    persister.setup()


class TestReads:
    """Tests for load_* methods."""

    def test_load_missing_account_returns_new(self, persister):
        assert persister.load_account("Nobody") == AccountData()

    def test_load_all_accounts(self, persister):
        zez = make_full_account()
        persister.save_account("Zez", zez)

        assert persister.load_all_accounts() == {"Zez": zez}

    def test_load_failure_degrades_to_default(self, persister, caplog):
        with patch.object(
            persister.accounts, "find_by_name", side_effect=sqlite3.OperationalError("gone")
        ):
            assert persister.load_account("Zez") == AccountData()
        assert "Failed to load account data for Zez" in caplog.text

    def test_load_all_failure_returns_empty(self, persister):
        with patch.object(
            persister.accounts, "find_all", side_effect=sqlite3.DatabaseError("corrupt")
        ):
            assert persister.load_all_accounts() == {}

    def test_account_wide_failure_returns_default(self, persister):
        with patch.object(
            persister.account_wide, "load", side_effect=sqlite3.OperationalError("gone")
        ):
            assert persister.load_account_wide_data() == AccountWideData()


class TestWrites:
    """Tests for save_*, write and delete_account."""

    def test_save_stamps_last_stored_at(self, persister):
        data = AccountData()

        persister.save_account("Zez", data)

        assert data.last_stored_at is not None
        assert persister.load_account("Zez").last_stored_at == data.last_stored_at

    def test_zez_abyssal_whip(self, persister):
        offer = make_offer(4151, True, 1, 1_500_000, slot=0, state=OfferState.BOUGHT)
        data = AccountData(
            trades=[make_item(4151, "Abyssal whip", [offer])],
            last_offers={0: offer},
        )

        persister.save_account("Zez", data)
        loaded = persister.load_account("Zez")

        (reloaded,) = loaded.trades[0].history
        assert (reloaded.uuid, reloaded.price, reloaded.state) == (
            offer.uuid, 1_500_000, OfferState.BOUGHT
        )
        assert loaded.last_offers[0] is not None
        assert loaded.last_offers[0] == reloaded

    def test_write_dispatches_by_type(self, persister):
        wide = AccountWideData(jwt="abc")

        persister.write("Zez", AccountData())
        persister.write("ignored", wide)

        assert persister.account_names() == ["Zez"]
        assert persister.load_account_wide_data() == wide

    def test_write_rejects_unknown_type(self, persister):
        with pytest.raises(TypeError):
            persister.write("Zez", {"trades": []})

    def test_save_failure_raises_storage_error(self, persister):
        with patch.object(
            persister.accounts, "save", side_effect=sqlite3.OperationalError("readonly")
        ):
            with pytest.raises(StorageError) as exc_info:
                persister.save_account("Zez", AccountData())
        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)

    def test_account_wide_save_failure_raises_storage_error(self, persister):
        with patch.object(
            persister.account_wide, "save", side_effect=sqlite3.OperationalError("readonly")
        ):
            with pytest.raises(StorageError):
                persister.save_account_wide_data(AccountWideData())

    def test_delete_account(self, persister):
        persister.save_account("Zez", make_full_account())

        persister.delete_account("Zez")

        assert persister.account_names() == []


class TestMisc:
    """Tests for export_to_csv and last_modified."""

    def test_export_to_csv(self, persister, tmp_path):
        data = make_full_account()
        out = tmp_path / "out.csv"

        rows = persister.export_to_csv(out, data.trades, "All")

        assert rows == 4
        assert out.exists()

    def test_last_modified_database(self, persister):
        assert persister.last_modified("Zez") > 0

    def test_last_modified_missing_document(self, persister):
        assert persister.last_modified("Zez.json") == 0.0

    def test_last_modified_document(self, persister):
        (persister.data_dir / "Zez.json").write_text("{}", encoding="utf-8")
        assert persister.last_modified("Zez.json") > 0
