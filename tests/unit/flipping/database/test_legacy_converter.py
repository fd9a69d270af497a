"""
Tests for flipping/database/legacy_converter.py

Tests document discovery, per-file isolation, backups, the completion marker
and safe retries.
"""
import json
import sqlite3
from unittest.mock import patch

import pytest

from flipping.config import StoreConfig
from flipping.database.legacy_converter import ConversionState, LegacyConverter
from flipping.models import AccountWideData
from tests.conftest_utils import make_full_account

pytestmark = pytest.mark.unit


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "flipping"
    path.mkdir()
    return path


@pytest.fixture
def converter(data_dir, account_repo, account_wide_repo):
    return LegacyConverter(data_dir, account_repo, account_wide_repo)


def _write(path, document):
    path.write_text(json.dumps(document), encoding="utf-8")


def _count(connections, table):
    return connections.get_connection().execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class TestCheck:
    """Tests for check / needs_conversion."""

    def test_empty_directory_is_up_to_date(self, converter):
        assert converter.check() == ConversionState.UP_TO_DATE

    def test_initial_state(self, converter):
        assert converter.state == ConversionState.NEEDS_CHECK

    def test_documents_need_migration(self, converter, data_dir):
        _write(data_dir / "Zez.json", {})
        assert converter.check() == ConversionState.NEEDS_MIGRATION
        assert converter.needs_conversion()

    def test_marker_wins(self, converter, data_dir):
        _write(data_dir / "Zez.json", {})
        (data_dir / ".sqlite_migrated").touch()

        assert converter.check() == ConversionState.UP_TO_DATE

    def test_excluded_files_ignored(self, converter, data_dir):
        """Backups, special files and the old single-file format are not documents."""
        for name in ["Zez.backup.json", "Zez.pre_sqlite.backup.json",
                     "tracking.special.json", "trades.json", "notes.txt"]:
            _write(data_dir / name, {})

        assert converter.find_documents() == []
        assert converter.check() == ConversionState.UP_TO_DATE

    def test_missing_directory(self, tmp_path, account_repo, account_wide_repo):
        converter = LegacyConverter(tmp_path / "absent", account_repo, account_wide_repo)
        assert converter.check() == ConversionState.UP_TO_DATE

    def test_marker_path_comes_from_store_config(self, converter, data_dir):
        assert converter.marker_path == StoreConfig.from_data_dir(data_dir).marker_path


class TestConvert:
    """Tests for convert / run."""

    def test_converts_account_document(self, converter, data_dir, account_repo):
        data = make_full_account()
        _write(data_dir / "Zez.json", data.to_dict())

        report = converter.run()

        assert report.converted_accounts == ["Zez"]
        assert account_repo.find_by_name("Zez") == data
        assert converter.state == ConversionState.DONE

    def test_converts_account_wide_document(self, converter, data_dir, account_wide_repo):
        wide = AccountWideData(options=[{"key": "a"}], jwt="t")
        _write(data_dir / "accountwide.json", wide.to_dict())

        report = converter.run()

        assert report.account_wide_converted
        assert report.converted_accounts == []
        assert account_wide_repo.load() == wide

    def test_writes_marker_and_backups(self, converter, data_dir):
        source = data_dir / "Zez.json"
        _write(source, make_full_account().to_dict())

        converter.run()

        backup = data_dir / "Zez.pre_sqlite.backup.json"
        assert (data_dir / ".sqlite_migrated").exists()
        assert (data_dir / ".sqlite_migrated").stat().st_size == 0
        assert source.exists()
        assert backup.read_bytes() == source.read_bytes()

    def test_existing_backup_not_overwritten(self, converter, data_dir):
        backup = data_dir / "Zez.pre_sqlite.backup.json"
        backup.write_text("older backup", encoding="utf-8")
        _write(data_dir / "Zez.json", {})

        converter.run()

        assert backup.read_text(encoding="utf-8") == "older backup"

    def test_malformed_documents_skipped(self, converter, data_dir, account_repo):
        """Bad files are isolated; the good one converts and the marker is written."""
        (data_dir / "Broken.json").write_text("{not json", encoding="utf-8")
        _write(data_dir / "Listy.json", [1, 2, 3])
        _write(data_dir / "NoItemId.json", {"trades": [{"itemName": "x"}]})
        _write(data_dir / "BadSlot.json", {"lastOffers": {"9": {}}})
        _write(data_dir / "Twice.json", {"trades": [{"itemId": 4151}, {"itemId": 4151}]})
        _write(data_dir / "Zez.json", make_full_account().to_dict())

        report = converter.run()

        assert report.converted_accounts == ["Zez"]
        assert sorted(report.skipped_files) == [
            "BadSlot.json", "Broken.json", "Listy.json", "NoItemId.json", "Twice.json"
        ]
        assert account_repo.find_all_account_names() == ["Zez"]
        assert (data_dir / ".sqlite_migrated").exists()
        assert not (data_dir / "Broken.pre_sqlite.backup.json").exists()

    def test_second_run_performs_no_inserts(self, converter, data_dir, connections):
        """With the marker present, documents left in place are not re-read."""
        _write(data_dir / "Zez.json", make_full_account().to_dict())
        converter.run()
        before = {t: _count(connections, t) for t in ["flipping_item", "offer_event", "recipe_flip"]}

        with patch.object(converter, "_convert_account") as convert_account:
            report = converter.run()

        convert_account.assert_not_called()
        assert report.converted_count == 0
        assert {t: _count(connections, t) for t in before} == before

    def test_storage_error_aborts_without_marker(self, converter, data_dir, account_repo):
        _write(data_dir / "Zez.json", make_full_account().to_dict())

        with patch.object(account_repo, "save", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(sqlite3.OperationalError):
                converter.run()

        assert not (data_dir / ".sqlite_migrated").exists()
        assert converter.needs_conversion()

    def test_retry_after_partial_run_does_not_duplicate(
        self, converter, data_dir, account_repo, connections
    ):
        """A run that died after converting one account can simply be rerun."""
        alpha = make_full_account()
        zez = make_full_account()
        _write(data_dir / "Alpha.json", alpha.to_dict())
        _write(data_dir / "Zez.json", zez.to_dict())

        real_save = account_repo.save

        def fail_on_zez(name, data):
            if name == "Zez":
                raise sqlite3.OperationalError("database is locked")
            real_save(name, data)

        with patch.object(account_repo, "save", side_effect=fail_on_zez):
            with pytest.raises(sqlite3.OperationalError):
                converter.run()

        report = converter.run()

        assert report.converted_accounts == ["Alpha", "Zez"]
        assert account_repo.find_by_name("Alpha") == alpha
        assert account_repo.find_by_name("Zez") == zez
        assert _count(connections, "flipping_item") == 4
        assert _count(connections, "recipe_flip") == 2
