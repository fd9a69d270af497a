"""
Tests for flipping/database/repositories/account_wide_data_repository.py
"""
import json

import pytest

from flipping.models import AccountWideData, Recipe

pytestmark = pytest.mark.unit


def _sample() -> AccountWideData:
    return AccountWideData(
        options=[{"key": "ge", "property": "margin", "value": 5}],
        sections=[{"name": "Important", "defaultExpanded": True}],
        local_recipes=[Recipe(name="Glory combine", inputs={1704: 2}, outputs={4151: 1})],
        should_make_new_additions=False,
        enhanced_slots=False,
        jwt="token-123",
    )


class TestAccountWideData:
    """Tests for save, load and delete."""

    def test_load_without_row_returns_defaults(self, account_wide_repo):
        assert account_wide_repo.load() == AccountWideData()

    def test_round_trip(self, account_wide_repo):
        data = _sample()

        account_wide_repo.save(data)

        assert account_wide_repo.load() == data

    def test_save_twice_keeps_singleton(self, account_wide_repo, connections):
        account_wide_repo.save(_sample())
        updated = AccountWideData(jwt="newer")
        account_wide_repo.save(updated)

        count = connections.get_connection().execute(
            "SELECT COUNT(*) FROM account_wide_data"
        ).fetchone()[0]
        assert count == 1
        assert account_wide_repo.load() == updated

    def test_null_blobs_become_empty_lists(self, account_wide_repo, connections):
        connections.get_connection().execute(
            "INSERT INTO account_wide_data (id, enhanced_slots) VALUES (1, 0)"
        )

        data = account_wide_repo.load()

        assert data.options == []
        assert data.sections == []
        assert data.local_recipes == []
        assert data.enhanced_slots is False
        assert data.jwt is None

    def test_unversioned_blob_accepted(self, account_wide_repo, connections):
        connections.get_connection().execute(
            "INSERT INTO account_wide_data (id, options_json) VALUES (1, ?)",
            (json.dumps([{"key": "x"}]),),
        )

        assert account_wide_repo.load().options == [{"key": "x"}]

    def test_blobs_stored_with_version(self, account_wide_repo, connections):
        account_wide_repo.save(_sample())

        row = connections.get_connection().execute(
            "SELECT options_json FROM account_wide_data"
        ).fetchone()
        assert json.loads(row["options_json"])["version"] == 1

    def test_delete(self, account_wide_repo):
        account_wide_repo.save(_sample())

        account_wide_repo.delete()

        assert account_wide_repo.load() == AccountWideData()
