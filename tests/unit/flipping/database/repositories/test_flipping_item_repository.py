"""
Tests for flipping/database/repositories/flipping_item_repository.py

Tests item rows, natural-key lookups and the item + offers save path.
"""
import sqlite3
from datetime import timedelta

import pytest

from flipping.models import AccountData
from tests.conftest_utils import BASE_TIME, make_item, make_offer

pytestmark = pytest.mark.unit


class TestInsert:
    """Tests for insert and insert_with_offers."""

    def test_insert_returns_increasing_ids(self, item_repo, account_row):
        first = item_repo.insert(make_item(4151), account_row)
        second = item_repo.insert(make_item(1704, "Amulet of glory"), account_row)

        assert first > 0
        assert second > first

    def test_fields_round_trip(self, item_repo, account_row):
        item = make_item()
        item.favorite = True
        item.favorite_code = "3"
        item.valid_flipping_panel_item = False
        item.ge_limit_reset_time = BASE_TIME + timedelta(hours=4)
        item.items_bought_this_limit_window = 12
        item_repo.insert(item, account_row)

        assert item_repo.find_by_account_name(account_row) == [item]

    def test_duplicate_natural_key_rejected(self, item_repo, account_row):
        item_repo.insert(make_item(), account_row)
        with pytest.raises(sqlite3.IntegrityError):
            item_repo.insert(make_item(), account_row)

    def test_unknown_account_rejected(self, item_repo, account_row):
        with pytest.raises(sqlite3.IntegrityError):
            item_repo.insert(make_item(), "Nobody")

    def test_insert_with_offers(self, item_repo, account_row):
        item = make_item(history=[make_offer(minutes=0), make_offer(minutes=1)])

        item_repo.insert_with_offers(item, account_row)

        assert item_repo.find_by_account_name_with_offers(account_row) == [item]

    def test_insert_with_offers_is_atomic(self, item_repo, account_row):
        """A failing offer leaves no item row behind."""
        offer = make_offer()
        twin = make_offer(minutes=1)
        twin.uuid = offer.uuid

        with pytest.raises(sqlite3.IntegrityError):
            item_repo.insert_with_offers(make_item(history=[offer, twin]), account_row)

        assert item_repo.find_by_account_name(account_row) == []


class TestSave:
    """Tests for the upsert save path."""

    def test_save_inserts_new_item(self, item_repo, account_row):
        item = make_item(history=[make_offer()])

        item_id = item_repo.save(item, account_row)

        assert item_repo.find_id_by_account_and_item_id(account_row, 4151) == item_id

    def test_save_twice_keeps_one_row(self, item_repo, account_row):
        """The second save's values win and the surrogate id is kept."""
        first = make_item(history=[make_offer(minutes=0)])
        first_id = item_repo.save(first, account_row)

        second = make_item(history=[make_offer(minutes=3), make_offer(minutes=4)])
        second.total_ge_limit = 100
        second_id = item_repo.save(second, account_row)

        assert second_id == first_id
        assert item_repo.find_by_account_name_with_offers(account_row) == [second]

    def test_resave_with_same_offers(self, item_repo, account_row):
        """Re-saving unchanged offers does not collide on their uuids."""
        item = make_item(history=[make_offer(minutes=0), make_offer(minutes=1)])
        item_repo.save(item, account_row)
        item_repo.save(item, account_row)

        assert item_repo.find_by_account_name_with_offers(account_row) == [item]


class TestQueriesAndDelete:
    """Tests for lookups and delete_by_id."""

    def test_find_id_for_unknown_item(self, item_repo, account_row):
        assert item_repo.find_id_by_account_and_item_id(account_row, 1) is None

    def test_find_ids_by_account_name(self, item_repo, account_row):
        whip_id = item_repo.insert(make_item(4151), account_row)
        glory_id = item_repo.insert(make_item(1704, "Amulet of glory"), account_row)

        assert item_repo.find_ids_by_account_name(account_row) == {
            4151: whip_id,
            1704: glory_id,
        }

    def test_items_scoped_to_account(self, item_repo, account_repo, account_row):
        account_repo.insert("Other", AccountData())
        item_repo.insert(make_item(), "Other")

        assert item_repo.find_by_account_name(account_row) == []

    def test_delete_cascades_to_offers(self, item_repo, offer_repo, account_row):
        offer = make_offer()
        item_id = item_repo.insert_with_offers(make_item(history=[offer]), account_row)

        item_repo.delete_by_id(item_id)

        assert item_repo.find_by_account_name(account_row) == []
        assert offer_repo.find_by_uuid(offer.uuid) is None
