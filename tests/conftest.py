import faulthandler
import sys
from pathlib import Path

import pytest

from flipping.database import ConnectionManager, MigrationRunner
from flipping.models import AccountData
from flipping.database.repositories import (
    AccountRepository,
    AccountWideDataRepository,
    FlippingItemRepository,
    OfferEventRepository,
    RecipeFlipRepository,
)


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def connections(tmp_path):
    """A migrated store in a temporary directory."""
    manager = ConnectionManager(tmp_path / "flipping.db")
    MigrationRunner(manager).migrate()
    yield manager
    manager.close()


@pytest.fixture
def offer_repo(connections):
    return OfferEventRepository(connections)


@pytest.fixture
def item_repo(connections, offer_repo):
    return FlippingItemRepository(connections, offer_repo)


@pytest.fixture
def recipe_repo(connections, offer_repo):
    return RecipeFlipRepository(connections, offer_repo)


@pytest.fixture
def account_repo(connections, item_repo, recipe_repo, offer_repo):
    return AccountRepository(connections, item_repo, recipe_repo, offer_repo)


@pytest.fixture
def account_wide_repo(connections):
    return AccountWideDataRepository(connections)


@pytest.fixture
def account_row(account_repo):
    """An empty account named Zez, for tests of the child tables."""
    account_repo.insert("Zez", AccountData())
    return "Zez"


# =============================================================================
# Harness hooks
# =============================================================================

def pytest_collection_modifyitems(config, items):
    """Mark tests by location: tests/unit -> unit, everything else -> integration."""
    for item in items:
        path = Path(str(item.fspath)).as_posix()
        if "/tests/unit/" in path:
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


def pytest_sessionstart(session):  # pragma: no cover - test harness init
    """Dump all thread stacks to stderr when a test hangs (pytest-timeout)."""
    faulthandler.enable(file=sys.stderr, all_threads=True)
