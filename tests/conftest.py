"""Shared fixtures: SQLite-backed storage and a controllable clock."""

import pytest
import pytest_asyncio

from signal_app.services import SignalLifecycleManager
from signal_app.storage import Database, SignalRepository, TradeRepository
from tests.factories import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh SQLite database per test."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'signals.db'}")
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def signal_repo(db):
    return SignalRepository(db)


@pytest.fixture
def trade_repo(db):
    return TradeRepository(db)


@pytest.fixture
def lifecycle(signal_repo, trade_repo, clock):
    return SignalLifecycleManager(signal_repo, trade_repo, clock=clock)
