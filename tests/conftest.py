"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from divtrack.core.events import EventBus
from divtrack.core.models import CardPrice, PriceSnapshot, SourcePrices
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.pricing.client import PriceClient
from divtrack.pricing.snapshot_cache import SnapshotCache
from divtrack.session.manager import SessionManager


class FakeClock:
    """Controllable time source."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_snapshot(deck_cost: float = 3.0) -> PriceSnapshot:
    """Snapshot with two priced cards under both sources."""
    return PriceSnapshot(
        timestamp=datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc),
        stacked_deck_chaos_cost=deck_cost,
        exchange=SourcePrices(
            chaos_to_divine_ratio=200.0,
            card_prices={
                "The Doctor": CardPrice(chaos_value=1200.0, divine_value=6.0, stack_size=8),
                "Rain of Chaos": CardPrice(chaos_value=1.5, divine_value=0.0075),
            },
        ),
        stash=SourcePrices(
            chaos_to_divine_ratio=190.0,
            card_prices={
                "The Doctor": CardPrice(chaos_value=1100.0, divine_value=5.8),
                "Rain of Chaos": CardPrice(chaos_value=1.0, divine_value=0.005),
            },
        ),
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def db(tmp_path):
    """Create a temporary database."""
    database = Database(tmp_path / "test.db")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def repo(db):
    return Repository(db)


@pytest.fixture
def price_client():
    """Mock pricing service client returning a fresh snapshot per call."""
    client = Mock(spec=PriceClient)
    client.fetch_price_snapshot.side_effect = lambda game, league: make_snapshot()
    return client


@pytest.fixture
def event_bus():
    return EventBus(synchronous=True)


@pytest.fixture
def snapshot_cache(db, price_client, event_bus, clock):
    cache = SnapshotCache(db, price_client, event_bus=event_bus, clock=clock)
    yield cache
    cache.stop_all()


@pytest.fixture
def manager(db, snapshot_cache, event_bus, clock):
    """Initialized session manager. The debounce window is long so writes only happen on flush."""
    session_manager = SessionManager(
        db, snapshot_cache, event_bus=event_bus, clock=clock, dedup_flush_delay=60.0
    )
    session_manager.initialize()
    yield session_manager
    session_manager.shutdown()


@pytest.fixture
def snapshot_factory():
    return make_snapshot
