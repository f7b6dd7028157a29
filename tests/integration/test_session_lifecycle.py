"""Integration tests for a full farming session over a real database."""

import time
from unittest.mock import Mock

import pytest

from divtrack.core import events
from divtrack.core.events import EventBus
from divtrack.core.models import GameType
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.pricing.client import PriceClient
from divtrack.pricing.snapshot_cache import SnapshotCache
from divtrack.session.manager import SessionManager

CARDS = ["The Doctor", "Rain of Chaos", "Rain of Chaos", "The Wolf", "Rain of Chaos"]


@pytest.fixture
def test_env(tmp_path, snapshot_factory, clock):
    """Factory for managers over the same database file, as after a process restart."""
    db_path = tmp_path / "lifecycle.db"
    client = Mock(spec=PriceClient)
    client.fetch_price_snapshot.side_effect = lambda game, league: snapshot_factory()
    opened = []

    def start_process():
        db = Database(db_path)
        db.connect()
        bus = EventBus(synchronous=True)
        cache = SnapshotCache(db, client, event_bus=bus, clock=clock)
        manager = SessionManager(db, cache, event_bus=bus, clock=clock, dedup_flush_delay=0.05)
        manager.initialize()
        opened.append((db, manager))
        return db, manager, bus

    yield start_process, client

    for db, manager in opened:
        manager.shutdown()
        db.close()


class TestSessionLifecycle:
    def test_full_session(self, test_env, clock):
        start_process, client = test_env
        db, manager, bus = start_process()
        repo = Repository(db)
        updates = []
        bus.subscribe(events.SESSION_DATA_UPDATED, updates.append)

        info = manager.start_session(GameType.POE1, "Settlers")
        for i, card in enumerate(CARDS):
            manager.add_card(GameType.POE1, card, f"evt-{i}")
        # Overlapping re-read of the log replays the last two events
        manager.add_card(GameType.POE1, CARDS[3], "evt-3")
        manager.add_card(GameType.POE1, CARDS[4], "evt-4")

        clock.advance(hours=1)
        result = manager.stop_session(GameType.POE1)

        assert result.total_count == 5
        assert result.duration_ms == 3600 * 1000
        assert len(updates) == 5

        cards = {c.card_name: c.count for c in repo.get_session_cards(info.session_id)}
        assert cards == {"The Doctor": 1, "Rain of Chaos": 3, "The Wolf": 1}

        summary = repo.get_summary(info.session_id)
        assert summary.duration_minutes == 60
        # The Wolf is unpriced
        assert summary.total_exchange_value == pytest.approx(1200.0 + 3 * 1.5)
        assert summary.total_exchange_net_profit == pytest.approx(1204.5 - 15.0)

        assert repo.get_global_stat("totalStackedDecksOpened") == 5
        assert repo.load_processed_ids(GameType.POE1) == [f"evt-{i}" for i in range(5)]
        assert client.fetch_price_snapshot.call_count == 1

    def test_restart_after_crash(self, test_env, clock):
        start_process, _ = test_env
        _, manager, _ = start_process()

        info = manager.start_session(GameType.POE1, "Settlers")
        manager.add_card(GameType.POE1, "The Doctor", "evt-1")
        # Let the debounced processed-id write land, as it would before a crash
        manager.shutdown()

        # New process over the same file; the old one never stopped
        db, restarted, _ = start_process()
        repo = Repository(db)

        assert not restarted.is_session_active(GameType.POE1)
        assert repo.get_session(info.session_id).is_active is False

        restarted.start_session(GameType.POE1, "Settlers")
        assert restarted.add_card(GameType.POE1, "The Doctor", "evt-1") is False
        assert restarted.add_card(GameType.POE1, "The Doctor", "evt-2") is True

    def test_snapshot_reused_across_sessions(self, test_env, clock):
        start_process, client = test_env
        _, manager, _ = start_process()

        first = manager.start_session(GameType.POE1, "Settlers")
        manager.stop_session(GameType.POE1)
        clock.advance(hours=1)
        second = manager.start_session(GameType.POE1, "Settlers")
        manager.stop_session(GameType.POE1)

        repo = Repository(manager.db)
        assert repo.get_session(first.session_id).snapshot_id == \
            repo.get_session(second.session_id).snapshot_id
        assert client.fetch_price_snapshot.call_count == 1

    def test_debounced_write_persists_without_stop(self, test_env):
        start_process, _ = test_env
        db, manager, _ = start_process()
        repo = Repository(db)

        manager.start_session(GameType.POE2, "Dawn")
        manager.add_card(GameType.POE2, "The Doctor", "evt-1")

        deadline = time.monotonic() + 5
        while not repo.load_processed_ids(GameType.POE2) and time.monotonic() < deadline:
            time.sleep(0.01)

        assert repo.load_processed_ids(GameType.POE2) == ["evt-1"]
