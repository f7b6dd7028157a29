"""Tests for the session lifecycle manager."""

import sqlite3
import threading
from unittest.mock import patch

import pytest

from divtrack.core import events
from divtrack.core.errors import (
    AlreadyActiveError,
    NoActiveSessionError,
    PriceFetchError,
)
from divtrack.core.models import GameType, PriceSource
from divtrack.session.manager import SessionManager

POE1 = GameType.POE1
POE2 = GameType.POE2


class TestStartStop:
    def test_start_creates_active_session(self, manager, repo, snapshot_cache):
        info = manager.start_session(POE1, "Settlers")

        assert manager.is_session_active(POE1)
        assert manager.get_active_session_info(POE1) == info
        session = repo.get_session(info.session_id)
        assert session.is_active is True
        assert session.total_count == 0
        assert session.snapshot_id is not None
        assert snapshot_cache.is_auto_refreshing(POE1, "Settlers")

    def test_start_twice_fails_without_mutation(self, manager, repo):
        info = manager.start_session(POE1, "Settlers")

        with pytest.raises(AlreadyActiveError):
            manager.start_session(POE1, "Standard")

        assert manager.get_active_session_info(POE1) == info
        assert repo.count_sessions(POE1) == 1

    def test_stop_returns_result(self, manager, clock, repo, snapshot_cache):
        info = manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        clock.advance(minutes=30)

        result = manager.stop_session(POE1)

        assert result.total_count == 1
        assert result.duration_ms == 30 * 60 * 1000
        assert result.league == "Settlers"
        assert result.game == POE1
        assert not manager.is_session_active(POE1)
        assert repo.get_session(info.session_id).is_active is False
        assert not snapshot_cache.is_auto_refreshing(POE1, "Settlers")

    def test_failed_stop_keeps_session_active(self, manager, repo, snapshot_cache):
        info = manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")

        with patch.object(
            manager.repo, "insert_summary", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            with pytest.raises(sqlite3.OperationalError):
                manager.stop_session(POE1)

        session = repo.get_session(info.session_id)
        assert manager.is_session_active(POE1)
        assert session.is_active is True
        assert session.ended_at is None
        assert repo.get_summary(info.session_id) is None
        assert repo.get_recent_drops(POE1) == ["The Doctor"]
        assert snapshot_cache.is_auto_refreshing(POE1, "Settlers")

        assert manager.add_card(POE1, "Rain of Chaos", "e2") is True
        assert manager.stop_session(POE1).total_count == 2
        assert repo.get_session(info.session_id).is_active is False

    def test_start_during_stop_keeps_auto_refresh(self, manager, snapshot_cache):
        manager.start_session(POE1, "Settlers")
        stop_refresh = snapshot_cache.stop_auto_refresh
        racers = []

        def stop_while_start_races(game, league):
            racer = threading.Thread(target=manager.start_session, args=(game, league))
            racer.start()
            racers.append(racer)
            racer.join(timeout=0.2)
            return stop_refresh(game, league)

        with patch.object(snapshot_cache, "stop_auto_refresh", side_effect=stop_while_start_races):
            manager.stop_session(POE1)
            racers[0].join(timeout=5)

        assert not racers[0].is_alive()
        assert manager.is_session_active(POE1)
        assert snapshot_cache.is_auto_refreshing(POE1, "Settlers")

    def test_stop_when_inactive_fails(self, manager):
        with pytest.raises(NoActiveSessionError):
            manager.stop_session(POE1)

    def test_add_card_when_inactive_fails(self, manager):
        with pytest.raises(NoActiveSessionError):
            manager.add_card(POE1, "The Doctor", "e1")

    def test_price_failure_leaves_no_session(self, manager, price_client, repo):
        price_client.fetch_price_snapshot.side_effect = PriceFetchError("down")

        with pytest.raises(PriceFetchError):
            manager.start_session(POE1, "Settlers")

        assert not manager.is_session_active(POE1)
        assert repo.count_sessions(POE1) == 0

    def test_games_are_independent(self, manager):
        manager.start_session(POE1, "Settlers")
        manager.start_session(POE2, "Dawn")

        manager.add_card(POE1, "The Doctor", "e1")
        manager.stop_session(POE2)

        assert manager.is_session_active(POE1)
        assert manager.get_current_session(POE1)["total_count"] == 1


class TestAddCard:
    def test_duplicate_event_counted_once(self, manager, repo):
        info = manager.start_session(POE1, "Settlers")

        assert manager.add_card(POE1, "The Doctor", "e1") is True
        assert manager.add_card(POE1, "The Doctor", "e1") is False

        cards = repo.get_session_cards(info.session_id)
        assert len(cards) == 1
        assert cards[0].count == 1
        assert repo.get_session_total(info.session_id) == 1
        assert repo.get_global_stat("totalStackedDecksOpened") == 1

    def test_dedup_survives_stop_start(self, manager):
        manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        manager.stop_session(POE1)

        manager.start_session(POE1, "Settlers")
        assert manager.add_card(POE1, "The Doctor", "e1") is False
        assert manager.get_current_session(POE1)["total_count"] == 0

    def test_dedup_survives_restart(self, manager, db, snapshot_cache, clock):
        manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        manager.stop_session(POE1)

        restarted = SessionManager(db, snapshot_cache, clock=clock, dedup_flush_delay=60.0)
        restarted.initialize()
        restarted.start_session(POE1, "Settlers")
        try:
            assert restarted.add_card(POE1, "The Doctor", "e1") is False
        finally:
            restarted.stop_session(POE1)

    def test_recent_drops_newest_first(self, manager, clock):
        manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "Rain of Chaos", "e1")
        clock.advance(seconds=1)
        manager.add_card(POE1, "The Doctor", "e2")

        current = manager.get_current_session(POE1)
        assert current["recent_drops"] == ["The Doctor", "Rain of Chaos"]

    def test_recent_drops_cleared_on_stop(self, manager, repo):
        manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        manager.stop_session(POE1)
        assert repo.get_recent_drops(POE1) == []

    def test_processed_ids_exposed(self, manager):
        manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        assert "e1" in manager.get_all_processed_ids(POE1)


class TestCurrentSession:
    def test_totals_for_two_cards(self, manager):
        manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        manager.add_card(POE1, "Rain of Chaos", "e2")

        current = manager.get_current_session(POE1)

        assert current["league"] == "Settlers"
        assert current["total_count"] == 2
        assert current["totals"]["exchange"]["total_value"] == pytest.approx(1201.5)
        assert current["totals"]["exchange"]["net_profit"] == pytest.approx(1195.5)
        assert current["price_snapshot"]["stacked_deck_chaos_cost"] == 3.0
        assert current["ended_at"] is None
        assert {card["name"] for card in current["cards"]} == {"The Doctor", "Rain of Chaos"}

    def test_none_when_inactive(self, manager):
        assert manager.get_current_session(POE1) is None
        assert manager.get_active_session_info(POE1) is None


class TestVisibility:
    def test_hide_current_removes_value(self, manager):
        manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        manager.add_card(POE1, "Rain of Chaos", "e2")

        assert manager.update_card_price_visibility(
            POE1, "current", PriceSource.EXCHANGE, "The Doctor", True
        )

        current = manager.get_current_session(POE1)
        assert current["totals"]["exchange"]["total_value"] == pytest.approx(1.5)
        assert current["totals"]["stash"]["total_value"] == pytest.approx(1101.0)
        assert current["total_count"] == 2

    def test_current_without_active_session(self, manager):
        with pytest.raises(NoActiveSessionError):
            manager.update_card_price_visibility(
                POE1, "current", PriceSource.EXCHANGE, "The Doctor", True
            )

    def test_explicit_session_id(self, manager, repo):
        info = manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        manager.stop_session(POE1)

        assert manager.update_card_price_visibility(
            POE1, info.session_id, PriceSource.STASH, "The Doctor", True
        )
        assert repo.get_session_cards(info.session_id)[0].hide_price_stash is True


class TestSummary:
    def test_summary_written_on_stop(self, manager, repo, clock):
        info = manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        manager.add_card(POE1, "Rain of Chaos", "e2")
        clock.advance(minutes=10, seconds=40)
        manager.stop_session(POE1)

        summary = repo.get_summary(info.session_id)
        assert summary.duration_minutes == 11
        assert summary.total_decks_opened == 2
        assert summary.total_exchange_value == pytest.approx(1201.5)
        assert summary.total_exchange_net_profit == pytest.approx(1195.5)
        assert summary.exchange_chaos_to_divine == 200.0
        assert summary.stacked_deck_chaos_cost == 3.0

    def test_summary_skipped_without_snapshot(self, manager, repo):
        info = manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")
        repo.delete_snapshot(repo.get_session(info.session_id).snapshot_id)

        result = manager.stop_session(POE1)

        assert result.total_count == 1
        assert repo.get_summary(info.session_id) is None
        assert repo.db.fetchone("SELECT COUNT(*) AS n FROM session_summaries")["n"] == 0


class TestInitialize:
    def test_sweep_deactivates_orphans(self, manager, db, snapshot_cache, clock, repo):
        info = manager.start_session(POE1, "Settlers")
        manager.add_card(POE1, "The Doctor", "e1")

        # Simulate a crash: a new manager over the same database
        restarted = SessionManager(db, snapshot_cache, clock=clock)
        assert restarted.initialize() == 1

        assert not restarted.is_session_active(POE1)
        assert repo.get_session(info.session_id).is_active is False
        assert repo.get_recent_drops(POE1) == []
        assert restarted.initialize() == 0


class TestNotifications:
    def test_state_changes_published(self, manager, event_bus):
        received = []
        event_bus.subscribe(events.SESSION_STATE_CHANGED, received.append)

        manager.start_session(POE1, "Settlers")
        manager.stop_session(POE1)

        assert [p["is_active"] for p in received] == [True, False]
        assert received[0]["session_info"]["league"] == "Settlers"
        assert received[1]["session_info"] is None

    def test_data_update_published_on_accept_only(self, manager, event_bus):
        received = []
        event_bus.subscribe(events.SESSION_DATA_UPDATED, received.append)
        manager.start_session(POE1, "Settlers")

        manager.add_card(POE1, "The Doctor", "e1")
        manager.add_card(POE1, "The Doctor", "e1")

        assert len(received) == 1
        assert received[0]["game"] == "poe1"
        assert received[0]["data"]["total_count"] == 1

    def test_failing_subscriber_does_not_break_add(self, manager, event_bus):
        def boom(payload):
            raise RuntimeError("subscriber bug")

        event_bus.subscribe(events.SESSION_DATA_UPDATED, boom)
        manager.start_session(POE1, "Settlers")

        assert manager.add_card(POE1, "The Doctor", "e1") is True
        assert manager.get_current_session(POE1)["total_count"] == 1

