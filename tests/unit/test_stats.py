"""Tests for the stats cascade."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from divtrack.core.models import GameType, League, Session
from divtrack.core.stats import StatsCascade

T0 = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def cascade(db):
    return StatsCascade(db)


@pytest.fixture
def session_id(repo):
    repo.insert_league(League(id="l1", game=GameType.POE1, name="Settlers"))
    repo.insert_session(
        Session(id="s1", game=GameType.POE1, league_id="l1", snapshot_id=None, started_at=T0)
    )
    return "s1"


class TestStatsCascade:
    def test_applies_all_effects(self, cascade, repo, session_id):
        total = cascade.apply_event(session_id, GameType.POE1, "Settlers", "The Doctor", T0)

        assert total == 1
        assert repo.get_session_total(session_id) == 1
        assert repo.get_session_cards(session_id)[0].count == 1
        assert cascade.get_all_time_stats(GameType.POE1)["total_count"] == 1
        assert cascade.get_league_stats(GameType.POE1, "Settlers")["total_count"] == 1
        assert cascade.get_global_stats() == {"total_stacked_decks_opened": 1}

    def test_session_total_matches_card_sum(self, cascade, repo, session_id):
        for name in ["The Doctor", "Rain of Chaos", "Rain of Chaos", "The Wolf"]:
            cascade.apply_event(session_id, GameType.POE1, "Settlers", name, T0)

        cards = repo.get_session_cards(session_id)
        assert sum(card.count for card in cards) == repo.get_session_total(session_id) == 4

    def test_failure_rolls_back_everything(self, cascade, repo, session_id):
        with patch.object(
            cascade.repo, "increment_global_stat", side_effect=RuntimeError("disk full")
        ):
            with pytest.raises(RuntimeError):
                cascade.apply_event(session_id, GameType.POE1, "Settlers", "The Doctor", T0)

        assert repo.get_session_total(session_id) == 0
        assert repo.get_session_cards(session_id) == []
        assert cascade.get_all_time_stats(GameType.POE1)["cards"] == []
        assert cascade.get_global_stats()["total_stacked_decks_opened"] == 0

    def test_available_leagues(self, cascade, session_id):
        cascade.apply_event(session_id, GameType.POE1, "Settlers", "The Doctor", T0)
        assert cascade.get_available_leagues(GameType.POE1) == ["Settlers"]
        assert cascade.get_available_leagues(GameType.POE2) == []

    def test_league_named_all_time_keeps_its_own_counts(self, cascade, session_id):
        cascade.apply_event(session_id, GameType.POE1, "all-time", "The Doctor", T0)
        cascade.apply_event(session_id, GameType.POE1, "Settlers", "The Doctor", T0)

        assert cascade.get_all_time_stats(GameType.POE1)["total_count"] == 2
        assert cascade.get_league_stats(GameType.POE1, "all-time")["total_count"] == 1
        assert cascade.get_available_leagues(GameType.POE1) == ["Settlers", "all-time"]
