"""Summary builder - writes the final valuation row when a session stops."""

import sqlite3
from datetime import datetime
from typing import Callable, Optional

from divtrack.config.logging import get_logger
from divtrack.core.models import GameType, PriceSnapshot, SessionSummary
from divtrack.core.pricing import compute_totals
from divtrack.db.repository import Repository

logger = get_logger()

SnapshotLoader = Callable[[str], Optional[PriceSnapshot]]


class SummaryBuilder:
    """Builds and stores a SessionSummary from final session state."""

    def __init__(self, repository: Repository, load_snapshot: SnapshotLoader) -> None:
        """
        Args:
            repository: Data access layer
            load_snapshot: Returns the snapshot for an id, or None if it is gone
        """
        self.repo = repository
        self._load_snapshot = load_snapshot

    def build(
        self, session_id: str, game: GameType, league: str, ended_at: datetime
    ) -> Optional[SessionSummary]:
        """Compute the summary, or None when the session or its snapshot is missing."""
        session = self.repo.get_session(session_id)
        if session is None:
            return None
        if session.snapshot_id is None:
            return None
        snapshot = self._load_snapshot(session.snapshot_id)
        if snapshot is None:
            return None

        cards = self.repo.get_session_cards(session_id)
        totals = compute_totals(cards, snapshot, session.total_count)
        elapsed = (ended_at - session.started_at).total_seconds()

        return SessionSummary(
            session_id=session_id,
            game=game,
            league=league,
            started_at=session.started_at,
            ended_at=ended_at,
            duration_minutes=round(elapsed / 60),
            total_decks_opened=session.total_count,
            total_exchange_value=totals.exchange.total_value,
            total_stash_value=totals.stash.total_value,
            total_exchange_net_profit=totals.exchange.net_profit,
            total_stash_net_profit=totals.stash.net_profit,
            exchange_chaos_to_divine=totals.exchange.chaos_to_divine_ratio,
            stash_chaos_to_divine=totals.stash.chaos_to_divine_ratio,
            stacked_deck_chaos_cost=totals.stacked_deck_chaos_cost,
        )

    def create(
        self,
        session_id: str,
        game: GameType,
        league: str,
        ended_at: datetime,
        cursor: Optional[sqlite3.Cursor] = None,
    ) -> bool:
        """
        Write the summary row for a stopped session.

        Skipped entirely when the bound snapshot cannot be loaded. Pass the
        cursor of an open transaction to write the row as part of it.

        Returns:
            True if a summary row was written.
        """
        summary = self.build(session_id, game, league, ended_at)
        if summary is None:
            logger.warning(f"Skipping summary for session {session_id}: snapshot unavailable")
            return False
        self.repo.insert_summary(summary, cursor)
        logger.info(
            f"Session {session_id} summary: {summary.total_decks_opened} decks, "
            f"exchange net {summary.total_exchange_net_profit:.1f}c"
        )
        return True
