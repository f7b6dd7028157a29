"""Session lifecycle manager - one independent state machine per game."""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from divtrack.config.logging import get_logger
from divtrack.core import events
from divtrack.core.dedup import DEDUP_FLUSH_DELAY_SECONDS, DedupTracker
from divtrack.core.errors import (
    AlreadyActiveError,
    LeagueNotFoundError,
    NoActiveSessionError,
)
from divtrack.core.models import (
    ActiveSessionInfo,
    GameType,
    PriceSource,
    Session,
    StopResult,
    utc_now,
)
from divtrack.core.pricing import card_price_view, compute_totals
from divtrack.core.stats import StatsCascade
from divtrack.core.summary import SummaryBuilder
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.pricing.snapshot_cache import SnapshotCache

logger = get_logger()

RECENT_DROPS_LIMIT = 20
CURRENT_SESSION = "current"


@dataclass
class GameSessionState:
    """In-memory state owned by one game: active handle and dedup sets."""

    game: GameType
    dedup: DedupTracker
    active: Optional[ActiveSessionInfo] = None
    lock: threading.RLock = field(default_factory=threading.RLock)


class SessionManager:
    """
    Start, stop and feed farming sessions for every supported game.

    The database is the source of truth. Per-game state is a cache over it
    that initialize() rebuilds after a restart.
    """

    def __init__(
        self,
        db: Database,
        snapshot_cache: SnapshotCache,
        event_bus: Optional[events.EventBus] = None,
        clock: Callable[[], datetime] = utc_now,
        dedup_flush_delay: float = DEDUP_FLUSH_DELAY_SECONDS,
    ) -> None:
        """
        Initialize session manager.

        Args:
            db: Database connection
            snapshot_cache: Snapshot cache used to bind prices at session start
            event_bus: Optional bus for state-changed / data-updated notifications
            clock: Time source
            dedup_flush_delay: Debounce window for processed-id writes, in seconds
        """
        self.db = db
        self.repo = Repository(db)
        self.snapshot_cache = snapshot_cache
        self.event_bus = event_bus
        self._clock = clock
        self.cascade = StatsCascade(db)
        self.summary_builder = SummaryBuilder(self.repo, snapshot_cache.load_snapshot)
        self._states: dict[GameType, GameSessionState] = {
            game: GameSessionState(
                game=game,
                dedup=DedupTracker(self.repo, game, flush_delay=dedup_flush_delay),
            )
            for game in GameType
        }

    def initialize(self) -> int:
        """
        Recover from an unclean shutdown.

        Deactivates sessions left active, clears recent drops for every game
        and reloads the persisted dedup sets. Safe to run more than once.

        Returns:
            Number of orphaned sessions deactivated.
        """
        deactivated = self.repo.deactivate_all_sessions(self._clock())
        for game, state in self._states.items():
            with state.lock:
                state.active = None
                state.dedup.reset_session()
                self.repo.clear_recent_drops(game)
                loaded = state.dedup.load()
            logger.debug(f"Loaded {loaded} processed ids for {game.value}")
        if deactivated:
            logger.info(f"Deactivated {deactivated} orphaned session(s)")
        return deactivated

    # --- Lifecycle ---

    def start_session(self, game: GameType, league: str) -> ActiveSessionInfo:
        """
        Start a session for game in league.

        The league and snapshot are resolved before the session row is
        written, so a failure leaves nothing behind.

        Raises:
            AlreadyActiveError: A session is already active for game
            LeagueNotFoundError: The league disappeared during start
            PriceFetchError: No snapshot could be obtained
        """
        state = self._states[game]
        with state.lock:
            if state.active is not None:
                raise AlreadyActiveError(game.value)

            snapshot_id, _ = self.snapshot_cache.get_snapshot_for_session(game, league)
            league_id = self.snapshot_cache.get_league_id(game, league)
            if league_id is None:
                raise LeagueNotFoundError(game.value, league)

            now = self._clock()
            session = Session(
                id=str(uuid.uuid4()),
                game=game,
                league_id=league_id,
                snapshot_id=snapshot_id,
                started_at=now,
                total_count=0,
                is_active=True,
            )
            self.repo.insert_session(session)
            state.active = ActiveSessionInfo(
                session_id=session.id, league=league, started_at=now
            )
            state.dedup.reset_session()
            info = state.active
            self.snapshot_cache.start_auto_refresh(game, league)

        logger.info(f"Session {info.session_id} started for {game.value}/{league}")
        self._publish_state(game, info)
        return info

    def stop_session(self, game: GameType) -> StopResult:
        """
        Stop the active session of game and write its summary.

        Ending the session row, writing the summary and clearing recent drops
        commit together. On failure the session stays active, in the store
        and in memory.

        Raises:
            NoActiveSessionError: No session is active for game
        """
        state = self._states[game]
        with state.lock:
            active = state.active
            if active is None:
                raise NoActiveSessionError(game.value)

            now = self._clock()
            state.dedup.flush_and_prune()
            with self.db.transaction() as cursor:
                total_count = self.repo.get_session_total(active.session_id)
                self.repo.end_session(active.session_id, now, cursor)
                self.summary_builder.create(
                    active.session_id, game, active.league, now, cursor
                )
                self.repo.clear_recent_drops(game, cursor)

            state.active = None
            state.dedup.reset_session()
            self.snapshot_cache.stop_auto_refresh(game, active.league)

        duration_ms = int((now - active.started_at).total_seconds() * 1000)
        logger.info(
            f"Session {active.session_id} stopped for {game.value}/{active.league}: "
            f"{total_count} decks in {duration_ms // 1000}s"
        )
        self._publish_state(game, None)
        return StopResult(
            total_count=total_count,
            duration_ms=duration_ms,
            league=active.league,
            game=game,
        )

    def add_card(self, game: GameType, card_name: str, event_id: str) -> bool:
        """
        Count a card drop once.

        Returns:
            True if the drop was counted, False if event_id was already processed.

        Raises:
            NoActiveSessionError: No session is active for game
        """
        state = self._states[game]
        with state.lock:
            active = state.active
            if active is None:
                raise NoActiveSessionError(game.value)
            if not state.dedup.accept(event_id):
                logger.debug(f"Duplicate event {event_id} ignored for {game.value}")
                return False

            now = self._clock()
            # A failed cascade loses the event; it is never counted twice
            self.cascade.apply_event(active.session_id, game, active.league, card_name, now)
            self.repo.add_recent_drop(game, event_id, card_name, now, keep=RECENT_DROPS_LIMIT)

        self._publish_data(game)
        return True

    # --- Queries ---

    def is_session_active(self, game: GameType) -> bool:
        state = self._states[game]
        with state.lock:
            return state.active is not None

    def get_active_session_info(self, game: GameType) -> Optional[ActiveSessionInfo]:
        state = self._states[game]
        with state.lock:
            return state.active

    def get_current_session(self, game: GameType) -> Optional[dict]:
        """Live view of the active session with cards, recent drops and totals."""
        active = self.get_active_session_info(game)
        if active is None:
            return None
        session = self.repo.get_session(active.session_id)
        if session is None:
            return None

        snapshot = None
        if session.snapshot_id is not None:
            snapshot = self.snapshot_cache.load_snapshot(session.snapshot_id)
        cards = self.repo.get_session_cards(session.id)
        totals = compute_totals(cards, snapshot, session.total_count)

        return {
            "session_id": session.id,
            "game": game.value,
            "league": active.league,
            "total_count": session.total_count,
            "cards": [card_price_view(card, snapshot) for card in cards],
            "recent_drops": self.repo.get_recent_drops(game, RECENT_DROPS_LIMIT),
            "totals": totals.to_dict(),
            "price_snapshot": snapshot.to_dict() if snapshot else None,
            "snapshot_id": session.snapshot_id,
            "started_at": session.started_at.isoformat(),
            "ended_at": session.ended_at.isoformat() if session.ended_at else None,
        }

    def get_all_processed_ids(self, game: GameType) -> set[str]:
        return self._states[game].dedup.all_processed_ids()

    # --- History ---

    def get_sessions_page(self, game: GameType, page: int = 1, page_size: int = 20) -> dict:
        """Session history for game, newest first."""
        offset = (page - 1) * page_size
        return {
            "sessions": self.repo.get_session_history(game, limit=page_size, offset=offset),
            "total": self.repo.count_sessions(game),
            "page": page,
            "page_size": page_size,
        }

    def get_session_details(self, session_id: str) -> Optional[dict]:
        """Full view of any session, valued against its bound snapshot."""
        session = self.repo.get_session(session_id)
        if session is None:
            return None
        league = self.repo.get_league_by_id(session.league_id)

        snapshot = None
        if session.snapshot_id is not None:
            snapshot = self.snapshot_cache.load_snapshot(session.snapshot_id)
        cards = self.repo.get_session_cards(session.id)
        totals = compute_totals(cards, snapshot, session.total_count)
        summary = self.repo.get_summary(session.id)

        return {
            "session_id": session.id,
            "game": session.game.value,
            "league": league.name if league else None,
            "is_active": session.is_active,
            "total_count": session.total_count,
            "started_at": session.started_at.isoformat(),
            "ended_at": session.ended_at.isoformat() if session.ended_at else None,
            "duration_minutes": summary.duration_minutes if summary else None,
            "cards": [card_price_view(card, snapshot) for card in cards],
            "totals": totals.to_dict(),
            "snapshot_id": session.snapshot_id,
            "has_summary": summary is not None,
        }

    # --- Visibility ---

    def update_card_price_visibility(
        self,
        game: GameType,
        session_id: str,
        price_source: PriceSource,
        card_name: str,
        hide: bool,
    ) -> bool:
        """
        Include or exclude one card from a session's totals for one price source.

        Args:
            game: Game variant
            session_id: Session ID, or "current" for the active session
            price_source: Source whose totals are affected
            card_name: Card to toggle
            hide: True to exclude the card's value

        Returns:
            True if a card row was updated.

        Raises:
            NoActiveSessionError: session_id is "current" and no session is active
        """
        active = self.get_active_session_info(game)
        if session_id == CURRENT_SESSION:
            if active is None:
                raise NoActiveSessionError(game.value)
            session_id = active.session_id

        updated = self.repo.set_card_visibility(
            session_id, PriceSource(price_source), card_name, hide
        )
        if updated and active is not None and active.session_id == session_id:
            self._publish_data(game)
        return updated

    # --- Shutdown ---

    def shutdown(self) -> None:
        """Flush pending dedup writes and stop auto-refresh threads."""
        for game, state in self._states.items():
            with state.lock:
                if not state.dedup.writer.is_pending:
                    continue
                try:
                    state.dedup.writer.flush()
                except Exception:
                    logger.exception(f"Failed to flush processed ids for {game.value}")
        self.snapshot_cache.stop_all()

    # --- Notifications ---

    def _publish_state(self, game: GameType, info: Optional[ActiveSessionInfo]) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(
            events.SESSION_STATE_CHANGED,
            {
                "game": game.value,
                "is_active": info is not None,
                "session_info": info.to_dict() if info else None,
            },
        )

    def _publish_data(self, game: GameType) -> None:
        if self.event_bus is None:
            return
        if not self.event_bus.has_subscribers(events.SESSION_DATA_UPDATED):
            return
        self.event_bus.publish(
            events.SESSION_DATA_UPDATED,
            {"game": game.value, "data": self.get_current_session(game)},
        )
