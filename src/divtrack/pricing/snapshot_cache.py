"""Snapshot cache - reuse-or-fetch of immutable price snapshots and auto-refresh."""

import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from divtrack.config.logging import get_logger
from divtrack.core import events
from divtrack.core.errors import LeagueNotFoundError
from divtrack.core.models import (
    CardPrice,
    GameType,
    League,
    PriceSnapshot,
    PriceSource,
    SourcePrices,
    utc_now,
)
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.pricing.client import PriceClient

logger = get_logger()

SNAPSHOT_REUSE_THRESHOLD_HOURS = 6
AUTO_REFRESH_INTERVAL_HOURS = 4


@dataclass
class RefreshStatus:
    """When the latest snapshot was fetched and when a manual refresh is allowed."""

    fetched_at: Optional[datetime]
    refreshable_at: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
            "refreshable_at": self.refreshable_at.isoformat() if self.refreshable_at else None,
        }


class _RefreshWorker:
    """Background thread refreshing one (game, league) on a fixed interval."""

    def __init__(self, cache: "SnapshotCache", game: GameType, league: str, interval: float) -> None:
        self.game = game
        self.league = league
        self._cache = cache
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"divtrack-refresh-{game.value}-{league}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._cache.refresh(self.game, self.league)
            except Exception:
                # Retry at the next interval
                logger.exception(f"Auto-refresh failed for {self.game.value}/{self.league}")


class SnapshotCache:
    """
    Reuse-or-fetch cache of price snapshots per (game, league).

    Snapshots are persisted once and never mutated. A fresh enough snapshot
    is reused; otherwise a new one is fetched from the pricing service.
    """

    def __init__(
        self,
        db: Database,
        price_client: PriceClient,
        event_bus: Optional[events.EventBus] = None,
        clock: Callable[[], datetime] = utc_now,
        refresh_interval_seconds: Optional[float] = None,
    ) -> None:
        """
        Initialize snapshot cache.

        Args:
            db: Database connection
            price_client: Pricing service client
            event_bus: Optional bus for snapshot notifications
            clock: Time source for staleness decisions
            refresh_interval_seconds: Override of the auto-refresh interval
        """
        self.db = db
        self.repo = Repository(db)
        self.price_client = price_client
        self.event_bus = event_bus
        self._clock = clock
        self._refresh_interval = (
            refresh_interval_seconds
            if refresh_interval_seconds is not None
            else AUTO_REFRESH_INTERVAL_HOURS * 3600
        )
        self._workers: dict[tuple[GameType, str], _RefreshWorker] = {}
        self._workers_lock = threading.Lock()
        self._league_lock = threading.Lock()

    # --- Leagues ---

    def ensure_league(self, game: GameType, league: str) -> str:
        """Return the league id for (game, league), creating the league if needed."""
        with self._league_lock:
            existing = self.repo.get_league(game, league)
            if existing:
                return existing.id
            self.repo.insert_league(League(id=str(uuid.uuid4()), game=game, name=league))
            created = self.repo.get_league(game, league)
        if created is None:
            raise LeagueNotFoundError(game.value, league)
        logger.info(f"Created league {game.value}/{league}")
        return created.id

    def get_league_id(self, game: GameType, league: str) -> Optional[str]:
        existing = self.repo.get_league(game, league)
        return existing.id if existing else None

    # --- Snapshots ---

    def get_or_fetch(
        self,
        game: GameType,
        league: str,
        max_age_hours: float = SNAPSHOT_REUSE_THRESHOLD_HOURS,
    ) -> tuple[str, PriceSnapshot]:
        """
        Get a snapshot younger than max_age_hours, fetching one if needed.

        Returns:
            (snapshot_id, snapshot)

        Raises:
            PriceFetchError: If a fetch was needed and failed
        """
        league_id = self.ensure_league(game, league)
        latest = self.repo.get_latest_snapshot_info(league_id)
        if latest is not None:
            age = self._clock() - latest.fetched_at
            if age < timedelta(hours=max_age_hours):
                snapshot = self.load_snapshot(latest.id)
                if snapshot is not None:
                    logger.debug(f"Reusing snapshot {latest.id} for {game.value}/{league}")
                    self._publish(
                        events.SNAPSHOT_REUSED,
                        {"game": game.value, "league": league, "snapshot_id": latest.id},
                    )
                    return latest.id, snapshot

        return self._fetch_and_store(game, league, league_id)

    def get_snapshot_for_session(self, game: GameType, league: str) -> tuple[str, PriceSnapshot]:
        """Snapshot for a new session, reused only if younger than the refresh interval."""
        return self.get_or_fetch(game, league, max_age_hours=AUTO_REFRESH_INTERVAL_HOURS)

    def refresh(self, game: GameType, league: str) -> tuple[str, PriceSnapshot]:
        """Fetch and persist a new snapshot unconditionally."""
        league_id = self.ensure_league(game, league)
        return self._fetch_and_store(game, league, league_id)

    def get_latest(self, game: GameType, league: str) -> Optional[tuple[str, PriceSnapshot]]:
        """Most recent stored snapshot for (game, league), without fetching."""
        league_id = self.get_league_id(game, league)
        if league_id is None:
            return None
        latest = self.repo.get_latest_snapshot_info(league_id)
        if latest is None:
            return None
        snapshot = self.load_snapshot(latest.id)
        if snapshot is None:
            return None
        return latest.id, snapshot

    def load_snapshot(self, snapshot_id: str) -> Optional[PriceSnapshot]:
        """
        Reconstitute a snapshot from its metadata row and flat price rows.

        Returns:
            PriceSnapshot, or None if the snapshot no longer exists
        """
        info = self.repo.get_snapshot_info(snapshot_id)
        if info is None:
            return None

        prices: dict[PriceSource, dict[str, CardPrice]] = {
            PriceSource.EXCHANGE: {},
            PriceSource.STASH: {},
        }
        for source, card_name, price in self.repo.get_snapshot_prices(snapshot_id):
            prices[source][card_name] = price

        return PriceSnapshot(
            timestamp=info.fetched_at,
            stacked_deck_chaos_cost=info.stacked_deck_chaos_cost,
            exchange=SourcePrices(
                chaos_to_divine_ratio=info.exchange_chaos_to_divine,
                card_prices=prices[PriceSource.EXCHANGE],
            ),
            stash=SourcePrices(
                chaos_to_divine_ratio=info.stash_chaos_to_divine,
                card_prices=prices[PriceSource.STASH],
            ),
        )

    def get_refresh_status(self, game: GameType, league: str) -> RefreshStatus:
        league_id = self.get_league_id(game, league)
        latest = self.repo.get_latest_snapshot_info(league_id) if league_id else None
        if latest is None:
            return RefreshStatus(fetched_at=None, refreshable_at=None)
        return RefreshStatus(
            fetched_at=latest.fetched_at,
            refreshable_at=latest.fetched_at + timedelta(hours=AUTO_REFRESH_INTERVAL_HOURS),
        )

    def _fetch_and_store(
        self, game: GameType, league: str, league_id: str
    ) -> tuple[str, PriceSnapshot]:
        snapshot = self.price_client.fetch_price_snapshot(game, league)
        snapshot_id = str(uuid.uuid4())
        fetched_at = self._clock()
        self.repo.insert_snapshot(snapshot_id, league_id, fetched_at, snapshot)
        logger.info(
            f"Stored snapshot {snapshot_id} for {game.value}/{league} "
            f"({snapshot.card_price_count} prices)"
        )
        self._publish(
            events.SNAPSHOT_CREATED,
            {
                "game": game.value,
                "league": league,
                "snapshot_id": snapshot_id,
                "fetched_at": fetched_at.isoformat(),
            },
        )
        return snapshot_id, snapshot

    # --- Auto-refresh ---

    def start_auto_refresh(self, game: GameType, league: str) -> bool:
        """
        Start periodic refresh for (game, league).

        Returns:
            False if a refresh thread was already running for the key.
        """
        key = (game, league)
        with self._workers_lock:
            if key in self._workers:
                return False
            worker = _RefreshWorker(self, game, league, self._refresh_interval)
            self._workers[key] = worker
            worker.start()
        logger.info(f"Auto-refresh started for {game.value}/{league}")
        self._publish(events.AUTO_REFRESH_STARTED, {"game": game.value, "league": league})
        return True

    def stop_auto_refresh(self, game: GameType, league: str) -> bool:
        with self._workers_lock:
            worker = self._workers.pop((game, league), None)
        if worker is None:
            return False
        worker.stop()
        logger.info(f"Auto-refresh stopped for {game.value}/{league}")
        self._publish(events.AUTO_REFRESH_STOPPED, {"game": game.value, "league": league})
        return True

    def stop_all(self) -> None:
        with self._workers_lock:
            keys = list(self._workers)
        for game, league in keys:
            self.stop_auto_refresh(game, league)

    def is_auto_refreshing(self, game: GameType, league: str) -> bool:
        with self._workers_lock:
            return (game, league) in self._workers

    def _publish(self, channel: str, payload: dict) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(channel, payload)
