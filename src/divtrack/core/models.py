"""Core domain models - dataclasses with no I/O dependencies."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_ts(value: str) -> datetime:
    """Parse a stored ISO timestamp, treating naive values as UTC."""
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class GameType(str, Enum):
    """Supported game variants. Each has an independent session lifecycle."""

    POE1 = "poe1"
    POE2 = "poe2"


class PriceSource(str, Enum):
    """Market channel a card price is read from."""

    EXCHANGE = "exchange"
    STASH = "stash"


# Scope names for card aggregates in the cards table
ALL_TIME_SCOPE = "all-time"
LEAGUE_SCOPE = "league"

# Key of the single global counter in global_stats
GLOBAL_DECKS_OPENED_KEY = "totalStackedDecksOpened"


@dataclass
class League:
    """(game, name) identity scoping snapshots and sessions."""

    id: str
    game: GameType
    name: str
    start_date: Optional[str] = None


@dataclass(frozen=True)
class CardPrice:
    """Price of one card under one price source."""

    chaos_value: float
    divine_value: float
    stack_size: Optional[int] = None


@dataclass
class SourcePrices:
    """All card prices for one price source plus its chaos:divine ratio."""

    chaos_to_divine_ratio: float
    card_prices: dict[str, CardPrice] = field(default_factory=dict)


@dataclass
class PriceSnapshot:
    """Market prices for a league at fetch time. Never mutated once stored."""

    timestamp: datetime
    stacked_deck_chaos_cost: float
    exchange: SourcePrices
    stash: SourcePrices

    def for_source(self, source: PriceSource) -> SourcePrices:
        return self.exchange if source == PriceSource.EXCHANGE else self.stash

    @property
    def card_price_count(self) -> int:
        return len(self.exchange.card_prices) + len(self.stash.card_prices)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "stacked_deck_chaos_cost": self.stacked_deck_chaos_cost,
            "exchange": asdict(self.exchange),
            "stash": asdict(self.stash),
        }


@dataclass
class SnapshotInfo:
    """Snapshot metadata row (without card prices)."""

    id: str
    league_id: str
    fetched_at: datetime
    exchange_chaos_to_divine: float
    stash_chaos_to_divine: float
    stacked_deck_chaos_cost: float = 0.0


@dataclass
class Session:
    """A single farming run for one game and league."""

    id: str
    game: GameType
    league_id: str
    snapshot_id: Optional[str]  # None if the bound snapshot was deleted
    started_at: datetime
    ended_at: Optional[datetime] = None
    total_count: int = 0
    is_active: bool = True

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()


@dataclass
class SessionCard:
    """Per-session count for one card name."""

    session_id: str
    card_name: str
    count: int
    first_seen_at: datetime
    last_seen_at: datetime
    hide_price_exchange: bool = False
    hide_price_stash: bool = False

    def is_hidden(self, source: PriceSource) -> bool:
        if source == PriceSource.EXCHANGE:
            return self.hide_price_exchange
        return self.hide_price_stash


@dataclass
class ActiveSessionInfo:
    """In-memory handle for the active session of a game."""

    session_id: str
    league: str
    started_at: datetime

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "league": self.league,
            "started_at": self.started_at.isoformat(),
        }


@dataclass
class StopResult:
    """Returned to the caller when a session stops."""

    total_count: int
    duration_ms: int
    league: str
    game: GameType

    def to_dict(self) -> dict:
        return {
            "total_count": self.total_count,
            "duration_ms": self.duration_ms,
            "league": self.league,
            "game": self.game.value,
        }


@dataclass
class SourceTotals:
    """Valuation for one price source."""

    total_value: float = 0.0
    net_profit: float = 0.0
    chaos_to_divine_ratio: float = 0.0


@dataclass
class SessionTotals:
    """Live or final session valuation across both price sources."""

    exchange: SourceTotals = field(default_factory=SourceTotals)
    stash: SourceTotals = field(default_factory=SourceTotals)
    stacked_deck_chaos_cost: float = 0.0
    total_deck_cost: float = 0.0

    def for_source(self, source: PriceSource) -> SourceTotals:
        return self.exchange if source == PriceSource.EXCHANGE else self.stash

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SessionSummary:
    """Denormalized row written once when a session stops."""

    session_id: str
    game: GameType
    league: str
    started_at: datetime
    ended_at: datetime
    duration_minutes: int
    total_decks_opened: int
    total_exchange_value: float
    total_stash_value: float
    total_exchange_net_profit: float
    total_stash_net_profit: float
    exchange_chaos_to_divine: float
    stash_chaos_to_divine: float
    stacked_deck_chaos_cost: float = 0.0
