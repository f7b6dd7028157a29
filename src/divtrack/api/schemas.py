"""Pydantic schemas for API requests and responses."""

from typing import Optional

from pydantic import BaseModel

from divtrack.core.models import PriceSource


class StartSessionRequest(BaseModel):
    """Request to start a session."""

    league: str


class AddCardRequest(BaseModel):
    """A card drop reported by the ingestion side."""

    card_name: str
    event_id: str


class AddCardResponse(BaseModel):
    accepted: bool


class VisibilityRequest(BaseModel):
    """Request to hide or show one card's price for one source."""

    session_id: str = "current"
    price_source: PriceSource
    card_name: str
    hide_price: bool


class OperationResult(BaseModel):
    """Structured success/failure result for lifecycle operations."""

    success: bool
    error: Optional[str] = None


class StopSessionResponse(BaseModel):
    """Result of stopping a session."""

    success: bool
    error: Optional[str] = None
    total_count: Optional[int] = None
    duration_ms: Optional[int] = None
    league: Optional[str] = None
    game: Optional[str] = None


class ActiveSessionResponse(BaseModel):
    session_id: str
    league: str
    started_at: str


class SessionHistoryItem(BaseModel):
    """One row of session history."""

    session_id: str
    game: str
    league: str
    started_at: str
    ended_at: Optional[str] = None
    is_active: bool = False
    duration_minutes: Optional[int] = None
    total_decks_opened: int = 0
    total_exchange_value: Optional[float] = None
    total_stash_value: Optional[float] = None
    total_exchange_net_profit: Optional[float] = None
    total_stash_net_profit: Optional[float] = None
    exchange_chaos_to_divine: Optional[float] = None
    stash_chaos_to_divine: Optional[float] = None
    stacked_deck_chaos_cost: Optional[float] = None


class SessionHistoryResponse(BaseModel):
    """Paginated session history."""

    sessions: list[SessionHistoryItem]
    total: int
    page: int
    page_size: int


class CardStat(BaseModel):
    card_name: str
    count: int
    last_updated: Optional[str] = None


class ScopeStatsResponse(BaseModel):
    """Aggregate card counts for all-time or one league."""

    game: str
    scope: str
    total_count: int
    cards: list[CardStat]


class GlobalStatsResponse(BaseModel):
    total_stacked_decks_opened: int


class SnapshotStatusResponse(BaseModel):
    fetched_at: Optional[str] = None
    refreshable_at: Optional[str] = None
    auto_refresh: bool = False


class StatusResponse(BaseModel):
    """Server status response."""

    status: str
    version: str
    db_path: str
    active_sessions: dict[str, bool]
    total_stacked_decks_opened: int
