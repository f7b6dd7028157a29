"""Price snapshot API routes."""

from fastapi import APIRouter, Depends, HTTPException

from divtrack.api.dependencies import get_snapshot_cache
from divtrack.api.schemas import SnapshotStatusResponse
from divtrack.core.errors import PriceFetchError
from divtrack.core.models import GameType
from divtrack.pricing.snapshot_cache import SnapshotCache

router = APIRouter(prefix="/api/snapshots", tags=["snapshots"])


@router.get("/{game}/{league}/latest")
def get_latest_snapshot(
    game: GameType,
    league: str,
    cache: SnapshotCache = Depends(get_snapshot_cache),
) -> dict:
    """Most recent stored snapshot, without contacting the pricing service."""
    latest = cache.get_latest(game, league)
    if latest is None:
        raise HTTPException(status_code=404, detail="No snapshot for league")
    snapshot_id, snapshot = latest
    return {"snapshot_id": snapshot_id, "snapshot": snapshot.to_dict()}


@router.post("/{game}/{league}/refresh")
def refresh_snapshot(
    game: GameType,
    league: str,
    cache: SnapshotCache = Depends(get_snapshot_cache),
) -> dict:
    """Fetch a new snapshot now."""
    try:
        snapshot_id, snapshot = cache.refresh(game, league)
    except PriceFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {
        "snapshot_id": snapshot_id,
        "card_price_count": snapshot.card_price_count,
    }


@router.get("/{game}/{league}/status", response_model=SnapshotStatusResponse)
def get_snapshot_status(
    game: GameType,
    league: str,
    cache: SnapshotCache = Depends(get_snapshot_cache),
) -> SnapshotStatusResponse:
    status = cache.get_refresh_status(game, league)
    return SnapshotStatusResponse(
        **status.to_dict(),
        auto_refresh=cache.is_auto_refreshing(game, league),
    )
