"""Aggregate statistics API routes."""

from fastapi import APIRouter, Depends

from divtrack.api.dependencies import get_stats
from divtrack.api.schemas import GlobalStatsResponse, ScopeStatsResponse
from divtrack.core.models import GameType
from divtrack.core.stats import StatsCascade

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/global", response_model=GlobalStatsResponse)
def get_global_stats(stats: StatsCascade = Depends(get_stats)) -> GlobalStatsResponse:
    """Total stacked decks opened across every game and league."""
    return GlobalStatsResponse(**stats.get_global_stats())


@router.get("/{game}/all-time", response_model=ScopeStatsResponse)
def get_all_time_stats(
    game: GameType,
    stats: StatsCascade = Depends(get_stats),
) -> ScopeStatsResponse:
    return ScopeStatsResponse(**stats.get_all_time_stats(game))


@router.get("/{game}/leagues", response_model=list[str])
def get_available_leagues(
    game: GameType,
    stats: StatsCascade = Depends(get_stats),
) -> list[str]:
    return stats.get_available_leagues(game)


@router.get("/{game}/league/{league}", response_model=ScopeStatsResponse)
def get_league_stats(
    game: GameType,
    league: str,
    stats: StatsCascade = Depends(get_stats),
) -> ScopeStatsResponse:
    return ScopeStatsResponse(**stats.get_league_stats(game, league))
