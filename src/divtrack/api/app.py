"""FastAPI application factory."""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from divtrack.api import dependencies
from divtrack.api.routes import current_session, sessions, snapshots, stats
from divtrack.api.schemas import StatusResponse
from divtrack.core.models import GLOBAL_DECKS_OPENED_KEY, GameType
from divtrack.core.stats import StatsCascade
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.pricing.snapshot_cache import SnapshotCache
from divtrack.session.manager import SessionManager
from divtrack.version import __version__


def create_app(
    db: Database,
    session_manager: SessionManager,
    snapshot_cache: SnapshotCache,
    stats_cascade: Optional[StatsCascade] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        db: Database connection
        session_manager: Initialized session manager
        snapshot_cache: Snapshot cache shared with the session manager
        stats_cascade: Aggregate stats (defaults to the session manager's)

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="DivTrack API",
        description="Divination card farming session tracker API",
        version=__version__,
    )

    # CORS middleware for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    repo = Repository(db)
    stats_cascade = stats_cascade or session_manager.cascade

    # Dependency overrides for injection into all routers
    app.dependency_overrides[dependencies.get_repository] = lambda: repo
    app.dependency_overrides[dependencies.get_session_manager] = lambda: session_manager
    app.dependency_overrides[dependencies.get_snapshot_cache] = lambda: snapshot_cache
    app.dependency_overrides[dependencies.get_stats] = lambda: stats_cascade

    # Include routers
    app.include_router(current_session.router)
    app.include_router(sessions.router)
    app.include_router(stats.router)
    app.include_router(snapshots.router)

    # Store state for the status endpoint
    app.state.db = db
    app.state.repo = repo
    app.state.session_manager = session_manager
    app.state.snapshot_cache = snapshot_cache

    @app.get("/api/status", response_model=StatusResponse, tags=["status"])
    def get_status() -> StatusResponse:
        """Get server status."""
        return StatusResponse(
            status="ok",
            version=__version__,
            db_path=str(db.db_path),
            active_sessions={
                game.value: session_manager.is_session_active(game) for game in GameType
            },
            total_stacked_decks_opened=repo.get_global_stat(GLOBAL_DECKS_OPENED_KEY),
        )

    return app
