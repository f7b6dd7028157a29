"""FastAPI dependency injection utilities.

Provides shared dependencies for API routes, configured by app factory.
"""

from divtrack.core.stats import StatsCascade
from divtrack.db.repository import Repository
from divtrack.pricing.snapshot_cache import SnapshotCache
from divtrack.session.manager import SessionManager


def get_repository() -> Repository:
    """Dependency injection for repository - set by app factory.

    This function is replaced by app.py's create_app() with an actual
    repository instance via dependency_overrides.

    Raises:
        NotImplementedError: If not configured (should never happen in production)
    """
    raise NotImplementedError("Repository not configured")


def get_session_manager() -> SessionManager:
    """Dependency injection for the session manager - set by app factory."""
    raise NotImplementedError("Session manager not configured")


def get_snapshot_cache() -> SnapshotCache:
    """Dependency injection for the snapshot cache - set by app factory."""
    raise NotImplementedError("Snapshot cache not configured")


def get_stats() -> StatsCascade:
    """Dependency injection for aggregate stats - set by app factory."""
    raise NotImplementedError("Stats not configured")

