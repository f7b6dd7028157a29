"""Session history API routes."""

from fastapi import APIRouter, Depends, HTTPException, Query

from divtrack.api.dependencies import get_session_manager
from divtrack.api.schemas import SessionHistoryResponse
from divtrack.core.models import GameType
from divtrack.session.manager import SessionManager

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.get("/detail/{session_id}")
def get_session_details(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager),
) -> dict:
    """Cards and totals for one session, active or finished."""
    details = manager.get_session_details(session_id)
    if details is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return details


@router.get("/{game}", response_model=SessionHistoryResponse)
def list_sessions(
    game: GameType,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionHistoryResponse:
    """Paginated session history, newest first."""
    return SessionHistoryResponse(**manager.get_sessions_page(game, page, page_size))
