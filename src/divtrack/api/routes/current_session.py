"""Current session API routes - lifecycle, drops and price visibility."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from divtrack.api.dependencies import get_session_manager
from divtrack.api.schemas import (
    ActiveSessionResponse,
    AddCardRequest,
    AddCardResponse,
    OperationResult,
    StartSessionRequest,
    StopSessionResponse,
    VisibilityRequest,
)
from divtrack.config.logging import get_logger
from divtrack.core.errors import DivTrackError, NoActiveSessionError
from divtrack.core.models import GameType
from divtrack.session.manager import SessionManager

logger = get_logger()

router = APIRouter(prefix="/api/session", tags=["session"])


@router.post("/{game}/start", response_model=OperationResult)
def start_session(
    game: GameType,
    body: StartSessionRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> OperationResult:
    """Start a session. Failures are returned, not raised."""
    try:
        manager.start_session(game, body.league)
    except DivTrackError as e:
        logger.warning(f"Start failed for {game.value}: {e}")
        return OperationResult(success=False, error=str(e))
    return OperationResult(success=True)


@router.post("/{game}/stop", response_model=StopSessionResponse)
def stop_session(
    game: GameType,
    manager: SessionManager = Depends(get_session_manager),
) -> StopSessionResponse:
    try:
        result = manager.stop_session(game)
    except DivTrackError as e:
        return StopSessionResponse(success=False, error=str(e))
    return StopSessionResponse(success=True, **result.to_dict())


@router.get("/{game}/active", response_model=bool)
def is_session_active(
    game: GameType,
    manager: SessionManager = Depends(get_session_manager),
) -> bool:
    return manager.is_session_active(game)


@router.get("/{game}/info", response_model=Optional[ActiveSessionResponse])
def get_active_session_info(
    game: GameType,
    manager: SessionManager = Depends(get_session_manager),
) -> Optional[ActiveSessionResponse]:
    info = manager.get_active_session_info(game)
    if info is None:
        return None
    return ActiveSessionResponse(**info.to_dict())


@router.get("/{game}")
def get_current_session(
    game: GameType,
    manager: SessionManager = Depends(get_session_manager),
) -> Optional[dict]:
    """Live session data: cards, recent drops, totals and bound snapshot."""
    return manager.get_current_session(game)


@router.post("/{game}/cards", response_model=AddCardResponse)
def add_card(
    game: GameType,
    body: AddCardRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> AddCardResponse:
    """Report a card drop. Duplicate event ids are accepted=false, not errors."""
    try:
        accepted = manager.add_card(game, body.card_name, body.event_id)
    except NoActiveSessionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return AddCardResponse(accepted=accepted)


@router.post("/{game}/visibility", response_model=OperationResult)
def update_card_price_visibility(
    game: GameType,
    body: VisibilityRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> OperationResult:
    try:
        manager.update_card_price_visibility(
            game, body.session_id, body.price_source, body.card_name, body.hide_price
        )
    except DivTrackError as e:
        return OperationResult(success=False, error=str(e))
    return OperationResult(success=True)
