"""Test history routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session as DbSession

from quizforge.database import get_db
from quizforge.dependencies.auth import get_current_user
from quizforge.dependencies.session import get_session_controller
from quizforge.engine.models import HistoryEntry
from quizforge.engine.state_machine import (
    RetakeFromHistory,
    ViewHistoryDetails,
    ViewScoreFromHistory,
)
from quizforge.models.auth import MessageResponse
from quizforge.models.db.user import User
from quizforge.models.session import HistoryEntryResponse, SessionStateResponse
from quizforge.routes.common import dispatch_event
from quizforge.services import persistence_service
from quizforge.services.session_service import SessionController, new_id
from quizforge.utils.validation import clean_record_id

router = APIRouter(prefix="/api/history", tags=["history"])

CurrentUser = Annotated[User, Depends(get_current_user)]
Controller = Annotated[SessionController, Depends(get_session_controller)]
Db = Annotated[DbSession, Depends(get_db)]


def _entry_or_404(db: DbSession, user_id: int, entry_id: str) -> HistoryEntry:
    entry = persistence_service.get_history_entry(
        db, user_id, clean_record_id("entryId", entry_id)
    )
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="History entry not found")
    return entry


@router.get("", response_model=list[HistoryEntryResponse])
async def list_history(user: CurrentUser, controller: Controller) -> list[HistoryEntryResponse]:
    """Completed tests, most recent first."""
    history = controller.refresh_history(user.id)
    return [HistoryEntryResponse.from_entry(entry) for entry in history]


@router.delete("", response_model=MessageResponse)
async def clear_history(user: CurrentUser, controller: Controller, db: Db) -> MessageResponse:
    """Delete every history entry of the current user."""
    ok = persistence_service.clear_history(db, user.id)
    controller.refresh_history(user.id)
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to clear test history. Please try again.",
        )
    return MessageResponse(message="Test history cleared")


@router.get("/{entry_id}", response_model=HistoryEntryResponse)
async def get_history_entry(entry_id: str, user: CurrentUser, db: Db) -> HistoryEntryResponse:
    """One history entry including its questions."""
    entry = _entry_or_404(db, user.id, entry_id)
    return HistoryEntryResponse.from_entry(entry, with_questions=True)


@router.delete("/{entry_id}", response_model=MessageResponse)
async def delete_history_entry(
    entry_id: str, user: CurrentUser, controller: Controller, db: Db
) -> MessageResponse:
    entry = _entry_or_404(db, user.id, entry_id)
    ok = persistence_service.delete_session(db, user.id, entry.id)
    controller.refresh_history(user.id)
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete the test from history. Please try again.",
        )
    return MessageResponse(message="History entry deleted")


@router.post("/{entry_id}/retake", response_model=SessionStateResponse)
async def retake_from_history(
    entry_id: str, user: CurrentUser, controller: Controller, db: Db
) -> SessionStateResponse:
    """Copy the entry's settings and questions into a new retake setup."""
    entry = _entry_or_404(db, user.id, entry_id)
    history = tuple(controller.refresh_history(user.id))
    return await dispatch_event(
        controller, user.id, RetakeFromHistory(entry, history, new_id())
    )


@router.post("/{entry_id}/view", response_model=SessionStateResponse)
async def view_history_details(
    entry_id: str, user: CurrentUser, controller: Controller, db: Db
) -> SessionStateResponse:
    entry = _entry_or_404(db, user.id, entry_id)
    return await dispatch_event(controller, user.id, ViewHistoryDetails(entry))


@router.post("/{entry_id}/score", response_model=SessionStateResponse)
async def view_score_from_history(
    entry_id: str, user: CurrentUser, controller: Controller, db: Db
) -> SessionStateResponse:
    """Show the entry's results; corrections made from here update the entry."""
    entry = _entry_or_404(db, user.id, entry_id)
    return await dispatch_event(controller, user.id, ViewScoreFromHistory(entry))
