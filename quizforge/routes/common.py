"""Helpers shared by the session-driving routes."""
from fastapi import HTTPException, status

from quizforge.engine.state_machine import Event, InvalidTransitionError
from quizforge.models.session import SessionStateResponse
from quizforge.services.session_service import SessionController


def state_response(controller: SessionController, user_id: int) -> SessionStateResponse:
    """Current state plus any pending alert and the resume offer."""
    return SessionStateResponse.from_state(
        controller.state(user_id),
        alert=controller.pop_alert(user_id),
        resume_available=controller.pending_snapshot(user_id) is not None,
    )


async def dispatch_event(
    controller: SessionController, user_id: int, event: Event
) -> SessionStateResponse:
    """Dispatch an event, mapping engine errors to HTTP errors."""
    try:
        await controller.dispatch(user_id, event)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return state_response(controller, user_id)
