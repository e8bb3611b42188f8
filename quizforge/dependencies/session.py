"""Session controller dependency."""
from fastapi import Request

from quizforge.services.session_service import SessionController


def get_session_controller(request: Request) -> SessionController:
    """Controller created for the application lifespan."""
    return request.app.state.session_controller
