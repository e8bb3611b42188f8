"""FastAPI dependencies."""
from quizforge.dependencies.auth import get_current_user, get_optional_user
from quizforge.dependencies.session import get_session_controller

__all__ = ["get_current_user", "get_optional_user", "get_session_controller"]
