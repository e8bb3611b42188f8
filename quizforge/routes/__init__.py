"""API route modules."""
from quizforge.routes import auth, history, leaderboard, saved_tests, session, users

__all__ = ["auth", "history", "leaderboard", "saved_tests", "session", "users"]
