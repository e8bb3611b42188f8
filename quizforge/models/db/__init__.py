"""Database models."""
from quizforge.models.db.user import User, Session
from quizforge.models.db.test_session import TestSessionRecord
from quizforge.models.db.saved_test import SavedTestRecord

__all__ = [
    "User",
    "Session",
    "TestSessionRecord",
    "SavedTestRecord",
]
