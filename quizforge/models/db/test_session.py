"""
Completed test session (history entry) database model.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quizforge.database import Base

if TYPE_CHECKING:
    from quizforge.models.db.user import User


class TestSessionRecord(Base):
    """
    Scored test session.
    The primary key is the client session id, so corrections update the
    same row instead of adding a new one.
    """

    __test__ = False
    __tablename__ = "test_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    test_name: Mapped[str] = mapped_column(String(255), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    # Results
    score_percentage: Mapped[float] = mapped_column(default=0.0, nullable=False)
    total_questions: Mapped[int] = mapped_column(default=0, nullable=False)
    correct_answers: Mapped[int] = mapped_column(default=0, nullable=False)
    attempted_questions: Mapped[int] = mapped_column(default=0, nullable=False)
    was_corrected_by_user: Mapped[bool] = mapped_column(default=False, nullable=False)

    # Questions, configuration and negative marking (stored as JSON string)
    questions_data_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="test_sessions")

    @property
    def questions_data(self) -> dict[str, Any]:
        """Parse questions data from JSON."""
        if not self.questions_data_json:
            return {}
        try:
            return json.loads(self.questions_data_json)
        except (json.JSONDecodeError, TypeError):
            return {}

    @questions_data.setter
    def questions_data(self, value: dict[str, Any]) -> None:
        """Serialize questions data to JSON."""
        self.questions_data_json = json.dumps(value, ensure_ascii=False) if value else None
