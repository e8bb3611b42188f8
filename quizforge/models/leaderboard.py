"""Pydantic models for the leaderboard."""
from pydantic import BaseModel, Field

from quizforge.engine.models import RankedUser


class RankedUserResponse(BaseModel):
    rank: int
    name: str
    email: str
    initials: str
    tests_completed: int
    avg_score: float
    questions_attempted: int
    final_score: float

    @classmethod
    def from_ranked(cls, ranked: RankedUser) -> "RankedUserResponse":
        return cls(
            rank=ranked.rank,
            name=ranked.user.name,
            email=ranked.user.email,
            initials=ranked.user.initials,
            tests_completed=ranked.tests_completed,
            avg_score=ranked.avg_score,
            questions_attempted=ranked.questions_attempted,
            final_score=ranked.final_score,
        )


class LeaderboardResponse(BaseModel):
    """Ranked users plus the caller's own position (None when unranked)."""

    entries: list[RankedUserResponse] = Field(default_factory=list)
    current_user_rank: int | None = None
    current_user_score: float | None = None
