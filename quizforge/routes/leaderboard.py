"""Leaderboard routes."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DbSession

from quizforge.database import get_db
from quizforge.dependencies.auth import get_optional_user
from quizforge.engine.ranking import rank_users
from quizforge.models.db.user import User
from quizforge.models.leaderboard import LeaderboardResponse, RankedUserResponse
from quizforge.services import persistence_service

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("", response_model=LeaderboardResponse)
async def get_leaderboard(
    db: Annotated[DbSession, Depends(get_db)],
    current_user: Annotated[User | None, Depends(get_optional_user)],
) -> LeaderboardResponse:
    """Rank every user with history; recomputed on each request."""
    users, histories = persistence_service.get_leaderboard_raw(db)
    ranked = rank_users(users, histories)

    response = LeaderboardResponse(
        entries=[RankedUserResponse.from_ranked(item) for item in ranked]
    )
    if current_user is not None:
        for item in ranked:
            if item.user.email == current_user.email:
                response.current_user_rank = item.rank
                response.current_user_score = item.final_score
                break
    return response
