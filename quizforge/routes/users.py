"""User profile routes."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DbSession

from quizforge.database import get_db
from quizforge.dependencies.auth import get_current_user
from quizforge.models.auth import ProfileResponse, ProfileUpdateRequest, UserResponse
from quizforge.models.db.user import User
from quizforge.services import auth_service, persistence_service

router = APIRouter(prefix="/api/users", tags=["users"])


def _profile(db: DbSession, user: User) -> ProfileResponse:
    # read the identity fields only; User.saved_tests is a relationship, not a count
    profile = ProfileResponse(**UserResponse.model_validate(user).model_dump())
    profile.saved_tests = len(persistence_service.get_saved_tests(db, user.id))
    history = persistence_service.get_history(db, user.id)
    if history:
        profile.tests_completed = len(history)
        profile.average_score = sum(e.score_percentage for e in history) / len(history)
        profile.questions_attempted = sum(e.attempted_questions for e in history)
    return profile


@router.get("/me/profile", response_model=ProfileResponse)
async def get_profile(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> ProfileResponse:
    """Get current user's profile."""
    return _profile(db, current_user)


@router.patch("/me/profile", response_model=ProfileResponse)
async def update_profile(
    data: ProfileUpdateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> ProfileResponse:
    """Update name and initials; initials follow the name unless given."""
    user = auth_service.update_profile(db, current_user, data.name, data.initials)
    return _profile(db, user)
