"""Authentication dependencies for FastAPI."""
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session as DbSession

from quizforge.database import get_db
from quizforge.models.db.user import User
from quizforge.services.auth_service import (
    decode_token,
    find_login_session,
    get_user_by_id,
    touch_login_session,
)

# HTTP Bearer scheme for JWT
security = HTTPBearer(auto_error=False)


class _AuthFailure(Exception):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


def _resolve_user(
    credentials: HTTPAuthorizationCredentials | None, db: DbSession
) -> User:
    """User behind the bearer token; extends the login session on activity."""
    if credentials is None:
        raise _AuthFailure("Not authenticated")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise _AuthFailure("Invalid or expired token")

    jti = payload.get("jti")
    if jti:
        session = find_login_session(db, jti)
        if session is None:
            raise _AuthFailure("Session expired or invalidated")
        touch_login_session(db, session)

    user_id = payload.get("sub")
    if user_id is None:
        raise _AuthFailure("Invalid token payload")

    user = get_user_by_id(db, int(user_id))
    if user is None:
        raise _AuthFailure("User not found")
    if not user.is_active:
        raise _AuthFailure("User is inactive")
    return user


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[DbSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user.

    Raises:
        HTTPException: 401 if not authenticated or token is invalid.
    """
    try:
        return _resolve_user(credentials, db)
    except _AuthFailure as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_optional_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[DbSession, Depends(get_db)],
) -> User | None:
    """Get the current user if authenticated, otherwise None."""
    try:
        return _resolve_user(credentials, db)
    except _AuthFailure:
        return None
