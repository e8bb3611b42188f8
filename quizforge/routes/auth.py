"""Authentication routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session as DbSession

from quizforge.database import get_db
from quizforge.dependencies.auth import get_current_user, security
from quizforge.dependencies.session import get_session_controller
from quizforge.models.auth import (
    MessageResponse,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from quizforge.models.db.user import User
from quizforge.services.auth_service import (
    authenticate_user,
    create_user,
    decode_token,
    end_login_session,
    get_user_by_email,
    issue_token,
)
from quizforge.services.session_service import SessionController

router = APIRouter(prefix="/api/auth", tags=["auth"])

Credentials = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]
Db = Annotated[DbSession, Depends(get_db)]
Controller = Annotated[SessionController, Depends(get_session_controller)]


def _token_response(db: DbSession, user_id: int) -> TokenResponse:
    token, lifetime = issue_token(db, user_id)
    return TokenResponse(access_token=token, expires_in=lifetime)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(data: UserRegister, db: Db) -> User:
    """Create an account; initials are derived from the name."""
    if get_user_by_email(db, data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )
    return create_user(db, data.name, data.email, data.password)


@router.post("/login", response_model=TokenResponse)
async def login(data: UserLogin, db: Db, controller: Controller) -> TokenResponse:
    """Exchange credentials for a token and move the session past sign-in."""
    user = authenticate_user(db, data.email, data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is inactive",
        )

    response = _token_response(db, user.id)
    await controller.sign_in(user.id)
    return response


@router.post("/logout", response_model=MessageResponse)
async def logout(credentials: Credentials, db: Db, controller: Controller) -> MessageResponse:
    """Revoke the token and reset the user's test session."""
    claims = decode_token(credentials.credentials) if credentials else None
    if claims is None:
        return MessageResponse(message="Already logged out")

    if claims.get("jti"):
        end_login_session(db, claims["jti"])
    if claims.get("sub"):
        await controller.sign_out(int(claims["sub"]))
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    return current_user


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(credentials: Credentials, db: Db) -> TokenResponse:
    """Replace a valid token with a new one; the old token stops working."""
    claims = decode_token(credentials.credentials) if credentials else None
    if claims is None or claims.get("sub") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if claims.get("jti"):
        end_login_session(db, claims["jti"])
    return _token_response(db, int(claims["sub"]))
