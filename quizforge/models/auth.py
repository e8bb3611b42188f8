"""Pydantic models for accounts, tokens and the profile page."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

NAME_MAX_LENGTH = 100


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserRegister(UserLogin):
    """New account; initials are derived from the name."""

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    password: str = Field(..., min_length=6, max_length=100)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    message: str


class UserResponse(BaseModel):
    """Public view of a user, read straight from the ORM row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    initials: str
    is_active: bool = True
    created_at: datetime


class ProfileUpdateRequest(BaseModel):
    """Omitted fields are left unchanged."""

    name: str | None = Field(None, max_length=NAME_MAX_LENGTH)
    initials: str | None = Field(None, max_length=4)


class ProfileResponse(UserResponse):
    """User plus totals over their recorded test history."""

    tests_completed: int = 0
    average_score: float = 0.0
    questions_attempted: int = 0
    saved_tests: int = 0
