"""Pydantic models for API requests and responses."""
from quizforge.models.auth import (
    MessageResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from quizforge.models.leaderboard import LeaderboardResponse, RankedUserResponse
from quizforge.models.session import (
    ChatRequest,
    CorrectionRequest,
    HistoryEntryResponse,
    InputMethodRequest,
    NavigateRequest,
    OptionAnswerRequest,
    SavedTestResponse,
    SessionStateResponse,
    StartTestRequest,
    TestConfigModel,
    TextAnswerRequest,
)

__all__ = [
    "MessageResponse",
    "ProfileResponse",
    "ProfileUpdateRequest",
    "TokenResponse",
    "UserLogin",
    "UserRegister",
    "UserResponse",
    "LeaderboardResponse",
    "RankedUserResponse",
    "ChatRequest",
    "CorrectionRequest",
    "HistoryEntryResponse",
    "InputMethodRequest",
    "NavigateRequest",
    "OptionAnswerRequest",
    "SavedTestResponse",
    "SessionStateResponse",
    "StartTestRequest",
    "TestConfigModel",
    "TextAnswerRequest",
]
