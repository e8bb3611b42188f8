"""Pure core: session state machine, scoring and leaderboard ranking."""
from quizforge.engine.ranking import rank_users
from quizforge.engine.scoring import score_questions
from quizforge.engine.state_machine import (
    InvalidTransitionError,
    SessionState,
    TestSessionMachine,
    transition,
)

__all__ = [
    "rank_users",
    "score_questions",
    "InvalidTransitionError",
    "SessionState",
    "TestSessionMachine",
    "transition",
]
