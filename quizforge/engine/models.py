"""Domain types shared by the session engine, scoring and ranking."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple


class QuestionStatus(str, enum.Enum):
    """Visit status of a question inside a running test."""

    UNVISITED = "unvisited"
    ATTEMPTED = "attempted"
    SKIPPED = "skipped"  # opened, then left without an answer


class TestInputMethod(str, enum.Enum):
    """Where the question material comes from."""

    __test__ = False  # not a pytest test class

    DOCUMENT = "document"
    SYLLABUS = "syllabus"
    TOPIC = "topic"


class LanguageOption(str, enum.Enum):
    ENGLISH = "English"
    HINDI = "Hindi"


class TestPhase(str, enum.Enum):
    """Phase tag of the test session state machine."""

    __test__ = False

    AUTH = "auth"
    HOME = "home"
    SETUP = "setup"
    CONFIRMATION = "confirmation"
    GENERATING = "generating"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REVIEW = "review"
    HISTORY = "history"
    VIEW_HISTORY_DETAILS = "view_history_details"
    PROFILE = "profile"
    LEADERBOARD = "leaderboard"


@dataclass
class Question:
    """
    A generated question plus the user's answer state.
    Either the choice fields (options, correct_answer_index) or
    correct_answer_text is populated, never both.
    """

    id: str
    question_text: str
    passage_text: Optional[str] = None
    options: Optional[List[str]] = None
    correct_answer_index: Optional[int] = None
    correct_answer_text: Optional[str] = None
    user_answer_index: Optional[int] = None
    user_answer_text: Optional[str] = None
    status: QuestionStatus = QuestionStatus.UNVISITED
    explanation: Optional[str] = None
    was_corrected_by_user: bool = False
    is_marked_for_review: bool = False

    def __post_init__(self) -> None:
        has_choice = bool(self.options) or self.correct_answer_index is not None
        has_text = self.correct_answer_text is not None
        if has_choice == has_text:
            raise ValueError(
                f"Question {self.id} must be either multiple-choice or free-text"
            )
        if has_choice:
            if not self.options or self.correct_answer_index is None:
                raise ValueError(
                    f"Question {self.id} needs options and a correct option index"
                )
            if not 0 <= self.correct_answer_index < len(self.options):
                raise ValueError(
                    f"Question {self.id} has correct option index out of range"
                )

    @property
    def is_choice(self) -> bool:
        return bool(self.options)


@dataclass(frozen=True)
class TimeSettings:
    """Either untimed, or a fixed budget in seconds for the whole test."""

    type: str = "untimed"  # "timed" | "untimed"
    total_seconds: Optional[int] = None

    def __post_init__(self) -> None:
        if self.type not in ("timed", "untimed"):
            raise ValueError(f"Unknown time settings type: {self.type}")
        if self.type == "timed" and (
            self.total_seconds is None or self.total_seconds < 0
        ):
            raise ValueError("Timed tests need a non-negative total_seconds")

    @classmethod
    def timed(cls, total_seconds: int) -> "TimeSettings":
        return cls(type="timed", total_seconds=total_seconds)

    @classmethod
    def untimed(cls) -> "TimeSettings":
        return cls(type="untimed")

    @property
    def is_timed(self) -> bool:
        return self.type == "timed"

    @property
    def duration_seconds(self) -> Optional[int]:
        """Total duration, None for unlimited time."""
        return self.total_seconds if self.is_timed else None


@dataclass(frozen=True)
class NegativeMarkingSettings:
    enabled: bool = False
    marks_per_question: float = 0.0


@dataclass(frozen=True)
class TestConfig:
    """Settings for one generation run. Only test_name may change later."""

    __test__ = False

    input_method: TestInputMethod
    content: str
    num_questions: int
    time_settings: TimeSettings = field(default_factory=TimeSettings)
    negative_marking: NegativeMarkingSettings = field(
        default_factory=NegativeMarkingSettings
    )
    test_name: str = ""
    mime_type: Optional[str] = None
    original_file_name: Optional[str] = None
    selected_language: Optional[LanguageOption] = None
    difficulty_level: Optional[int] = None  # 1..5, syllabus/topic only
    custom_instructions: Optional[str] = None
    tita_enabled: bool = False


@dataclass(frozen=True)
class ScoreResult:
    score_percentage: float
    correct: int
    incorrect: int
    attempted: int
    total: int


@dataclass(frozen=True)
class HistoryEntry:
    """Scored snapshot of a finished test, keyed by its session id."""

    id: str
    test_name: str
    date_completed: datetime
    score_percentage: float
    total_questions: int
    correct_answers: int
    attempted_questions: int
    negative_marking: NegativeMarkingSettings
    original_config: TestConfig
    questions: Tuple[Question, ...] = ()
    was_corrected_by_user: bool = False


@dataclass(frozen=True)
class InProgressSnapshot:
    """Everything needed to put a running test back on screen."""

    questions: Tuple[Question, ...]
    current_question_index: int
    time_remaining_seconds: Optional[int]
    test_duration_seconds: Optional[int]
    config: TestConfig
    session_id: str


@dataclass(frozen=True)
class SavedTest:
    """A paused test stored durably by "save and exit"."""

    id: str
    questions: Tuple[Question, ...]
    current_question_index: int
    time_remaining_seconds: Optional[int]
    test_duration_seconds: Optional[int]
    config: TestConfig
    session_id: str
    saved_at: datetime


@dataclass(frozen=True)
class UserIdentity:
    name: str
    email: str
    initials: str


@dataclass(frozen=True)
class RankedUser:
    rank: int
    user: UserIdentity
    tests_completed: int
    avg_score: float
    questions_attempted: int
    final_score: float
