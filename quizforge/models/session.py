"""Pydantic models for the test session."""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from quizforge.config import DEFAULT_NUM_QUESTIONS
from quizforge.engine.models import (
    HistoryEntry,
    LanguageOption,
    NegativeMarkingSettings,
    Question,
    QuestionStatus,
    SavedTest,
    ScoreResult,
    TestConfig,
    TestInputMethod,
    TestPhase,
    TimeSettings,
)
from quizforge.engine.state_machine import SessionState

# correct answers stay hidden until the test is submitted
_HIDDEN_ANSWER_PHASES = (TestPhase.CONFIRMATION, TestPhase.IN_PROGRESS)


class TimeSettingsModel(BaseModel):
    type: Literal["timed", "untimed"] = "untimed"
    total_seconds: int | None = Field(None, ge=0)

    def to_settings(self) -> TimeSettings:
        if self.type == "timed":
            return TimeSettings.timed(self.total_seconds or 0)
        return TimeSettings.untimed()


class NegativeMarkingModel(BaseModel):
    enabled: bool = False
    marks_per_question: float = Field(0.0, ge=0)


class TestConfigModel(BaseModel):
    """Test configuration; input method defaults to the one chosen on home."""

    __test__ = False

    input_method: TestInputMethod | None = None
    content: str = ""
    num_questions: int = Field(DEFAULT_NUM_QUESTIONS, ge=0)
    time_settings: TimeSettingsModel = Field(default_factory=TimeSettingsModel)
    negative_marking: NegativeMarkingModel = Field(default_factory=NegativeMarkingModel)
    test_name: str = ""
    mime_type: str | None = None
    original_file_name: str | None = None
    selected_language: LanguageOption | None = None
    difficulty_level: int | None = Field(None, ge=1, le=5)
    custom_instructions: str | None = None
    tita_enabled: bool = False

    def to_config(self, input_method: TestInputMethod) -> TestConfig:
        return TestConfig(
            input_method=input_method,
            content=self.content,
            num_questions=self.num_questions,
            time_settings=self.time_settings.to_settings(),
            negative_marking=NegativeMarkingSettings(
                enabled=self.negative_marking.enabled,
                marks_per_question=self.negative_marking.marks_per_question,
            ),
            test_name=self.test_name.strip(),
            mime_type=self.mime_type,
            original_file_name=self.original_file_name,
            selected_language=self.selected_language,
            difficulty_level=self.difficulty_level,
            custom_instructions=self.custom_instructions,
            tita_enabled=self.tita_enabled,
        )

    @classmethod
    def from_config(cls, config: TestConfig) -> "TestConfigModel":
        return cls(
            input_method=config.input_method,
            # documents can be large base64 payloads
            content="" if config.input_method == TestInputMethod.DOCUMENT else config.content,
            num_questions=config.num_questions,
            time_settings=TimeSettingsModel(
                type=config.time_settings.type,
                total_seconds=config.time_settings.total_seconds,
            ),
            negative_marking=NegativeMarkingModel(
                enabled=config.negative_marking.enabled,
                marks_per_question=config.negative_marking.marks_per_question,
            ),
            test_name=config.test_name,
            mime_type=config.mime_type,
            original_file_name=config.original_file_name,
            selected_language=config.selected_language,
            difficulty_level=config.difficulty_level,
            custom_instructions=config.custom_instructions,
            tita_enabled=config.tita_enabled,
        )


class QuestionModel(BaseModel):
    id: str
    passage_text: str | None = None
    question_text: str
    options: list[str] | None = None
    correct_answer_index: int | None = None
    correct_answer_text: str | None = None
    user_answer_index: int | None = None
    user_answer_text: str | None = None
    status: QuestionStatus
    explanation: str | None = None
    was_corrected_by_user: bool = False
    is_marked_for_review: bool = False

    @classmethod
    def from_question(cls, question: Question, reveal: bool = True) -> "QuestionModel":
        return cls(
            id=question.id,
            passage_text=question.passage_text,
            question_text=question.question_text,
            options=question.options,
            correct_answer_index=question.correct_answer_index if reveal else None,
            correct_answer_text=question.correct_answer_text if reveal else None,
            user_answer_index=question.user_answer_index,
            user_answer_text=question.user_answer_text,
            status=question.status,
            explanation=question.explanation if reveal else None,
            was_corrected_by_user=question.was_corrected_by_user,
            is_marked_for_review=question.is_marked_for_review,
        )


class ScoreModel(BaseModel):
    score_percentage: float
    correct: int
    incorrect: int
    attempted: int
    total: int

    @classmethod
    def from_result(cls, result: ScoreResult) -> "ScoreModel":
        return cls(
            score_percentage=result.score_percentage,
            correct=result.correct,
            incorrect=result.incorrect,
            attempted=result.attempted,
            total=result.total,
        )


class HistoryEntryResponse(BaseModel):
    id: str
    test_name: str
    date_completed: datetime
    score_percentage: float
    total_questions: int
    correct_answers: int
    attempted_questions: int
    negative_marking: NegativeMarkingModel
    was_corrected_by_user: bool
    original_config: TestConfigModel
    questions: list[QuestionModel] | None = None

    @classmethod
    def from_entry(cls, entry: HistoryEntry, with_questions: bool = False) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            test_name=entry.test_name,
            date_completed=entry.date_completed,
            score_percentage=entry.score_percentage,
            total_questions=entry.total_questions,
            correct_answers=entry.correct_answers,
            attempted_questions=entry.attempted_questions,
            negative_marking=NegativeMarkingModel(
                enabled=entry.negative_marking.enabled,
                marks_per_question=entry.negative_marking.marks_per_question,
            ),
            was_corrected_by_user=entry.was_corrected_by_user,
            original_config=TestConfigModel.from_config(entry.original_config),
            questions=(
                [QuestionModel.from_question(q) for q in entry.questions]
                if with_questions
                else None
            ),
        )


class SavedTestResponse(BaseModel):
    id: str
    session_id: str
    test_name: str
    saved_at: datetime
    current_question_index: int
    time_remaining_seconds: int | None
    test_duration_seconds: int | None
    total_questions: int
    attempted_questions: int

    @classmethod
    def from_saved(cls, saved: SavedTest) -> "SavedTestResponse":
        return cls(
            id=saved.id,
            session_id=saved.session_id,
            test_name=saved.config.test_name,
            saved_at=saved.saved_at,
            current_question_index=saved.current_question_index,
            time_remaining_seconds=saved.time_remaining_seconds,
            test_duration_seconds=saved.test_duration_seconds,
            total_questions=len(saved.questions),
            attempted_questions=sum(
                1 for q in saved.questions if q.status == QuestionStatus.ATTEMPTED
            ),
        )


class SessionStateResponse(BaseModel):
    """Current session of the signed-in user."""

    phase: TestPhase
    input_method: TestInputMethod | None = None
    config: TestConfigModel | None = None
    questions: list[QuestionModel] = Field(default_factory=list)
    current_index: int = 0
    time_remaining_seconds: int | None = 0
    test_duration_seconds: int | None = 0
    session_id: str | None = None
    is_retake: bool = False
    viewing_entry: HistoryEntryResponse | None = None
    viewing_from_history: bool = False
    result: ScoreModel | None = None
    error: str | None = None
    notice: str | None = None
    alert: str | None = None
    resume_available: bool = False

    @classmethod
    def from_state(
        cls,
        state: SessionState,
        alert: str | None = None,
        resume_available: bool = False,
    ) -> "SessionStateResponse":
        reveal = state.phase not in _HIDDEN_ANSWER_PHASES
        return cls(
            phase=state.phase,
            input_method=state.input_method,
            config=TestConfigModel.from_config(state.config) if state.config else None,
            questions=[QuestionModel.from_question(q, reveal) for q in state.questions],
            current_index=state.current_index,
            time_remaining_seconds=state.time_remaining_seconds,
            test_duration_seconds=state.test_duration_seconds,
            session_id=state.session_id,
            is_retake=state.is_retake,
            viewing_entry=(
                HistoryEntryResponse.from_entry(state.viewing_entry, with_questions=True)
                if state.viewing_entry
                else None
            ),
            viewing_from_history=state.viewing_from_history,
            result=ScoreModel.from_result(state.result) if state.result else None,
            error=state.error,
            notice=state.notice,
            alert=alert,
            resume_available=resume_available,
        )


class InputMethodRequest(BaseModel):
    method: TestInputMethod


class StartTestRequest(BaseModel):
    test_name: str | None = Field(None, max_length=255)


class OptionAnswerRequest(BaseModel):
    option_index: int = Field(..., ge=0)


class TextAnswerRequest(BaseModel):
    text: str = ""


class NavigateRequest(BaseModel):
    index: int = Field(..., ge=0)


class CorrectionRequest(BaseModel):
    option_index: int | None = Field(None, ge=0)
    text: str | None = None


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
