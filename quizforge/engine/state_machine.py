"""
Test session state machine.

All session state lives in an immutable SessionState. ``transition`` is the
only way to change it: it takes the current state and an event and returns
the next state plus the effects the caller must carry out (start or stop
the countdown, mirror or clear the transient snapshot, generate questions,
persist results). The module does no I/O; ids and timestamps arrive inside
events.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Optional, Sequence, Tuple, Union

from quizforge.engine.config_rules import (
    configs_equivalent,
    default_test_name,
    next_retake_name,
)
from quizforge.engine.models import (
    HistoryEntry,
    InProgressSnapshot,
    Question,
    QuestionStatus,
    SavedTest,
    ScoreResult,
    TestConfig,
    TestInputMethod,
    TestPhase,
)
from quizforge.engine.scoring import score_questions

NO_INPUT_METHOD_MESSAGE = "No input method selected. Please go back to home."
NO_QUESTIONS_MESSAGE = (
    "No questions were generated. Please check your input, selected language, "
    "difficulty, or try different settings."
)
SAVED_TEST_MESSAGE = "Test saved! You can find it in your Profile > Saved Tests."
SAVE_FAILED_MESSAGE = "Failed to save test. Please try again."


class InvalidTransitionError(Exception):
    """Raised when an event is not allowed in the current phase."""

    def __init__(self, phase: TestPhase, event: object):
        self.phase = phase
        self.event = event
        super().__init__(
            f"{type(event).__name__} is not allowed in phase '{phase.value}'"
        )


@dataclass(frozen=True)
class SessionState:
    phase: TestPhase = TestPhase.AUTH
    input_method: Optional[TestInputMethod] = None
    config: Optional[TestConfig] = None
    questions: Tuple[Question, ...] = ()
    current_index: int = 0
    # None means unlimited time
    time_remaining_seconds: Optional[int] = 0
    test_duration_seconds: Optional[int] = 0
    session_id: Optional[str] = None
    is_retake: bool = False
    viewing_entry: Optional[HistoryEntry] = None
    viewing_from_history: bool = False
    result: Optional[ScoreResult] = None
    error: Optional[str] = None
    notice: Optional[str] = None


# ---- Events ----

@dataclass(frozen=True)
class SignedIn:
    pass


@dataclass(frozen=True)
class SignedOut:
    pass


@dataclass(frozen=True)
class ChooseInputMethod:
    method: TestInputMethod


@dataclass(frozen=True)
class SubmitConfig:
    config: TestConfig


@dataclass(frozen=True)
class GenerationSucceeded:
    questions: Tuple[Question, ...]
    # the config the questions were generated for
    config: TestConfig


@dataclass(frozen=True)
class GenerationFailed:
    message: str
    config: TestConfig


@dataclass(frozen=True)
class EditSettings:
    pass


@dataclass(frozen=True)
class StartTest:
    new_session_id: str
    test_name: Optional[str] = None


@dataclass(frozen=True)
class SelectOption:
    question_index: int
    option_index: int


@dataclass(frozen=True)
class InputAnswerText:
    question_index: int
    text: str


@dataclass(frozen=True)
class ToggleMarkForReview:
    question_index: int


@dataclass(frozen=True)
class ClearSelection:
    question_index: int


@dataclass(frozen=True)
class NavigateQuestion:
    index: int


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class SubmitTest:
    pass


@dataclass(frozen=True)
class EnterReview:
    pass


@dataclass(frozen=True)
class BackToResults:
    pass


@dataclass(frozen=True)
class OverrideCorrectAnswer:
    question_index: int
    option_index: Optional[int] = None
    text: Optional[str] = None


@dataclass(frozen=True)
class ExplanationReady:
    question_index: int
    explanation: str


@dataclass(frozen=True)
class ApplyCorrections:
    pass


@dataclass(frozen=True)
class SaveAndExit:
    saved_test_id: str
    saved_at: datetime


@dataclass(frozen=True)
class SavedTestStored:
    ok: bool


@dataclass(frozen=True)
class ResumeSnapshot:
    snapshot: InProgressSnapshot


@dataclass(frozen=True)
class ResumeSavedTest:
    saved_test: SavedTest


@dataclass(frozen=True)
class CancelInProgress:
    pass


@dataclass(frozen=True)
class GoHome:
    pass


@dataclass(frozen=True)
class OpenHistory:
    pass


@dataclass(frozen=True)
class ViewHistoryDetails:
    entry: HistoryEntry


@dataclass(frozen=True)
class ViewScoreFromHistory:
    entry: HistoryEntry


@dataclass(frozen=True)
class RetakeFromHistory:
    entry: HistoryEntry
    history: Tuple[HistoryEntry, ...]
    new_session_id: str


@dataclass(frozen=True)
class OpenProfile:
    pass


@dataclass(frozen=True)
class OpenLeaderboard:
    pass


Event = Union[
    SignedIn, SignedOut, ChooseInputMethod, SubmitConfig, GenerationSucceeded,
    GenerationFailed, EditSettings, StartTest, SelectOption, InputAnswerText,
    ToggleMarkForReview, ClearSelection, NavigateQuestion, Tick, SubmitTest,
    EnterReview, BackToResults, OverrideCorrectAnswer, ExplanationReady,
    ApplyCorrections, SaveAndExit, SavedTestStored, ResumeSnapshot,
    ResumeSavedTest, CancelInProgress, GoHome, OpenHistory, ViewHistoryDetails,
    ViewScoreFromHistory, RetakeFromHistory, OpenProfile, OpenLeaderboard,
]


# ---- Effects ----

@dataclass(frozen=True)
class StartTimer:
    pass


@dataclass(frozen=True)
class StopTimer:
    pass


@dataclass(frozen=True)
class MirrorSnapshot:
    snapshot: InProgressSnapshot


@dataclass(frozen=True)
class ClearSnapshot:
    pass


@dataclass(frozen=True)
class GenerateQuestions:
    config: TestConfig


@dataclass(frozen=True)
class RecordResult:
    """Persist a scored session; updates the entry when session_id exists."""

    session_id: str
    test_name: str
    config: TestConfig
    questions: Tuple[Question, ...]
    score: ScoreResult
    was_corrected_by_user: bool


@dataclass(frozen=True)
class StoreSavedTest:
    saved_test: SavedTest


@dataclass(frozen=True)
class DeleteSavedTest:
    saved_test_id: str


Effect = Union[
    StartTimer, StopTimer, MirrorSnapshot, ClearSnapshot, GenerateQuestions,
    RecordResult, StoreSavedTest, DeleteSavedTest,
]


@dataclass(frozen=True)
class Transition:
    state: SessionState
    effects: Tuple[Effect, ...] = field(default_factory=tuple)


# ---- Helpers ----

def snapshot_of(state: SessionState) -> InProgressSnapshot:
    return InProgressSnapshot(
        questions=state.questions,
        current_question_index=state.current_index,
        time_remaining_seconds=state.time_remaining_seconds,
        test_duration_seconds=state.test_duration_seconds,
        config=state.config,
        session_id=state.session_id,
    )


def fresh_questions(questions: Sequence[Question]) -> Tuple[Question, ...]:
    """Questions ready for a new attempt: no answers, no flags."""
    return tuple(
        replace(
            q,
            status=QuestionStatus.UNVISITED,
            user_answer_index=None,
            user_answer_text="",
            explanation=None,
            was_corrected_by_user=False,
            is_marked_for_review=False,
        )
        for q in questions
    )


def _check_index(state: SessionState, index: int) -> Question:
    if not 0 <= index < len(state.questions):
        raise ValueError(f"Question index {index} out of range")
    return state.questions[index]


def _with_question(state: SessionState, index: int, **changes) -> SessionState:
    question = _check_index(state, index)
    questions = list(state.questions)
    questions[index] = replace(question, **changes)
    return replace(state, questions=tuple(questions))


def _ready_for_confirmation(
    state: SessionState, questions: Sequence[Question]
) -> SessionState:
    duration = state.config.time_settings.duration_seconds
    return replace(
        state,
        phase=TestPhase.CONFIRMATION,
        questions=fresh_questions(questions),
        current_index=0,
        test_duration_seconds=duration,
        time_remaining_seconds=duration,
        error=None,
    )


def _should_reuse_questions(state: SessionState, config: TestConfig) -> bool:
    if not state.questions:
        return False
    if state.is_retake:
        return True
    return state.config is not None and configs_equivalent(state.config, config)


def _finish(state: SessionState, corrected: bool) -> Transition:
    """Score, persist and move to COMPLETED."""
    if corrected:
        questions = state.questions
    else:
        questions = tuple(
            replace(q, status=QuestionStatus.SKIPPED)
            if q.status == QuestionStatus.UNVISITED
            else q
            for q in state.questions
        )
    negative_marking = state.config.negative_marking
    result = score_questions(questions, negative_marking)

    effects: list[Effect] = []
    if state.session_id and questions:
        effects.append(
            RecordResult(
                session_id=state.session_id,
                test_name=state.config.test_name or "Untitled Test",
                config=state.config,
                questions=questions,
                score=result,
                was_corrected_by_user=corrected
                or any(q.was_corrected_by_user for q in questions),
            )
        )
    effects.append(ClearSnapshot())
    next_state = replace(
        state,
        phase=TestPhase.COMPLETED,
        questions=questions,
        result=result,
        error=None,
    )
    return Transition(next_state, tuple(effects))


# ---- Handlers ----

def _on_signed_in(state: SessionState, event: SignedIn) -> Transition:
    if state.phase != TestPhase.AUTH:
        return Transition(state)
    return Transition(replace(state, phase=TestPhase.HOME))


def _on_signed_out(state: SessionState, event: SignedOut) -> Transition:
    return Transition(SessionState(), (ClearSnapshot(),))


def _on_choose_input_method(
    state: SessionState, event: ChooseInputMethod
) -> Transition:
    config = state.config
    if (
        state.phase != TestPhase.SETUP
        or config is None
        or config.input_method != event.method
        or state.is_retake
    ):
        config = None
    if config is None:
        # a new attempt: nothing of a finished or abandoned session carries over
        state = replace(
            state,
            questions=(),
            current_index=0,
            time_remaining_seconds=0,
            test_duration_seconds=0,
            session_id=None,
            viewing_entry=None,
            viewing_from_history=False,
            result=None,
        )
    return Transition(
        replace(
            state,
            phase=TestPhase.SETUP,
            input_method=event.method,
            config=config,
            is_retake=False,
            error=None,
            notice=None,
        )
    )


def _on_submit_config(state: SessionState, event: SubmitConfig) -> Transition:
    if state.input_method is None and not (state.is_retake and state.config):
        return Transition(
            replace(state, phase=TestPhase.HOME, error=NO_INPUT_METHOD_MESSAGE)
        )

    if state.config is not None and state.config.test_name:
        test_name = state.config.test_name
    else:
        test_name = default_test_name(event.config)
    config = replace(event.config, test_name=test_name)

    if _should_reuse_questions(state, config):
        state = replace(state, config=config)
        return Transition(_ready_for_confirmation(state, state.questions))

    return Transition(
        replace(state, phase=TestPhase.GENERATING, config=config, error=None),
        (GenerateQuestions(config),),
    )


def _awaiting_generation(state: SessionState, config: TestConfig) -> bool:
    """False for results of an abandoned run, which must be dropped."""
    return state.phase == TestPhase.GENERATING and state.config == config


def _on_generation_succeeded(
    state: SessionState, event: GenerationSucceeded
) -> Transition:
    if not _awaiting_generation(state, event.config):
        return Transition(state)
    if not event.questions:
        return Transition(
            replace(state, phase=TestPhase.SETUP, error=NO_QUESTIONS_MESSAGE)
        )
    return Transition(_ready_for_confirmation(state, event.questions))


def _on_generation_failed(state: SessionState, event: GenerationFailed) -> Transition:
    if not _awaiting_generation(state, event.config):
        return Transition(state)
    return Transition(replace(state, phase=TestPhase.SETUP, error=event.message))


def _on_edit_settings(state: SessionState, event: EditSettings) -> Transition:
    return Transition(replace(state, phase=TestPhase.SETUP, error=None))


def _on_start_test(state: SessionState, event: StartTest) -> Transition:
    session_id = state.session_id
    if (
        not session_id
        or any(q.was_corrected_by_user for q in state.questions)
        or state.is_retake
    ):
        session_id = event.new_session_id

    config = state.config
    if event.test_name and event.test_name.strip():
        config = replace(config, test_name=event.test_name.strip())

    questions = tuple(
        replace(q, was_corrected_by_user=False, is_marked_for_review=False)
        for q in state.questions
    )
    return Transition(
        replace(
            state,
            phase=TestPhase.IN_PROGRESS,
            config=config,
            questions=questions,
            session_id=session_id,
            result=None,
            viewing_from_history=False,
            error=None,
        )
    )


def _on_select_option(state: SessionState, event: SelectOption) -> Transition:
    question = _check_index(state, event.question_index)
    if not question.is_choice:
        raise ValueError("Question does not have options")
    if not 0 <= event.option_index < len(question.options):
        raise ValueError(f"Option index {event.option_index} out of range")
    return Transition(
        _with_question(
            state,
            event.question_index,
            user_answer_index=event.option_index,
            status=QuestionStatus.ATTEMPTED,
        )
    )


def _on_input_answer_text(state: SessionState, event: InputAnswerText) -> Transition:
    question = _check_index(state, event.question_index)
    if question.is_choice:
        raise ValueError("Question expects an option, not typed text")
    return Transition(
        _with_question(
            state,
            event.question_index,
            user_answer_text=event.text,
            status=QuestionStatus.ATTEMPTED,
        )
    )


def _on_toggle_mark(state: SessionState, event: ToggleMarkForReview) -> Transition:
    question = _check_index(state, event.question_index)
    return Transition(
        _with_question(
            state,
            event.question_index,
            is_marked_for_review=not question.is_marked_for_review,
        )
    )


def _on_clear_selection(state: SessionState, event: ClearSelection) -> Transition:
    question = _check_index(state, event.question_index)
    status = question.status
    if status == QuestionStatus.ATTEMPTED:
        status = QuestionStatus.SKIPPED
    return Transition(
        _with_question(
            state,
            event.question_index,
            user_answer_index=None,
            user_answer_text="",
            status=status,
        )
    )


def _on_navigate(state: SessionState, event: NavigateQuestion) -> Transition:
    _check_index(state, event.index)
    current = state.current_index
    if (
        current != event.index
        and 0 <= current < len(state.questions)
        and state.questions[current].status == QuestionStatus.UNVISITED
    ):
        state = _with_question(state, current, status=QuestionStatus.SKIPPED)
    return Transition(replace(state, current_index=event.index))


def _on_tick(state: SessionState, event: Tick) -> Transition:
    if state.phase != TestPhase.IN_PROGRESS:
        return Transition(state)
    remaining = state.time_remaining_seconds
    if remaining is None:
        return Transition(state)
    if remaining > 0:
        remaining -= 1
        state = replace(state, time_remaining_seconds=remaining)
    duration = state.test_duration_seconds
    if remaining == 0 and duration is not None and duration > 0:
        return _finish(state, corrected=False)
    return Transition(state)


def _on_submit_test(state: SessionState, event: SubmitTest) -> Transition:
    return _finish(state, corrected=False)


def _on_enter_review(state: SessionState, event: EnterReview) -> Transition:
    questions = tuple(
        replace(q, was_corrected_by_user=bool(q.was_corrected_by_user))
        for q in state.questions
    )
    return Transition(replace(state, phase=TestPhase.REVIEW, questions=questions))


def _on_back_to_results(state: SessionState, event: BackToResults) -> Transition:
    return Transition(replace(state, phase=TestPhase.COMPLETED))


def _on_override_correct_answer(
    state: SessionState, event: OverrideCorrectAnswer
) -> Transition:
    question = _check_index(state, event.question_index)
    if question.is_choice:
        if event.option_index is None:
            raise ValueError("A correct option index is required")
        if not 0 <= event.option_index < len(question.options):
            raise ValueError(f"Option index {event.option_index} out of range")
        changes = {"correct_answer_index": event.option_index}
    else:
        if event.text is None:
            raise ValueError("A correct answer text is required")
        changes = {"correct_answer_text": event.text}
    return Transition(
        _with_question(
            state,
            event.question_index,
            explanation=None,
            was_corrected_by_user=True,
            **changes,
        )
    )


def _on_explanation_ready(state: SessionState, event: ExplanationReady) -> Transition:
    if state.phase not in (TestPhase.REVIEW, TestPhase.COMPLETED):
        return Transition(state)
    return Transition(
        _with_question(state, event.question_index, explanation=event.explanation)
    )


def _on_apply_corrections(state: SessionState, event: ApplyCorrections) -> Transition:
    return _finish(state, corrected=True)


def _on_save_and_exit(state: SessionState, event: SaveAndExit) -> Transition:
    if state.config is None or not state.session_id:
        return Transition(replace(state, phase=TestPhase.HOME))
    saved = SavedTest(
        id=event.saved_test_id,
        questions=state.questions,
        current_question_index=state.current_index,
        time_remaining_seconds=state.time_remaining_seconds,
        test_duration_seconds=state.test_duration_seconds,
        config=state.config,
        session_id=state.session_id,
        saved_at=event.saved_at,
    )
    return Transition(state, (StoreSavedTest(saved),))


def _on_saved_test_stored(state: SessionState, event: SavedTestStored) -> Transition:
    if state.phase != TestPhase.IN_PROGRESS:
        return Transition(state)
    if not event.ok:
        return Transition(replace(state, notice=SAVE_FAILED_MESSAGE))
    return Transition(
        replace(state, phase=TestPhase.HOME, notice=SAVED_TEST_MESSAGE),
        (ClearSnapshot(),),
    )


def _resume(
    state: SessionState,
    questions: Sequence[Question],
    current_index: int,
    remaining: Optional[int],
    duration: Optional[int],
    config: TestConfig,
    session_id: str,
) -> SessionState:
    return replace(
        state,
        phase=TestPhase.IN_PROGRESS,
        input_method=config.input_method,
        questions=tuple(questions),
        current_index=current_index,
        time_remaining_seconds=remaining,
        test_duration_seconds=duration,
        config=config,
        session_id=session_id,
        is_retake=False,
        result=None,
        viewing_from_history=False,
        error=None,
        notice=None,
    )


def _on_resume_snapshot(state: SessionState, event: ResumeSnapshot) -> Transition:
    snap = event.snapshot
    next_state = _resume(
        state,
        snap.questions,
        snap.current_question_index,
        snap.time_remaining_seconds,
        snap.test_duration_seconds,
        snap.config,
        snap.session_id,
    )
    return Transition(next_state, (ClearSnapshot(),))


def _on_resume_saved_test(state: SessionState, event: ResumeSavedTest) -> Transition:
    saved = event.saved_test
    next_state = _resume(
        state,
        saved.questions,
        saved.current_question_index,
        saved.time_remaining_seconds,
        saved.test_duration_seconds,
        saved.config,
        saved.session_id,
    )
    return Transition(next_state, (DeleteSavedTest(saved.id),))


def _on_cancel_in_progress(state: SessionState, event: CancelInProgress) -> Transition:
    return Transition(state, (ClearSnapshot(),))


def _on_go_home(state: SessionState, event: GoHome) -> Transition:
    if state.phase in (TestPhase.HOME, TestPhase.PROFILE, TestPhase.LEADERBOARD):
        return Transition(replace(state, phase=TestPhase.HOME))
    return Transition(SessionState(phase=TestPhase.HOME), (ClearSnapshot(),))


def _on_open_history(state: SessionState, event: OpenHistory) -> Transition:
    return Transition(
        replace(state, phase=TestPhase.HISTORY, is_retake=False, error=None)
    )


def _on_view_history_details(
    state: SessionState, event: ViewHistoryDetails
) -> Transition:
    return Transition(
        replace(state, phase=TestPhase.VIEW_HISTORY_DETAILS, viewing_entry=event.entry)
    )


def _on_view_score_from_history(
    state: SessionState, event: ViewScoreFromHistory
) -> Transition:
    entry = event.entry
    result = ScoreResult(
        score_percentage=entry.score_percentage,
        correct=entry.correct_answers,
        incorrect=entry.attempted_questions - entry.correct_answers,
        attempted=entry.attempted_questions,
        total=entry.total_questions,
    )
    return Transition(
        replace(
            state,
            phase=TestPhase.COMPLETED,
            questions=tuple(entry.questions),
            config=replace(entry.original_config, test_name=entry.test_name),
            session_id=entry.id,
            viewing_from_history=True,
            result=result,
        )
    )


def _on_retake_from_history(
    state: SessionState, event: RetakeFromHistory
) -> Transition:
    entry = event.entry
    config = replace(
        entry.original_config, test_name=next_retake_name(entry, event.history)
    )
    return Transition(
        replace(
            state,
            phase=TestPhase.SETUP,
            input_method=config.input_method,
            config=config,
            questions=tuple(entry.questions),
            session_id=event.new_session_id,
            is_retake=True,
            result=None,
            error=None,
        )
    )


def _on_open_profile(state: SessionState, event: OpenProfile) -> Transition:
    return Transition(replace(state, phase=TestPhase.PROFILE))


def _on_open_leaderboard(state: SessionState, event: OpenLeaderboard) -> Transition:
    return Transition(replace(state, phase=TestPhase.LEADERBOARD))


_ANY = None
_IDLE = frozenset(set(TestPhase) - {TestPhase.AUTH, TestPhase.IN_PROGRESS, TestPhase.GENERATING})
_AUTHENTICATED = frozenset(set(TestPhase) - {TestPhase.AUTH})

# event type -> (handler, phases in which the event is accepted)
_HANDLERS: dict[type, tuple[Callable[..., Transition], Optional[frozenset]]] = {
    SignedIn: (_on_signed_in, _ANY),
    SignedOut: (_on_signed_out, _ANY),
    ChooseInputMethod: (_on_choose_input_method, frozenset({TestPhase.HOME, TestPhase.SETUP})),
    SubmitConfig: (_on_submit_config, frozenset({TestPhase.SETUP})),
    GenerationSucceeded: (_on_generation_succeeded, _AUTHENTICATED),
    GenerationFailed: (_on_generation_failed, _AUTHENTICATED),
    EditSettings: (_on_edit_settings, frozenset({TestPhase.CONFIRMATION})),
    StartTest: (_on_start_test, frozenset({TestPhase.CONFIRMATION})),
    SelectOption: (_on_select_option, frozenset({TestPhase.IN_PROGRESS})),
    InputAnswerText: (_on_input_answer_text, frozenset({TestPhase.IN_PROGRESS})),
    ToggleMarkForReview: (_on_toggle_mark, frozenset({TestPhase.IN_PROGRESS})),
    ClearSelection: (_on_clear_selection, frozenset({TestPhase.IN_PROGRESS})),
    NavigateQuestion: (_on_navigate, frozenset({TestPhase.IN_PROGRESS})),
    Tick: (_on_tick, _ANY),
    SubmitTest: (_on_submit_test, frozenset({TestPhase.IN_PROGRESS})),
    EnterReview: (_on_enter_review, frozenset({TestPhase.COMPLETED})),
    BackToResults: (_on_back_to_results, frozenset({TestPhase.REVIEW})),
    OverrideCorrectAnswer: (_on_override_correct_answer, frozenset({TestPhase.REVIEW})),
    ExplanationReady: (_on_explanation_ready, _AUTHENTICATED),
    ApplyCorrections: (_on_apply_corrections, frozenset({TestPhase.REVIEW})),
    SaveAndExit: (_on_save_and_exit, frozenset({TestPhase.IN_PROGRESS})),
    SavedTestStored: (_on_saved_test_stored, _AUTHENTICATED),
    ResumeSnapshot: (_on_resume_snapshot, _IDLE),
    ResumeSavedTest: (_on_resume_saved_test, _IDLE),
    CancelInProgress: (_on_cancel_in_progress, _IDLE),
    GoHome: (_on_go_home, _AUTHENTICATED),
    OpenHistory: (_on_open_history, _IDLE),
    ViewHistoryDetails: (_on_view_history_details, _IDLE),
    ViewScoreFromHistory: (_on_view_score_from_history, _IDLE),
    RetakeFromHistory: (_on_retake_from_history, _IDLE),
    OpenProfile: (_on_open_profile, _IDLE),
    OpenLeaderboard: (_on_open_leaderboard, _IDLE),
}


def transition(state: SessionState, event: Event) -> Transition:
    """
    Apply ``event`` to ``state``.

    Besides the handler's own effects, the countdown is started when the
    phase enters IN_PROGRESS and stopped when it leaves, and every change
    made while IN_PROGRESS is mirrored into the transient snapshot.
    """
    try:
        handler, allowed = _HANDLERS[type(event)]
    except KeyError:
        raise TypeError(f"Unknown event: {event!r}") from None
    if allowed is not None and state.phase not in allowed:
        raise InvalidTransitionError(state.phase, event)

    result = handler(state, event)
    next_state = result.state
    effects = list(result.effects)

    was_running = state.phase == TestPhase.IN_PROGRESS
    is_running = next_state.phase == TestPhase.IN_PROGRESS
    if was_running and not is_running:
        effects.insert(0, StopTimer())
    if is_running and not was_running:
        effects.append(StartTimer())
    if is_running and next_state != state:
        effects.append(MirrorSnapshot(snapshot_of(next_state)))

    return Transition(next_state, tuple(effects))


class TestSessionMachine:
    """Holds the current SessionState of one user and feeds it events."""

    __test__ = False

    def __init__(self, state: SessionState | None = None):
        self.state = state or SessionState()

    @property
    def phase(self) -> TestPhase:
        return self.state.phase

    def dispatch(self, event: Event) -> Tuple[Effect, ...]:
        result = transition(self.state, event)
        self.state = result.state
        return result.effects
