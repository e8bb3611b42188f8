from __future__ import annotations

from typing import Any, Iterable

from quizforge.engine.models import (
    InProgressSnapshot,
    LanguageOption,
    NegativeMarkingSettings,
    Question,
    QuestionStatus,
    TestConfig,
    TestInputMethod,
    TestPhase,
    TimeSettings,
)


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def question_to_dict(question: Question) -> dict[str, Any]:
    return _drop_none(
        {
            "id": question.id,
            "passageText": question.passage_text,
            "questionText": question.question_text,
            "options": list(question.options) if question.options else None,
            "correctAnswerIndex": question.correct_answer_index,
            "correctAnswerText": question.correct_answer_text,
            "userAnswerIndex": question.user_answer_index,
            "userAnswerText": question.user_answer_text,
            "status": question.status.value,
            "explanation": question.explanation,
            "wasCorrectedByUser": question.was_corrected_by_user,
            "isMarkedForReview": question.is_marked_for_review,
        }
    )


def question_from_dict(payload: dict[str, Any]) -> Question:
    options = payload.get("options") or None
    return Question(
        id=str(payload["id"]),
        question_text=payload.get("questionText", ""),
        passage_text=payload.get("passageText"),
        options=list(options) if options else None,
        correct_answer_index=payload.get("correctAnswerIndex") if options else None,
        correct_answer_text=None if options else payload.get("correctAnswerText", ""),
        user_answer_index=payload.get("userAnswerIndex"),
        user_answer_text=payload.get("userAnswerText"),
        status=QuestionStatus(payload.get("status", QuestionStatus.UNVISITED.value)),
        explanation=payload.get("explanation"),
        was_corrected_by_user=bool(payload.get("wasCorrectedByUser", False)),
        is_marked_for_review=bool(payload.get("isMarkedForReview", False)),
    )


def questions_to_list(questions: Iterable[Question]) -> list[dict[str, Any]]:
    return [question_to_dict(q) for q in questions]


def questions_from_list(payload: object) -> tuple[Question, ...]:
    if not isinstance(payload, list):
        return ()
    return tuple(question_from_dict(item) for item in payload if isinstance(item, dict))


def time_settings_to_dict(settings: TimeSettings) -> dict[str, Any]:
    if settings.is_timed:
        return {"type": "timed", "totalSeconds": settings.total_seconds}
    return {"type": "untimed"}


def time_settings_from_dict(payload: dict[str, Any] | None) -> TimeSettings:
    if not payload or payload.get("type") != "timed":
        return TimeSettings.untimed()
    return TimeSettings.timed(int(payload.get("totalSeconds") or 0))


def config_to_dict(config: TestConfig) -> dict[str, Any]:
    return _drop_none(
        {
            "inputMethod": config.input_method.value,
            "content": config.content,
            "numQuestions": config.num_questions,
            "timeSettings": time_settings_to_dict(config.time_settings),
            "negativeMarking": {
                "enabled": config.negative_marking.enabled,
                "marksPerQuestion": config.negative_marking.marks_per_question,
            },
            "testName": config.test_name,
            "mimeType": config.mime_type,
            "originalFileName": config.original_file_name,
            "selectedLanguage": (
                config.selected_language.value if config.selected_language else None
            ),
            "difficultyLevel": config.difficulty_level,
            "customInstructions": config.custom_instructions,
            "titaEnabled": config.tita_enabled,
        }
    )


def config_from_dict(payload: dict[str, Any]) -> TestConfig:
    negative = payload.get("negativeMarking") or {}
    language = payload.get("selectedLanguage")
    return TestConfig(
        input_method=TestInputMethod(payload["inputMethod"]),
        content=payload.get("content", ""),
        num_questions=int(payload.get("numQuestions", 0)),
        time_settings=time_settings_from_dict(payload.get("timeSettings")),
        negative_marking=NegativeMarkingSettings(
            enabled=bool(negative.get("enabled", False)),
            marks_per_question=float(negative.get("marksPerQuestion", 0)),
        ),
        test_name=payload.get("testName", ""),
        mime_type=payload.get("mimeType"),
        original_file_name=payload.get("originalFileName"),
        selected_language=LanguageOption(language) if language else None,
        difficulty_level=payload.get("difficultyLevel"),
        custom_instructions=payload.get("customInstructions"),
        tita_enabled=bool(payload.get("titaEnabled", False)),
    )


def snapshot_to_dict(snapshot: InProgressSnapshot) -> dict[str, Any]:
    """Transient record of a running test; None seconds mean unlimited time."""
    return {
        "questions": questions_to_list(snapshot.questions),
        "currentQuestionIndex": snapshot.current_question_index,
        "timeRemainingSeconds": snapshot.time_remaining_seconds,
        "testDurationSeconds": snapshot.test_duration_seconds,
        "currentSetupConfig": config_to_dict(snapshot.config),
        "currentTestSessionId": snapshot.session_id,
        "testPhase": TestPhase.IN_PROGRESS.value,
    }


def snapshot_from_dict(payload: dict[str, Any]) -> InProgressSnapshot | None:
    """Parse a snapshot record; None when it is incomplete."""
    questions = payload.get("questions")
    config = payload.get("currentSetupConfig")
    session_id = payload.get("currentTestSessionId")
    if not questions or not isinstance(config, dict) or not session_id:
        return None
    return InProgressSnapshot(
        questions=questions_from_list(questions),
        current_question_index=int(payload.get("currentQuestionIndex", 0)),
        time_remaining_seconds=payload.get("timeRemainingSeconds"),
        test_duration_seconds=payload.get("testDurationSeconds"),
        config=config_from_dict(config),
        session_id=str(session_id),
    )
