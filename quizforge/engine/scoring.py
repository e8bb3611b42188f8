"""Scoring of a finished question sequence."""
from __future__ import annotations

from typing import Iterable

from quizforge.engine.models import (
    NegativeMarkingSettings,
    Question,
    QuestionStatus,
    ScoreResult,
)


def _normalize_text(value: str | None) -> str:
    return (value or "").strip().lower()


def is_answer_correct(question: Question) -> bool:
    """Exact match on the option index, or trimmed case-insensitive text."""
    if question.is_choice:
        return question.user_answer_index == question.correct_answer_index
    return _normalize_text(question.user_answer_text) == _normalize_text(
        question.correct_answer_text
    )


def compute_score_percentage(
    correct: int,
    incorrect: int,
    total: int,
    negative_marking: NegativeMarkingSettings,
) -> float:
    """
    Percentage score for the given counts.

    With negative marking enabled every incorrect attempt costs
    marks_per_question; marks obtained never drop below zero.
    """
    if total <= 0:
        return 0.0
    marks = float(correct)
    if negative_marking.enabled:
        marks = max(0.0, correct - incorrect * negative_marking.marks_per_question)
    return max(0.0, 100 * marks / total)


def score_questions(
    questions: Iterable[Question],
    negative_marking: NegativeMarkingSettings,
) -> ScoreResult:
    """Score every attempted question; unvisited and skipped ones earn nothing."""
    questions = list(questions)
    correct = 0
    incorrect = 0
    for question in questions:
        if question.status != QuestionStatus.ATTEMPTED:
            continue
        if is_answer_correct(question):
            correct += 1
        else:
            incorrect += 1

    return ScoreResult(
        score_percentage=compute_score_percentage(
            correct, incorrect, len(questions), negative_marking
        ),
        correct=correct,
        incorrect=incorrect,
        attempted=correct + incorrect,
        total=len(questions),
    )
