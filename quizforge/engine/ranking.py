"""Leaderboard ranking over per-user test history."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from quizforge.engine.models import HistoryEntry, RankedUser, UserIdentity

SCORE_WEIGHT = 0.5
TESTS_WEIGHT = 0.3
QUESTIONS_WEIGHT = 0.2

# Mean score is normalised by this fixed ceiling, the other two
# aggregates by the largest value among ranked users.
SCORE_CEILING = 100


@dataclass(frozen=True)
class _UserStats:
    user: UserIdentity
    tests_completed: int
    avg_score: float
    questions_attempted: int


def _collect_stats(
    users: Sequence[UserIdentity],
    histories: Mapping[str, Sequence[HistoryEntry]],
) -> list[_UserStats]:
    stats = []
    for user in users:
        history = histories.get(user.email) or []
        if not history:
            continue
        tests_completed = len(history)
        stats.append(
            _UserStats(
                user=user,
                tests_completed=tests_completed,
                avg_score=sum(e.score_percentage for e in history) / tests_completed,
                questions_attempted=sum(e.attempted_questions for e in history),
            )
        )
    return stats


def composite_score(
    avg_score: float,
    tests_completed: int,
    questions_attempted: int,
    max_tests: int,
    max_questions: int,
) -> float:
    return (
        SCORE_WEIGHT * (avg_score / SCORE_CEILING)
        + TESTS_WEIGHT * (tests_completed / max_tests)
        + QUESTIONS_WEIGHT * (questions_attempted / max_questions)
    )


def rank_users(
    users: Sequence[UserIdentity],
    histories: Mapping[str, Sequence[HistoryEntry]],
) -> list[RankedUser]:
    """
    Rank users by composite score, best first.

    Users without history are left out. Histories are keyed by user email.
    Equal composite scores keep the order of ``users``.
    """
    stats = _collect_stats(users, histories)
    if not stats:
        return []

    max_tests = max(1, *(s.tests_completed for s in stats))
    max_questions = max(1, *(s.questions_attempted for s in stats))

    scored = [
        (
            s,
            composite_score(
                s.avg_score,
                s.tests_completed,
                s.questions_attempted,
                max_tests,
                max_questions,
            ),
        )
        for s in stats
    ]
    # sorted() is stable, also with reverse=True
    scored = sorted(scored, key=lambda item: item[1], reverse=True)

    return [
        RankedUser(
            rank=index,
            user=s.user,
            tests_completed=s.tests_completed,
            avg_score=s.avg_score,
            questions_attempted=s.questions_attempted,
            final_score=final_score,
        )
        for index, (s, final_score) in enumerate(scored, start=1)
    ]
