"""
Persistence adapter for history, saved tests and leaderboard data.

Reads return empty results and writes return None/False when the database
fails; the error is logged and the transaction rolled back, so callers can
show an alert and re-fetch instead of crashing.
"""
import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from quizforge.engine.models import (
    HistoryEntry,
    NegativeMarkingSettings,
    SavedTest,
    ScoreResult,
    TestConfig,
    UserIdentity,
)
from quizforge.models.db import SavedTestRecord, TestSessionRecord, User
from quizforge.serialization import (
    config_from_dict,
    config_to_dict,
    questions_from_list,
    questions_to_list,
)
from quizforge.utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _history_entry(record: TestSessionRecord) -> HistoryEntry | None:
    data = record.questions_data
    try:
        config = config_from_dict(data.get("originalConfig") or {})
        questions = questions_from_list(data.get("questions"))
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Skipping unreadable history entry {record.id}: {e}")
        return None
    negative = data.get("negativeMarking") or {}
    return HistoryEntry(
        id=record.id,
        test_name=record.test_name,
        date_completed=ensure_utc(record.completed_at),
        score_percentage=record.score_percentage,
        total_questions=record.total_questions,
        correct_answers=record.correct_answers,
        attempted_questions=record.attempted_questions,
        negative_marking=NegativeMarkingSettings(
            enabled=bool(negative.get("enabled", False)),
            marks_per_question=float(negative.get("marksPerQuestion", 0)),
        ),
        original_config=config,
        questions=questions,
        was_corrected_by_user=record.was_corrected_by_user,
    )


def _saved_test(record: SavedTestRecord) -> SavedTest | None:
    try:
        config = config_from_dict(record.config)
        questions = questions_from_list(record.questions)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Skipping unreadable saved test {record.id}: {e}")
        return None
    return SavedTest(
        id=record.id,
        questions=questions,
        current_question_index=record.current_question_index,
        time_remaining_seconds=record.time_remaining_seconds,
        test_duration_seconds=record.test_duration_seconds,
        config=config,
        session_id=record.session_id,
        saved_at=ensure_utc(record.saved_at),
    )


def get_history(db: DBSession, user_id: int) -> list[HistoryEntry]:
    """History of a user, most recent first."""
    try:
        records = db.execute(
            select(TestSessionRecord)
            .where(TestSessionRecord.user_id == user_id)
            .order_by(TestSessionRecord.completed_at.desc())
        ).scalars().all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load history for user {user_id}: {e}")
        return []
    entries = (_history_entry(record) for record in records)
    return [entry for entry in entries if entry is not None]


def get_history_entry(db: DBSession, user_id: int, entry_id: str) -> HistoryEntry | None:
    """Single history entry owned by the user."""
    try:
        record = db.get(TestSessionRecord, entry_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load history entry {entry_id}: {e}")
        return None
    if record is None or record.user_id != user_id:
        return None
    return _history_entry(record)


def save_session(
    db: DBSession,
    user_id: int,
    session_id: str,
    test_name: str,
    config: TestConfig,
    questions_payload: list[dict[str, Any]],
    score: ScoreResult,
    was_corrected_by_user: bool = False,
) -> str | None:
    """
    Insert or update the history entry keyed by session_id.

    Returns:
        The session id, or None when the write failed.
    """
    data = {
        "questions": questions_payload,
        "originalConfig": config_to_dict(config),
        "negativeMarking": {
            "enabled": config.negative_marking.enabled,
            "marksPerQuestion": config.negative_marking.marks_per_question,
        },
    }
    try:
        record = db.get(TestSessionRecord, session_id)
        if record is not None and record.user_id != user_id:
            logger.error(f"Session {session_id} belongs to another user")
            return None
        if record is None:
            record = TestSessionRecord(id=session_id, user_id=user_id)
            db.add(record)
        record.test_name = test_name
        record.completed_at = utc_now()
        record.score_percentage = score.score_percentage
        record.total_questions = score.total
        record.correct_answers = score.correct
        record.attempted_questions = score.attempted
        record.was_corrected_by_user = was_corrected_by_user
        record.questions_data = data
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save test session {session_id}: {e}")
        return None
    logger.info(f"Saved test session {session_id} for user {user_id}")
    return session_id


def delete_session(db: DBSession, user_id: int, session_id: str) -> bool:
    """Delete one history entry. Returns False when nothing was deleted."""
    try:
        result = db.execute(
            delete(TestSessionRecord).where(
                TestSessionRecord.id == session_id,
                TestSessionRecord.user_id == user_id,
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete test session {session_id}: {e}")
        return False
    return result.rowcount > 0


def clear_history(db: DBSession, user_id: int) -> bool:
    """Delete every history entry of the user."""
    try:
        db.execute(
            delete(TestSessionRecord).where(TestSessionRecord.user_id == user_id)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to clear history for user {user_id}: {e}")
        return False
    return True


def get_saved_tests(db: DBSession, user_id: int) -> list[SavedTest]:
    """Saved tests of a user, most recently saved first."""
    try:
        records = db.execute(
            select(SavedTestRecord)
            .where(SavedTestRecord.user_id == user_id)
            .order_by(SavedTestRecord.saved_at.desc())
        ).scalars().all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load saved tests for user {user_id}: {e}")
        return []
    saved = (_saved_test(record) for record in records)
    return [item for item in saved if item is not None]


def get_saved_test(db: DBSession, user_id: int, saved_test_id: str) -> SavedTest | None:
    try:
        record = db.get(SavedTestRecord, saved_test_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load saved test {saved_test_id}: {e}")
        return None
    if record is None or record.user_id != user_id:
        return None
    return _saved_test(record)


def save_saved_test(db: DBSession, user_id: int, saved: SavedTest) -> bool:
    """Store a paused test durably."""
    try:
        record = SavedTestRecord(
            id=saved.id,
            user_id=user_id,
            session_id=saved.session_id,
            test_name=saved.config.test_name or "Untitled Test",
            current_question_index=saved.current_question_index,
            time_remaining_seconds=saved.time_remaining_seconds,
            test_duration_seconds=saved.test_duration_seconds,
            saved_at=saved.saved_at,
        )
        record.questions = questions_to_list(saved.questions)
        record.config = config_to_dict(saved.config)
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save test {saved.id}: {e}")
        return False
    logger.info(f"Stored saved test {saved.id} for user {user_id}")
    return True


def delete_saved_test(db: DBSession, user_id: int, saved_test_id: str) -> bool:
    try:
        result = db.execute(
            delete(SavedTestRecord).where(
                SavedTestRecord.id == saved_test_id,
                SavedTestRecord.user_id == user_id,
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete saved test {saved_test_id}: {e}")
        return False
    return result.rowcount > 0


def get_leaderboard_raw(
    db: DBSession,
) -> tuple[list[UserIdentity], dict[str, list[HistoryEntry]]]:
    """All users and their histories keyed by email."""
    try:
        users = db.execute(
            select(User).where(User.is_active == True)  # noqa: E712
        ).scalars().all()
        records = db.execute(
            select(TestSessionRecord).order_by(TestSessionRecord.completed_at.desc())
        ).scalars().all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load leaderboard data: {e}")
        return [], {}

    emails = {user.id: user.email for user in users}
    histories: dict[str, list[HistoryEntry]] = {}
    for record in records:
        email = emails.get(record.user_id)
        if email is None:
            continue
        entry = _history_entry(record)
        if entry is not None:
            histories.setdefault(email, []).append(entry)

    identities = [
        UserIdentity(name=user.name, email=user.email, initials=user.initials)
        for user in users
    ]
    return identities, histories
