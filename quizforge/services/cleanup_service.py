"""Service for cleanup operations."""
import logging
import threading
import time
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from quizforge.config import CLEANUP_INTERVAL_SECONDS, SNAPSHOT_RETENTION_DAYS
from quizforge.database import SessionLocal
from quizforge.services.auth_service import purge_expired_login_sessions
from quizforge.services.snapshot_service import cleanup_old_snapshots

logger = logging.getLogger(__name__)


def run_cleanup() -> tuple[int, int]:
    """Remove expired login sessions and stale snapshots.

    Returns:
        Tuple of (sessions removed, snapshots removed)
    """
    sessions = 0
    try:
        db = SessionLocal()
        try:
            sessions = purge_expired_login_sessions(db)
        finally:
            db.close()
    except SQLAlchemyError as e:
        logger.error(f"Failed to cleanup expired sessions: {e}")

    snapshots = 0
    if SNAPSHOT_RETENTION_DAYS > 0:
        snapshots = cleanup_old_snapshots(timedelta(days=SNAPSHOT_RETENTION_DAYS))

    if sessions or snapshots:
        logger.info(f"Cleaned up {sessions} expired sessions and {snapshots} snapshots")
    return sessions, snapshots


def schedule_cleanup(initial_delay: float = 60) -> threading.Thread:
    """Run cleanup periodically in a daemon thread."""

    def _worker() -> None:
        time.sleep(initial_delay)
        while True:
            try:
                run_cleanup()
            except Exception:
                logger.exception("Cleanup run failed")
            time.sleep(CLEANUP_INTERVAL_SECONDS)

    thread = threading.Thread(
        target=_worker,
        name="quizforge_cleanup",
        daemon=True,
    )
    thread.start()
    return thread
