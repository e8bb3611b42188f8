"""Transient in-progress test snapshot, one JSON file per user."""
import logging
import time
from datetime import timedelta

from quizforge.config import SNAPSHOT_KEY
from quizforge.engine.models import InProgressSnapshot
from quizforge.serialization import snapshot_from_dict, snapshot_to_dict
from quizforge.utils.json_utils import read_json_document, write_json_document
from quizforge.utils.paths import snapshot_path, snapshots_root

logger = logging.getLogger(__name__)


def read_snapshot(user_id: int) -> InProgressSnapshot | None:
    """Snapshot offered for resume, None when absent or unreadable."""
    path = snapshot_path(user_id)
    try:
        payload = read_json_document(path)
    except (OSError, ValueError) as e:
        logger.warning(f"Discarding unreadable snapshot {path}: {e}")
        clear_snapshot(user_id)
        return None
    if payload is None:
        return None
    try:
        return snapshot_from_dict(payload)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Discarding invalid snapshot {path}: {e}")
        clear_snapshot(user_id)
        return None


def write_snapshot(user_id: int, snapshot: InProgressSnapshot) -> None:
    try:
        write_json_document(snapshot_path(user_id), snapshot_to_dict(snapshot))
    except OSError as e:
        logger.error(f"Failed to write snapshot for user {user_id}: {e}")


def clear_snapshot(user_id: int) -> None:
    try:
        snapshot_path(user_id).unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Failed to clear snapshot for user {user_id}: {e}")


def cleanup_old_snapshots(retention: timedelta) -> int:
    """Remove snapshots not touched within the retention period."""
    cutoff = time.time() - retention.total_seconds()
    removed = 0
    for path in snapshots_root().glob(f"*/{SNAPSHOT_KEY}.json"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError as e:
            logger.error(f"Failed to remove snapshot {path}: {e}")
    return removed
