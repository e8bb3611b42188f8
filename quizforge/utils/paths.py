"""Path utilities for transient snapshots."""
from pathlib import Path

from quizforge.config import SNAPSHOT_KEY, SNAPSHOTS_DIR


def snapshots_root() -> Path:
    """Get directory holding every user's snapshot directory."""
    return SNAPSHOTS_DIR


def snapshot_dir(user_id: int) -> Path:
    """Get snapshot directory for user."""
    return snapshots_root() / str(user_id)


def snapshot_path(user_id: int) -> Path:
    """Get path to the in-progress test snapshot of a user."""
    return snapshot_dir(user_id) / f"{SNAPSHOT_KEY}.json"
