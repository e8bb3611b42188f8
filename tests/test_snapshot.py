import os
import time
from datetime import timedelta
from pathlib import Path

from quizforge.engine.models import InProgressSnapshot, TimeSettings
from quizforge.services import snapshot_service
from quizforge.utils import paths

from conftest import make_config, make_mcq


def _snapshot(session_id: str = "session-1") -> InProgressSnapshot:
    return InProgressSnapshot(
        questions=(make_mcq("q1", answer=0), make_mcq("q2")),
        current_question_index=1,
        time_remaining_seconds=45,
        test_duration_seconds=60,
        config=make_config(time_settings=TimeSettings.timed(60)),
        session_id=session_id,
    )


def test_write_read_clear(snapshots_dir: Path) -> None:
    assert snapshot_service.read_snapshot(1) is None

    snapshot_service.write_snapshot(1, _snapshot())
    assert paths.snapshot_path(1).exists()
    assert snapshot_service.read_snapshot(1) == _snapshot()
    # snapshots are per user
    assert snapshot_service.read_snapshot(2) is None

    snapshot_service.clear_snapshot(1)
    assert snapshot_service.read_snapshot(1) is None
    snapshot_service.clear_snapshot(1)


def test_unreadable_snapshot_is_discarded(snapshots_dir: Path) -> None:
    path = paths.snapshot_path(1)
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")

    assert snapshot_service.read_snapshot(1) is None
    assert not path.exists()


def test_incomplete_snapshot_is_not_offered(snapshots_dir: Path) -> None:
    path = paths.snapshot_path(1)
    path.parent.mkdir(parents=True)
    path.write_text('{"questions": [], "currentTestSessionId": "x"}', encoding="utf-8")
    assert snapshot_service.read_snapshot(1) is None


def test_cleanup_removes_only_stale_snapshots(snapshots_dir: Path) -> None:
    snapshot_service.write_snapshot(1, _snapshot("old"))
    snapshot_service.write_snapshot(2, _snapshot("new"))
    stale = time.time() - timedelta(days=10).total_seconds()
    os.utime(paths.snapshot_path(1), (stale, stale))

    removed = snapshot_service.cleanup_old_snapshots(timedelta(days=7))

    assert removed == 1
    assert not paths.snapshot_path(1).exists()
    assert paths.snapshot_path(2).exists()
