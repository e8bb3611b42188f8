"""Utility modules."""
from quizforge.utils.json_utils import (
    json_dump,
    read_json_document,
    write_json_document,
)
from quizforge.utils.paths import snapshot_dir, snapshot_path, snapshots_root
from quizforge.utils.time_utils import (
    ensure_utc,
    epoch_millis,
    parse_iso_timestamp,
    utc_now,
)
from quizforge.utils.validation import clean_record_id

__all__ = [
    "json_dump",
    "read_json_document",
    "write_json_document",
    "snapshot_dir",
    "snapshot_path",
    "snapshots_root",
    "ensure_utc",
    "epoch_millis",
    "parse_iso_timestamp",
    "utc_now",
    "clean_record_id",
]
