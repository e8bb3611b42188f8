"""Application configuration and constants."""
import os
from pathlib import Path


def _parse_int_env(name: str, default: int) -> int:
    """Parse integer from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_list_env(name: str) -> list[str]:
    """Parse comma-separated list from environment variable."""
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


LOG_LEVEL = os.environ.get("QUIZFORGE_LOG_LEVEL", "INFO").upper()

# Directories
DATA_DIR = Path(os.environ.get("QUIZFORGE_DATA_DIR", Path.cwd() / "data"))
DATA_DIR.mkdir(parents=True, exist_ok=True)

SNAPSHOTS_DIR = Path(
    os.environ.get("QUIZFORGE_SNAPSHOTS_DIR", DATA_DIR / "snapshots")
)
SNAPSHOTS_DIR.mkdir(parents=True, exist_ok=True)

# Database
DATABASE_URL = os.environ.get(
    "DATABASE_URL", f"sqlite:///{DATA_DIR / 'quizforge.db'}"
)

# Authentication
SECRET_KEY = os.environ.get(
    "SECRET_KEY",
    "CHANGE_ME_IN_PRODUCTION_USE_openssl_rand_hex_32"
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _parse_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
SESSION_EXTEND_MINUTES = _parse_int_env("SESSION_EXTEND_MINUTES", 60)

# Generation
GEMINI_API_KEYS = _parse_list_env("GEMINI_API_KEY")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
DEFAULT_NUM_QUESTIONS = 10
NUM_QUESTIONS_AI_DECIDES = 0

# Documents
SUPPORTED_PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)
MAX_UPLOAD_BYTES = _parse_int_env("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)
IMAGE_MAX_DIMENSION = _parse_int_env("IMAGE_MAX_DIMENSION", 2048)  # pixels

# Transient snapshot of the in-progress test
SNAPSHOT_KEY = "in_progress_test"
SNAPSHOT_RETENTION_DAYS = _parse_int_env("SNAPSHOT_RETENTION_DAYS", 7)
CLEANUP_INTERVAL_SECONDS = _parse_int_env("CLEANUP_INTERVAL_SECONDS", 24 * 60 * 60)

# Countdown
TICK_INTERVAL_SECONDS = 1.0
