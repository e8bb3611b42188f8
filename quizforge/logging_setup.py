from __future__ import annotations
import logging

from quizforge.config import LOG_LEVEL

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "google_genai")


def setup_console_logging(level: int | str = LOG_LEVEL) -> None:
    """
    Send quizforge and uvicorn logs to stderr. Safe to call more than once.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if any(getattr(h, "_quizforge", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler._quizforge = True
    root.addHandler(handler)
