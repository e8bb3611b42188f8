"""Request parameter checks."""
import re

from fastapi import HTTPException, status

# Session and saved-test ids: generated hex ids or short slugs, never paths
RECORD_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]{0,63}")


def clean_record_id(field: str, value: str | None) -> str:
    """Strip the id and reject anything that is not a plain record id (400)."""
    cleaned = value.strip() if isinstance(value, str) else ""
    if not cleaned:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} is required"
        )
    if RECORD_ID_PATTERN.fullmatch(cleaned) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {field}"
        )
    return cleaned
