"""Reading and writing JSON documents on disk."""
import json
from pathlib import Path


def json_dump(payload: object) -> str:
    """Indented JSON that keeps non-ASCII text readable."""
    return json.dumps(payload, ensure_ascii=False, indent=2)


def read_json_document(path: Path) -> dict | None:
    """
    Load a JSON object from disk.

    Returns None when the file does not exist.

    Raises:
        ValueError: The file is not valid JSON or its top level is not an object.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object in {path.name}")
    return payload


def write_json_document(path: Path, payload: dict) -> None:
    """Write through a temporary sibling so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json_dump(payload), encoding="utf-8")
    tmp_path.replace(path)
