"""Field normalization at the record-store boundary.

The system of record is loosely typed: dates arrive as epoch milliseconds,
numeric strings or ISO strings, and "people" fields arrive as a plain
string, a list of person objects, or a single person object. Everything
here converts those shapes into plain Python values once, so services
never see the raw representation.
"""

from datetime import datetime, timezone
from typing import Any

# Artifact of a JS object serialized with String(); treat as missing.
BROKEN_OBJECT_STRING = "[object Object]"


def to_millis(value: datetime) -> int:
    """Convert an aware (or naive UTC) datetime to epoch milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_millis(value: Any) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime.

    Returns None for anything that is not a usable date.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return from_millis(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def extract_text(value: Any) -> str:
    """Flatten a text field that may come back as rich-text segments."""
    if value is None:
        return ""
    if isinstance(value, str):
        return "" if value == BROKEN_OBJECT_STRING else value
    if isinstance(value, list):
        return "".join(extract_text(item) for item in value)
    if isinstance(value, dict):
        return extract_text(value.get("text", ""))
    return str(value)


def extract_name(value: Any) -> str:
    """Pull a display name out of a people/name field of any shape."""
    if value is None:
        return ""
    if isinstance(value, str):
        return "" if value == BROKEN_OBJECT_STRING else value.strip()
    if isinstance(value, list):
        if not value:
            return ""
        return extract_name(value[0])
    if isinstance(value, dict):
        for key in ("name", "en_name", "text"):
            if value.get(key):
                return extract_name(value[key])
        return ""
    return ""


def extract_email(value: Any) -> str:
    """Pull an email address out of an email/people field of any shape."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list) and value:
        return extract_email(value[0])
    if isinstance(value, dict):
        return extract_email(value.get("email") or value.get("text") or "")
    return ""


def extract_person_id(value: Any) -> str:
    """Pull a user id (open id) out of a people field."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list) and value:
        return extract_person_id(value[0])
    if isinstance(value, dict):
        return str(value.get("id") or value.get("open_id") or "")
    return ""


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def as_int(value: Any, default: int = 0) -> int:
    """Lenient integer parsing for numeric fields stored as text."""
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default
