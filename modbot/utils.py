"""Pure utility functions for Comment ModBot."""

import re
import uuid
from datetime import datetime, timedelta, timezone

_DURATION_RE = re.compile(r"^(\d+)([hdw])$")
_DURATION_UNITS = {"h": "hours", "d": "days", "w": "weeks"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps read back from SQLite as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_report_id():
    """Generate unique report ID using UUID4 (collision-proof)."""
    return str(uuid.uuid4())


def parse_duration(text: str) -> timedelta | None:
    """Parse "12h", "3d" or "2w" into a timedelta. None if malformed or zero."""
    if not text:
        return None
    match = _DURATION_RE.match(text.strip().lower())
    if not match:
        return None
    amount = int(match.group(1))
    if amount <= 0:
        return None
    return timedelta(**{_DURATION_UNITS[match.group(2)]: amount})


def format_duration(delta: timedelta) -> str:
    hours = int(delta.total_seconds() // 3600)
    if hours and hours % 168 == 0:
        return f"{hours // 168}w"
    if hours and hours % 24 == 0:
        return f"{hours // 24}d"
    return f"{hours}h"


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "unknown time"
    return as_utc(value).strftime("%Y-%m-%d %H:%M UTC")


def sanitize_text(text, max_length=500):
    """Strip whitespace and control characters; truncate. None if empty."""
    if not text:
        return None
    text = re.sub(r"[\x00-\x08\x0b-\x1f\x7f]", "", str(text)).strip()
    text = re.sub(r"\s+", " ", text)
    if not text:
        return None
    return text[:max_length]
