"""Timestamp normalization shared by bracket building and persistence."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from tourney.errors import ValidationError


def to_utc_datetime(value: Any) -> Optional[datetime]:
    """Normalize ISO-8601 strings, epoch seconds and naive/aware datetimes to aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
    else:
        raise ValidationError(f"Unsupported timestamp type: {type(value).__name__}")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
