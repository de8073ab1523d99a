"""Shared utility functions.

parse_datetime:  ISO string → aware datetime (None on empty input)
ensure_utc:      naive datetimes from SQLite are treated as UTC
get_setting:     engine tunable from app config, module default outside a request
"""
from datetime import date, datetime, timezone

from flask import current_app, has_app_context


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes; pass aware ones through unchanged."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_datetime(value) -> datetime | None:
    """Convert an ISO-format string (or date) to an aware datetime.

    Supports the common ISO variants sent by clients and falls back to
    ``fromisoformat``. Returns None for empty input; raises ValueError for
    garbage so callers can answer 400.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        for fmt in ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
            try:
                return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise ValueError(f"Unsupported datetime value: {value!r}")


def get_setting(name: str, default):
    """Read an engine tunable from the active app config, else ``default``."""
    if has_app_context():
        return current_app.config.get(name, default)
    return default
