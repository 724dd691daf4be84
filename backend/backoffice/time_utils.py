# Overview: Naive-UTC clock, ISO-8601 parsing and serialization shared by models and services.

"""
Every datetime stored by the back-office is naive and in UTC. Offsets
received from clients are converted on the way in; a trailing 'Z' is added
on the way out.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


DATE_ONLY_LENGTH = len("YYYY-MM-DD")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_date_only(value: str) -> bool:
    return len(value.strip()) == DATE_ONLY_LENGTH


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Read a client-supplied timestamp as naive UTC.

    Blank input gives None. A bare date is midnight of that day; an offset
    (including 'Z') is applied and dropped. Malformed input raises ValueError.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def end_of_day(day: datetime) -> datetime:
    """Last representable instant of `day`, used for inclusive upper bounds."""
    midnight = day.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(days=1) - timedelta(microseconds=1)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    # Naive values are already UTC
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
