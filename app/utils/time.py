"""Time utilities."""
from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def minutes_ago(minutes: int) -> datetime:
    return utcnow() - timedelta(minutes=minutes)


__all__ = ["utcnow", "minutes_ago"]
