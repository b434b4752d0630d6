"""
Datetime utilities.

Provides timezone-aware datetime functions.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes.

    SQLite returns naive datetimes even for timezone-aware columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def format_waiting_time(delta: timedelta) -> str:
    """
    Format how long something has been waiting.

    Args:
        delta: Elapsed time

    Returns:
        "12 minutes", "3 hours", "2 days" (singular when 1)
    """
    total_minutes = max(int(delta.total_seconds() // 60), 0)
    hours = total_minutes // 60
    if hours < 1:
        return f"{total_minutes} minute{'s' if total_minutes != 1 else ''}"
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''}"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''}"
