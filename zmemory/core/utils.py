from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError

# Postgres SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"

RUNNING_TIMER_INDEX = "uniq_user_running_timer_time_entries"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalises a datetime to an aware UTC datetime.
    Naive values are taken to already be in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_duration_minutes(start_at: datetime, end_at: Optional[datetime]) -> Optional[int]:
    """Whole minutes between the bounds, never less than one. None while running."""
    if end_at is None:
        return None
    seconds = (ensure_utc(end_at) - ensure_utc(start_at)).total_seconds()
    return max(1, round(seconds / 60.0))


def is_unique_violation(exc: IntegrityError) -> bool:
    """
    True when an IntegrityError was raised by a unique constraint or index,
    as opposed to a check or foreign key constraint.
    """
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == UNIQUE_VIOLATION
    message = str(orig if orig is not None else exc)
    # sqlite reports "UNIQUE constraint failed: time_entries.user_id"
    return "UNIQUE constraint failed" in message or RUNNING_TIMER_INDEX in message
