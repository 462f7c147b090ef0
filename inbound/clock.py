"""Time source for lease checks and timestamps."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (how timestamps are stored)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
