import math
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Naive UTC timestamp, matching what Motor hands back from MongoDB"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def whole_minutes_between(start: datetime, end: datetime) -> int:
    """Minutes from start to end with halves rounded up, never negative"""
    return max(0, math.floor((end - start).total_seconds() / 60 + 0.5))
