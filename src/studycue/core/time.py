"""Timestamp normalisation and whole-minute arithmetic.

All timestamps inside studycue are naive UTC datetimes.  Timezone-aware
inputs are converted to UTC on entry so that intervals recorded under
different offsets still sort and subtract consistently.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

_ONE_MINUTE = timedelta(minutes=1)


def to_naive_utc(ts: datetime) -> datetime:
    """Convert *ts* to a naive UTC datetime.

    Naive inputs are assumed to already be UTC and are returned unchanged.
    """
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp into a naive-UTC datetime."""
    return to_naive_utc(datetime.fromisoformat(raw))


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (the default scheduler clock)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def whole_minutes_between(start: datetime, end: datetime) -> int:
    """Number of whole minutes from *start* to *end*, truncated toward zero.

    Negative spans (``end`` before ``start``) yield a negative count, so
    ``whole_minutes_between(a, b) == -whole_minutes_between(b, a)``.

    Args:
        start: Earlier timestamp.
        end: Later timestamp.

    Returns:
        Signed whole-minute difference.
    """
    delta = end - start
    minutes = abs(delta) // _ONE_MINUTE
    return minutes if delta >= timedelta(0) else -minutes
