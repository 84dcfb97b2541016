"""Duration statistics over study intervals.

Only *complete* intervals (both ``start`` and ``end`` present) count
toward the statistics.  Open intervals are ignored here without
invalidating the batch; they still take part in session clustering.

Pause minutes are measured from the interval's **start** to its
``pause_end``, not from its end.

Durations are whole minutes, truncated.  Intervals whose end precedes
their start are not clamped: their negative duration flows into the
totals unchanged.
"""

from __future__ import annotations

from typing import Sequence

from pydantic import BaseModel, Field

from studycue.core.time import whole_minutes_between
from studycue.core.types import Interval


class Stats(BaseModel, frozen=True):
    """Aggregated study statistics for one subject or a whole batch.

    ``avg_minutes`` is ``total_study_minutes / interval_count`` (integer
    division, truncated toward zero).  ``avg_minutes`` and ``min_minutes``
    are ``0`` when no complete interval was observed.
    """

    interval_count: int = Field(ge=0, description="Number of complete intervals.")
    total_study_minutes: int = Field(description="Sum of end - start over complete intervals.")
    total_pause_minutes: int = Field(description="Sum of pause_end - start over complete intervals with a pause.")
    avg_minutes: int = Field(description="Mean study minutes per complete interval (truncated).")
    max_minutes: int = Field(description="Longest single interval, never below 0.")
    min_minutes: int = Field(description="Shortest single interval, 0 when none.")


class BatchStats(BaseModel, frozen=True):
    """Statistics for a whole batch plus a per-subject breakdown.

    ``by_subject`` keeps subjects in order of first appearance.
    Intervals sharing a subject name are aggregated together.
    """

    overall: Stats
    by_subject: dict[str, Stats] = Field(default_factory=dict)


EMPTY_STATS = Stats(
    interval_count=0,
    total_study_minutes=0,
    total_pause_minutes=0,
    avg_minutes=0,
    max_minutes=0,
    min_minutes=0,
)


def interval_study_minutes(interval: Interval) -> int | None:
    """Whole study minutes of *interval*, or ``None`` if it has no end."""
    if interval.end is None:
        return None
    return whole_minutes_between(interval.start, interval.end)


def interval_pause_minutes(interval: Interval) -> int:
    """Whole pause minutes of *interval* (``pause_end - start``).

    Zero when the interval is incomplete or has no recorded pause.
    """
    if interval.end is None or interval.pause_end is None:
        return 0
    return whole_minutes_between(interval.start, interval.pause_end)


def _div_toward_zero(total: int, count: int) -> int:
    quotient = abs(total) // count
    return quotient if total >= 0 else -quotient


def compute_stats(intervals: Sequence[Interval]) -> Stats:
    """Aggregate *intervals* into a single :class:`Stats`.

    Args:
        intervals: Intervals in any order; incomplete ones are skipped.

    Returns:
        The aggregated statistics (all zero when nothing is complete).
    """
    durations: list[int] = []
    pause_total = 0
    for iv in intervals:
        minutes = interval_study_minutes(iv)
        if minutes is None:
            continue
        durations.append(minutes)
        pause_total += interval_pause_minutes(iv)

    if not durations:
        return EMPTY_STATS

    count = len(durations)
    study_total = sum(durations)
    return Stats(
        interval_count=count,
        total_study_minutes=study_total,
        total_pause_minutes=pause_total,
        avg_minutes=_div_toward_zero(study_total, count),
        max_minutes=max(0, *durations),
        min_minutes=min(durations),
    )


def compute_batch_stats(
    intervals: Sequence[Interval],
    *,
    subjects: Sequence[str] | None = None,
) -> BatchStats:
    """Compute batch-wide and per-subject statistics.

    Args:
        intervals: Flat interval list for the batch.
        subjects: Optional subject names to report even when they have
            no intervals (they get all-zero stats).  Listed subjects come
            first, in the given order.

    Returns:
        A :class:`BatchStats`.
    """
    grouped: dict[str, list[Interval]] = {name: [] for name in subjects or ()}
    for iv in intervals:
        grouped.setdefault(iv.subject_name, []).append(iv)

    return BatchStats(
        overall=compute_stats(intervals),
        by_subject={name: compute_stats(group) for name, group in grouped.items()},
    )
