"""Session clustering over study intervals.

A *session* is a run of intervals whose consecutive start times are at
most ``gap_minutes`` apart (30 by default).  Gaps are measured start to
start in whole minutes, truncated, so a 30 min 59 s gap still counts as
30 and does not split.  Clustering ignores subjects entirely: intervals
from different subjects that are close in time share a session.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from studycue.core.defaults import DEFAULT_SESSION_GAP_MINUTES
from studycue.core.time import whole_minutes_between
from studycue.core.types import Interval, Session


def cluster_sessions(
    intervals: Sequence[Interval],
    gap_minutes: int = DEFAULT_SESSION_GAP_MINUTES,
) -> list[Session]:
    """Partition *intervals* into time-ordered sessions.

    The input may be in any order.  It is stably sorted by ``start``, so
    intervals with identical starts keep their relative order and always
    land in the same session (their gap is 0).

    Args:
        intervals: Intervals to cluster.
        gap_minutes: Largest start-to-start gap that keeps two intervals
            in one session.

    Returns:
        Sessions ascending by ``start_time``.  Empty if *intervals* is
        empty.
    """
    if not intervals:
        return []

    ordered = sorted(intervals, key=lambda iv: iv.start)

    runs: list[list[Interval]] = [[ordered[0]]]
    for prev, cur in zip(ordered, ordered[1:]):
        if whole_minutes_between(prev.start, cur.start) > gap_minutes:
            runs.append([cur])
        else:
            runs[-1].append(cur)

    return [Session.from_intervals(run) for run in runs]


def session_starts(
    intervals: Sequence[Interval],
    gap_minutes: int = DEFAULT_SESSION_GAP_MINUTES,
) -> list[datetime]:
    """Return only the start timestamp of each session, ascending."""
    return [s.start_time for s in cluster_sessions(intervals, gap_minutes)]
