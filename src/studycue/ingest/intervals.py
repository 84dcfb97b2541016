"""Flatten decoded subjects into a single list of :class:`Interval` values."""

from __future__ import annotations

import logging
from typing import Sequence

from studycue.core.types import Interval
from studycue.ingest.payload import RawSubject

logger = logging.getLogger(__name__)


def flatten_intervals(subjects: Sequence[RawSubject] | None) -> list[Interval]:
    """Turn ``subjects -> tomatoes`` into a flat interval list.

    Subject order and per-subject interval order are preserved.  Entries
    without a ``start_at`` are dropped; subjects with a missing or empty
    interval list contribute nothing.

    Args:
        subjects: Decoded subjects (``None`` is treated as empty).

    Returns:
        Flat list of intervals, in input order.
    """
    intervals: list[Interval] = []
    dropped = 0
    for subject in subjects or ():
        for raw in subject.tomatoes or ():
            if raw.start_at is None:
                dropped += 1
                continue
            intervals.append(
                Interval(
                    subject_name=subject.name,
                    start=raw.start_at,
                    end=raw.end_at,
                    pause_end=raw.pause_end_at,
                )
            )

    if dropped:
        logger.debug("Dropped %d interval(s) without a start time", dropped)
    return intervals
