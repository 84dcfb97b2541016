"""Core data contracts: intervals, sessions, and scheduled notification tasks."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Sequence

from pydantic import BaseModel, Field, field_validator, model_validator

from studycue.core.hashing import stable_hash
from studycue.core.time import to_naive_utc


class Interval(BaseModel, frozen=True):
    """One timestamped study interval (a single pomodoro).

    ``start`` is mandatory; the parser drops raw records without one.
    ``end`` is ``None`` while the interval is still open, and
    ``pause_end`` is ``None`` when no pause was recorded.  Such intervals
    still participate in clustering but contribute nothing to the
    duration statistics.  Timezone-aware timestamps are converted to
    naive UTC on construction.
    """

    subject_name: str = Field(description="Name of the subject this interval belongs to.")
    start: datetime = Field(description="Interval start (naive UTC).")
    end: datetime | None = Field(default=None, description="Interval end (naive UTC), if recorded.")
    pause_end: datetime | None = Field(default=None, description="End of the following pause (naive UTC), if recorded.")

    @field_validator("start", "end", "pause_end")
    @classmethod
    def _normalise(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value) if value is not None else None

    @property
    def is_complete(self) -> bool:
        """True when both ``start`` and ``end`` are present."""
        return self.end is not None


class Session(BaseModel, frozen=True):
    """A maximal run of intervals whose consecutive start gaps stay within the threshold.

    Sessions are subject-agnostic: ``subject_name`` is taken from the
    first interval and is only used to address the notification.
    ``session_id`` is derived deterministically from the session start
    and that subject, so re-processing the same batch yields the same id.
    """

    session_id: str = Field(description="Deterministic 12-hex identifier.")
    subject_name: str = Field(description="Subject of the first interval.")
    start_time: datetime = Field(description="Start of the first interval (naive UTC).")
    intervals: tuple[Interval, ...] = Field(min_length=1, description="Member intervals, ascending by start.")

    @model_validator(mode="after")
    def _check_invariants(self) -> Session:
        first = self.intervals[0]
        if self.start_time != first.start:
            raise ValueError(
                f"start_time ({self.start_time}) must equal the first "
                f"interval's start ({first.start})"
            )
        if self.subject_name != first.subject_name:
            raise ValueError(
                f"subject_name ({self.subject_name!r}) must equal the first "
                f"interval's subject ({first.subject_name!r})"
            )
        return self

    @classmethod
    def from_intervals(cls, intervals: Sequence[Interval]) -> Session:
        """Build a session from an already-ordered, non-empty run of intervals."""
        if not intervals:
            raise ValueError("A session needs at least one interval")
        first = intervals[0]
        return cls(
            session_id=stable_hash(f"{first.start.isoformat()}|{first.subject_name}"),
            subject_name=first.subject_name,
            start_time=first.start,
            intervals=tuple(intervals),
        )

    @property
    def interval_count(self) -> int:
        return len(self.intervals)

    @property
    def last_start(self) -> datetime:
        return self.intervals[-1].start


class TaskState(StrEnum):
    """Lifecycle of a scheduled notification.

    ``DROPPED`` is never stored on a task: a request rejected by the
    near-term guard simply never produces a :class:`ScheduledTask`.  The
    member exists so that reports can name the outcome.
    """

    PENDING = "pending"
    FIRED = "fired"
    DROPPED = "dropped"


class ScheduledTask(BaseModel):
    """A one-shot notification armed on the delay scheduler.

    Owned by the scheduler's timer heap until it fires, then by the
    worker running its dispatch callback.  The only mutation is the
    single ``PENDING -> FIRED`` transition together with the report
    fields ``fired_at`` and ``delivery_error``.
    """

    task_id: str = Field(description="Unique task identifier (UUID).")
    recipient: str = Field(description="Opaque recipient identifier, never validated.")
    subject: str = Field(description="Notification subject line.")
    body: str = Field(description="Notification body.")
    session_start: datetime = Field(description="Start of the session this task announces (naive UTC).")
    fires_at: datetime = Field(description="Instant the task may execute (naive UTC).")
    state: TaskState = Field(default=TaskState.PENDING, description="Current lifecycle state.")
    fired_at: datetime | None = Field(default=None, description="When the dispatch callback ran.")
    delivery_error: str | None = Field(default=None, description="Delivery failure message, if any.")
