"""Plain-text composition of session reminders.

The composer is a collaborator: anything matching :class:`Composer` can
replace :func:`compose_reminder` (an HTML renderer, a localised
template, ...).  The scheduler never looks at the strings it returns.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from studycue.core.defaults import DEFAULT_LEAD_MINUTES
from studycue.core.time import whole_minutes_between
from studycue.ingest.payload import RawSubject
from studycue.report.stats import BatchStats, Stats

_DATE_FORMAT = "%b %d, %Y"
_TIME_FORMAT = "%H:%M"


class Composer(Protocol):
    def __call__(
        self,
        subject_name: str,
        session_start: datetime,
        subjects: Sequence[RawSubject],
        stats: BatchStats,
    ) -> tuple[str, str]: ...


def reminder_subject_line(
    subject_name: str,
    session_start: datetime,
    lead_minutes: int = DEFAULT_LEAD_MINUTES,
) -> str:
    return (
        f"In {lead_minutes} minutes, at {session_start.strftime(_TIME_FORMAT)}, "
        f"the study session for {subject_name} begins"
    )


def _format_subject(subject: RawSubject) -> list[str]:
    lines = [subject.name or "(unnamed subject)"]
    for number, iv in enumerate(subject.tomatoes or (), start=1):
        lines.append(f"  Pomodoro #{number}")
        if iv.start_at is None or iv.end_at is None:
            continue
        lines.append(
            f"    {iv.start_at.strftime(_DATE_FORMAT)} | "
            f"{iv.start_at.strftime(_TIME_FORMAT)} - {iv.end_at.strftime(_TIME_FORMAT)}"
        )
        lines.append(f"    Duration: {whole_minutes_between(iv.start_at, iv.end_at)} min")
        if iv.pause_end_at is not None:
            pause = whole_minutes_between(iv.start_at, iv.pause_end_at)
            lines.append(f"    Pause until: {iv.pause_end_at.strftime(_TIME_FORMAT)} ({pause} min)")
    return lines


def _format_stats(stats: Stats) -> list[str]:
    return [
        "Session statistics",
        f"  Total pomodoros:   {stats.interval_count}",
        f"  Study time:        {stats.total_study_minutes} min",
        f"  Pause time:        {stats.total_pause_minutes} min",
        f"  Average pomodoro:  {stats.avg_minutes} min",
        f"  Longest pomodoro:  {stats.max_minutes} min",
        f"  Shortest pomodoro: {stats.min_minutes} min",
    ]


def render_summary(subjects: Sequence[RawSubject], stats: BatchStats) -> str:
    """Plain-text summary of every subject's intervals followed by batch statistics."""
    lines: list[str] = []
    if subjects:
        for subject in subjects:
            lines.extend(_format_subject(subject))
            lines.append("")
    else:
        lines.extend(["No pomodoro sessions found.", ""])
    lines.extend(_format_stats(stats.overall))
    return "\n".join(lines) + "\n"


def compose_reminder(
    subject_name: str,
    session_start: datetime,
    subjects: Sequence[RawSubject],
    stats: BatchStats,
    *,
    lead_minutes: int = DEFAULT_LEAD_MINUTES,
) -> tuple[str, str]:
    """Default :class:`Composer`: reminder subject line plus the batch summary."""
    return (
        reminder_subject_line(subject_name, session_start, lead_minutes),
        render_summary(subjects, stats),
    )
