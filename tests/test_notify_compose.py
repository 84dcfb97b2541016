"""Tests for reminder composition."""

from __future__ import annotations

import datetime as dt
from typing import Any

from studycue.ingest.payload import decode_batch
from studycue.notify.compose import compose_reminder, render_summary, reminder_subject_line
from studycue.pipeline import analyse_batch
from studycue.report.stats import BatchStats, EMPTY_STATS


def test_subject_line(t0: dt.datetime) -> None:
    assert reminder_subject_line("Math", t0) == "In 15 minutes, at 09:00, the study session for Math begins"


def test_subject_line_custom_lead(t0: dt.datetime) -> None:
    assert reminder_subject_line("Physics", t0, lead_minutes=5).startswith("In 5 minutes, at 09:00")


def test_summary_without_subjects() -> None:
    text = render_summary([], BatchStats(overall=EMPTY_STATS))
    assert text.startswith("No pomodoro sessions found.")
    assert "Total pomodoros:   0" in text


def test_summary_lists_every_pomodoro(sample_batch: dict[str, Any]) -> None:
    analysis = analyse_batch(decode_batch(sample_batch).subjects)
    text = render_summary(analysis.subjects, analysis.stats)

    assert "Math" in text and "Physics" in text and "History" in text
    assert "Pomodoro #3" in text
    assert "Mar 02, 2026 | 09:00 - 09:25" in text
    assert "Duration: 25 min" in text
    assert "Pause until: 09:30 (30 min)" in text
    assert "Study time:        45 min" in text


def test_compose_reminder_returns_pair(t0: dt.datetime, sample_batch: dict[str, Any]) -> None:
    analysis = analyse_batch(decode_batch(sample_batch).subjects)
    subject, body = compose_reminder("Math", t0, analysis.subjects, analysis.stats, lead_minutes=10)
    assert subject == "In 10 minutes, at 09:00, the study session for Math begins"
    assert body == render_summary(analysis.subjects, analysis.stats)
