"""Tests for the batch pipeline and bus message routing.

Covers:
- decode errors abandon the batch before anything is scheduled
- one reminder per session, addressed with the first interval's subject
- near-term drops counted per batch
- envelope vs plain message routing
- intervals without an end still form sessions
- compose/schedule failures contained per session, batch errors reported
"""

from __future__ import annotations

import datetime as dt
import json
from typing import Any

import pytest

from studycue.core.defaults import REGULAR_MESSAGE_SUBJECT
from studycue.notify.delivery import DeliveryResult, LoggingDeliverer
from studycue.notify.scheduler import DelayScheduler
from studycue.pipeline import analyse_batch, process_batch, process_message


@pytest.fixture()
def deliverer() -> LoggingDeliverer:
    return LoggingDeliverer()


@pytest.fixture()
def scheduler(deliverer, clock):
    sched = DelayScheduler(deliverer, clock=clock, max_wait_seconds=0.02)
    yield sched
    sched.shutdown(wait=True)


class TestAnalyseBatch:
    def test_sample_batch(self, sample_batch: dict[str, Any], t0: dt.datetime) -> None:
        from studycue.ingest.payload import decode_batch

        analysis = analyse_batch(decode_batch(sample_batch).subjects)
        assert len(analysis.intervals) == 3
        assert [s.start_time for s in analysis.sessions] == [t0, t0 + dt.timedelta(minutes=45)]
        assert [s.subject_name for s in analysis.sessions] == ["Math", "Math"]
        assert analysis.stats.overall.interval_count == 2

    def test_open_intervals_still_cluster(self, t0: dt.datetime) -> None:
        from studycue.ingest.payload import RawInterval, RawSubject

        subjects = [RawSubject(name="Math", tomatoes=[RawInterval(start_at=t0), RawInterval(start_at=t0 + dt.timedelta(hours=2))])]
        analysis = analyse_batch(subjects)
        assert len(analysis.sessions) == 2
        assert analysis.stats.overall.interval_count == 0


class TestProcessBatch:
    def test_schedules_one_reminder_per_session(self, sample_batch, scheduler, t0) -> None:
        outcome = process_batch(json.dumps(sample_batch), "alice@example.com", scheduler)

        assert outcome.ok
        assert outcome.dropped == 0
        assert [t.fires_at for t in outcome.tasks] == [
            t0 - dt.timedelta(minutes=15),
            t0 + dt.timedelta(minutes=30),
        ]
        assert all(t.recipient == "alice@example.com" for t in outcome.tasks)
        assert outcome.tasks[0].subject == "In 15 minutes, at 09:00, the study session for Math begins"
        assert "Session statistics" in outcome.tasks[0].body

    def test_late_session_dropped(self, sample_batch, scheduler, clock, t0) -> None:
        clock.set(t0)
        outcome = process_batch(sample_batch, "alice", scheduler)
        assert outcome.ok
        assert outcome.dropped == 1
        assert [t.session_start for t in outcome.tasks] == [t0 + dt.timedelta(minutes=45)]

    def test_decode_error_schedules_nothing(self, scheduler) -> None:
        outcome = process_batch("{broken", "alice", scheduler)
        assert not outcome.ok
        assert outcome.error
        assert outcome.tasks == []
        assert outcome.stats is None
        assert scheduler.report().armed == 0

    def test_empty_batch(self, scheduler) -> None:
        outcome = process_batch({"subjects": None}, "alice", scheduler)
        assert outcome.ok
        assert outcome.sessions == []
        assert outcome.tasks == []

    def test_custom_composer_and_gap(self, sample_batch, scheduler) -> None:
        calls: list[str] = []

        def composer(subject_name, session_start, subjects, stats):
            calls.append(subject_name)
            return f"subject {subject_name}", "body"

        outcome = process_batch(sample_batch, "alice", scheduler, composer=composer, gap_minutes=5)
        assert calls == ["Math", "Physics", "Math"]
        assert [t.subject for t in outcome.tasks] == ["subject Math", "subject Physics", "subject Math"]

    def test_reminders_fire(self, sample_batch, scheduler, deliverer, clock, t0) -> None:
        process_batch(sample_batch, "alice", scheduler)
        clock.set(t0 + dt.timedelta(hours=1))
        scheduler.wake()
        assert scheduler.wait_idle(timeout=5.0)
        assert len(deliverer.sent) == 2
        assert scheduler.report().fired == 2


class TestProcessMessage:
    def test_envelope_routed_to_batch(self, sample_batch, scheduler, deliverer) -> None:
        message = "EMAIL:bob@example.com|DATA:" + json.dumps(sample_batch)
        outcome = process_message(message, scheduler, deliverer, default_recipient="ops@example.com")

        assert outcome.kind == "batch"
        assert outcome.batch is not None
        assert outcome.batch.recipient == "bob@example.com"
        assert len(outcome.batch.tasks) == 2
        assert deliverer.sent == []

    def test_envelope_with_bad_json(self, scheduler, deliverer) -> None:
        outcome = process_message("EMAIL:bob|DATA:not json", scheduler, deliverer, default_recipient="ops")
        assert outcome.kind == "batch"
        assert not outcome.batch.ok
        assert scheduler.report().armed == 0

    def test_plain_message_forwarded(self, scheduler, deliverer) -> None:
        outcome = process_message("hello there", scheduler, deliverer, default_recipient="ops@example.com")

        assert outcome.kind == "plain"
        assert outcome.delivery.success
        sent = deliverer.sent
        assert len(sent) == 1
        assert sent[0].recipient == "ops@example.com"
        assert sent[0].subject == REGULAR_MESSAGE_SUBJECT
        assert "hello there" in sent[0].body

    def test_plain_message_delivery_failure_reported(self, scheduler) -> None:
        def boom(recipient: str, subject: str, body: str) -> DeliveryResult:
            raise OSError("down")

        outcome = process_message("hello", scheduler, boom, default_recipient="ops")
        assert outcome.kind == "plain"
        assert not outcome.delivery.success
        assert "OSError" in outcome.delivery.error


class TestFailureContainment:
    def test_composer_error_skips_only_that_session(self, sample_batch, scheduler) -> None:
        def composer(subject_name, session_start, subjects, stats):
            if session_start.minute == 0:
                raise KeyError("template")
            return "subject", "body"

        outcome = process_batch(sample_batch, "alice", scheduler, composer=composer)
        assert outcome.ok
        assert outcome.failed == 1
        assert [t.session_start.minute for t in outcome.tasks] == [45]

    def test_shut_down_scheduler_counts_failures(self, sample_batch, deliverer, clock) -> None:
        sched = DelayScheduler(deliverer, clock=clock)
        sched.shutdown()
        message = "EMAIL:bob|DATA:" + json.dumps(sample_batch)
        outcome = process_message(message, sched, deliverer, default_recipient="ops")

        assert outcome.kind == "batch"
        assert outcome.batch.failed == 2
        assert outcome.batch.tasks == []

    def test_unexpected_batch_error_reported_on_outcome(self, sample_batch, scheduler, deliverer, monkeypatch) -> None:
        import studycue.pipeline as pipeline

        def broken(*args, **kwargs):
            raise RuntimeError("clusterer exploded")

        monkeypatch.setattr(pipeline, "analyse_batch", broken)
        message = "EMAIL:bob|DATA:" + json.dumps(sample_batch)
        outcome = process_message(message, scheduler, deliverer, default_recipient="ops")

        assert outcome.kind == "batch"
        assert not outcome.batch.ok
        assert outcome.batch.recipient == "bob"
        assert outcome.batch.error == "RuntimeError: clusterer exploded"
