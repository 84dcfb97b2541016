"""Batch pipeline: decode, flatten, cluster, summarise, and schedule.

Each batch goes through the same steps:

1. decode the raw payload (a decode error abandons the batch),
2. flatten subjects into intervals,
3. cluster intervals into sessions and compute statistics (pure, and
   finished before anything is scheduled),
4. compose and schedule one reminder per session.

:func:`process_message` adds the routing for raw bus messages: envelope
messages become batches for the envelope's recipient, anything else is
forwarded at once to the default recipient.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, Field

from studycue.core.defaults import DEFAULT_SESSION_GAP_MINUTES, REGULAR_MESSAGE_SUBJECT
from studycue.core.types import Interval, ScheduledTask, Session
from studycue.ingest.intervals import flatten_intervals
from studycue.ingest.payload import RawSubject, decode_batch, parse_envelope
from studycue.notify.compose import Composer, compose_reminder
from studycue.notify.delivery import Deliverer, DeliveryResult
from studycue.notify.dispatch import safe_deliver
from studycue.notify.scheduler import DelayScheduler
from studycue.report.stats import BatchStats, compute_batch_stats
from studycue.sessions.cluster import cluster_sessions

logger = logging.getLogger(__name__)


class BatchAnalysis(BaseModel, frozen=True):
    """Everything derived from one decoded batch before scheduling."""

    subjects: list[RawSubject]
    intervals: list[Interval]
    sessions: list[Session]
    stats: BatchStats


class BatchOutcome(BaseModel, frozen=True):
    """Result of :func:`process_batch`.

    On a decode error only ``recipient`` and ``error`` are set.
    ``dropped`` counts sessions whose reminder failed the near-term guard,
    ``failed`` those whose reminder could not be composed or scheduled.
    """

    recipient: str
    sessions: list[Session] = Field(default_factory=list)
    stats: BatchStats | None = None
    tasks: list[ScheduledTask] = Field(default_factory=list)
    dropped: int = 0
    failed: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MessageOutcome(BaseModel, frozen=True):
    """Result of :func:`process_message` for either message kind."""

    kind: Literal["batch", "plain"]
    batch: BatchOutcome | None = None
    delivery: DeliveryResult | None = None


def analyse_batch(
    subjects: list[RawSubject],
    *,
    gap_minutes: int = DEFAULT_SESSION_GAP_MINUTES,
) -> BatchAnalysis:
    """Flatten, cluster, and summarise decoded subjects.  Pure."""
    intervals = flatten_intervals(subjects)
    return BatchAnalysis(
        subjects=subjects,
        intervals=intervals,
        sessions=cluster_sessions(intervals, gap_minutes=gap_minutes),
        stats=compute_batch_stats(intervals, subjects=[s.name for s in subjects]),
    )


def process_batch(
    raw: str | bytes | Mapping[str, Any],
    recipient: str,
    scheduler: DelayScheduler,
    *,
    composer: Composer = compose_reminder,
    gap_minutes: int = DEFAULT_SESSION_GAP_MINUTES,
) -> BatchOutcome:
    """Run the full pipeline for one batch and schedule its reminders.

    Args:
        raw: Raw batch payload (JSON text or mapping).
        recipient: Who receives the reminders.  Not validated.
        scheduler: Scheduler that arms the reminders.
        composer: Builds ``(subject_line, body)`` for each session.
        gap_minutes: Session clustering threshold.

    Returns:
        A :class:`BatchOutcome`.  Never raises for bad input; a session
        whose reminder cannot be composed or scheduled is logged and
        counted in ``failed`` while the other sessions proceed.
    """
    decoded = decode_batch(raw)
    if not decoded.ok:
        logger.error("Abandoning batch: %s", decoded.error)
        return BatchOutcome(recipient=recipient, error=decoded.error)

    analysis = analyse_batch(decoded.subjects, gap_minutes=gap_minutes)
    logger.info(
        "Batch has %d interval(s) in %d session(s)",
        len(analysis.intervals), len(analysis.sessions),
    )

    tasks: list[ScheduledTask] = []
    dropped = 0
    failed = 0
    for session in analysis.sessions:
        try:
            subject_line, body = composer(
                session.subject_name, session.start_time, analysis.subjects, analysis.stats,
            )
            task = scheduler.schedule(recipient, subject_line, body, session.start_time)
        except Exception:
            logger.exception("Could not schedule reminder for session %s", session.session_id)
            failed += 1
            continue
        if task is None:
            dropped += 1
        else:
            tasks.append(task)

    return BatchOutcome(
        recipient=recipient,
        sessions=analysis.sessions,
        stats=analysis.stats,
        tasks=tasks,
        dropped=dropped,
        failed=failed,
    )


def process_message(
    message: str,
    scheduler: DelayScheduler,
    deliver: Deliverer,
    *,
    default_recipient: str,
    composer: Composer = compose_reminder,
    gap_minutes: int = DEFAULT_SESSION_GAP_MINUTES,
) -> MessageOutcome:
    """Route one raw bus message.

    ``EMAIL:<recipient>|DATA:<json>`` messages are processed as batches
    for ``<recipient>``.  Any other message is delivered immediately to
    *default_recipient* as a plain notice; a delivery failure is logged
    and reported in the outcome, never raised.  Likewise an unexpected
    failure while processing a batch is logged and carried as the batch
    outcome's ``error``.
    """
    logger.info("Received message (%d chars)", len(message))

    envelope = parse_envelope(message)
    if envelope is not None:
        try:
            outcome = process_batch(
                envelope.data, envelope.recipient, scheduler,
                composer=composer, gap_minutes=gap_minutes,
            )
        except Exception as exc:
            logger.exception("Batch processing failed")
            outcome = BatchOutcome(
                recipient=envelope.recipient, error=f"{type(exc).__name__}: {exc}",
            )
        return MessageOutcome(kind="batch", batch=outcome)

    body = f"A message has been received:\n\n{message}\n"
    result = safe_deliver(deliver, default_recipient, REGULAR_MESSAGE_SUBJECT, body)
    if result.success:
        logger.info("Forwarded plain message to the default recipient")
    else:
        logger.error("Could not forward plain message: %s", result.error)
    return MessageOutcome(kind="plain", delivery=result)
