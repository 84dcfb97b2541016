"""Delayed one-shot notification scheduler.

:class:`DelayScheduler` arms a notification ``lead_minutes`` before a
session starts and runs it on a fixed-size worker pool when that instant
arrives.  Requests whose trigger time is already past, or less than
``guard_minutes`` away, are dropped at submission: no task is created,
the decision is logged and counted, and the caller gets ``None`` back.

Internals: one daemon timer thread owns a min-heap of armed callbacks
keyed by ``(fires_at, sequence)``.  It sleeps on a condition variable
until the earliest entry is due (re-checking at least every
``max_wait_seconds`` so an injected clock can move freely), then hands
each due callback to a :class:`~concurrent.futures.ThreadPoolExecutor`.
``schedule`` only pushes onto the heap and returns; it never waits for
a callback.

Armed tasks live in memory only.  :meth:`DelayScheduler.shutdown`
discards whatever has not fired yet.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable

from pydantic import BaseModel, Field

from studycue.core.defaults import (
    DEFAULT_GUARD_MINUTES,
    DEFAULT_LEAD_MINUTES,
    DEFAULT_POOL_SIZE,
    DEFAULT_THREAD_NAME_PREFIX,
    DEFAULT_TIMER_MAX_WAIT_SECONDS,
)
from studycue.core.time import to_naive_utc, utc_now
from studycue.core.types import ScheduledTask
from studycue.notify.delivery import Deliverer
from studycue.notify.dispatch import DispatchCallback

logger = logging.getLogger(__name__)


def compute_trigger_time(session_start: datetime, lead: timedelta) -> datetime:
    """Instant a reminder for *session_start* fires: ``session_start - lead``."""
    return to_naive_utc(session_start) - lead


def is_too_soon(fires_at: datetime, now: datetime, guard: timedelta) -> bool:
    """True if *fires_at* is already past or less than *guard* after *now*."""
    return fires_at < now + guard


class SchedulerReport(BaseModel, frozen=True):
    """Counter snapshot of a scheduler's lifetime activity."""

    armed: int = Field(ge=0, description="Tasks accepted and armed.")
    dropped: int = Field(ge=0, description="Requests rejected by the near-term guard.")
    fired: int = Field(ge=0, description="Tasks whose callback has run.")
    failed: int = Field(ge=0, description="Fired tasks whose delivery failed.")
    pending: int = Field(ge=0, description="Armed tasks still waiting for their trigger time.")
    running: int = Field(ge=0, description="Callbacks submitted to the pool and not finished yet.")


class DelayScheduler:
    """Explicitly owned scheduler for fire-once notifications.

    Args:
        deliver: Delivery capability invoked at fire time.
        pool_size: Number of worker threads executing callbacks.
        lead_minutes: How long before the session start to fire.
        guard_minutes: Minimum distance into the future a trigger time
            must have to be accepted.
        clock: Returns the current naive-UTC time.  Injectable for tests.
        thread_name_prefix: Prefix for worker and timer thread names.
        max_wait_seconds: Upper bound on how long the timer thread sleeps
            before re-reading the clock.

    Raises:
        ValueError: If ``pool_size < 1`` or a minute setting is negative.
    """

    def __init__(
        self,
        deliver: Deliverer,
        *,
        pool_size: int = DEFAULT_POOL_SIZE,
        lead_minutes: int = DEFAULT_LEAD_MINUTES,
        guard_minutes: int = DEFAULT_GUARD_MINUTES,
        clock: Callable[[], datetime] = utc_now,
        thread_name_prefix: str = DEFAULT_THREAD_NAME_PREFIX,
        max_wait_seconds: float = DEFAULT_TIMER_MAX_WAIT_SECONDS,
    ) -> None:
        if pool_size < 1:
            raise ValueError(f"pool_size must be >= 1, got {pool_size}")
        if lead_minutes < 0 or guard_minutes < 0:
            raise ValueError("lead_minutes and guard_minutes must be >= 0")

        self._deliver = deliver
        self._lead = timedelta(minutes=lead_minutes)
        self._guard = timedelta(minutes=guard_minutes)
        self._clock = clock
        self._max_wait = max_wait_seconds

        self._executor = ThreadPoolExecutor(
            max_workers=pool_size, thread_name_prefix=thread_name_prefix,
        )
        self._cond = threading.Condition()
        self._heap: list[tuple[datetime, int, DispatchCallback]] = []
        self._seq = itertools.count()
        self._closed = False

        self._armed = 0
        self._dropped = 0
        self._fired = 0
        self._failed = 0
        self._running = 0

        self._timer = threading.Thread(
            target=self._run_timer, name=f"{thread_name_prefix}timer", daemon=True,
        )
        self._timer.start()
        logger.debug("DelayScheduler started with %d worker(s)", pool_size)

    # -- scheduling ------------------------------------------------------------

    @property
    def lead(self) -> timedelta:
        return self._lead

    @property
    def guard(self) -> timedelta:
        return self._guard

    def trigger_time(self, session_start: datetime) -> datetime:
        """The instant a notification for *session_start* fires."""
        return compute_trigger_time(session_start, self._lead)

    def within_guard(self, fires_at: datetime, now: datetime | None = None) -> bool:
        """True if *fires_at* is already past or within the guard margin of *now*."""
        if now is None:
            now = self._clock()
        return is_too_soon(fires_at, now, self._guard)

    def schedule(
        self,
        recipient: str,
        subject: str,
        body: str,
        session_start: datetime,
    ) -> ScheduledTask | None:
        """Arm a notification ``lead`` before *session_start*.

        Returns immediately.  A trigger time that fails the near-term
        guard is not an error: nothing is armed and ``None`` is returned.

        Args:
            recipient: Opaque recipient identifier.
            subject: Subject line.
            body: Message body.
            session_start: Start of the announced session.

        Returns:
            The armed :class:`ScheduledTask`, or ``None`` if dropped.

        Raises:
            RuntimeError: If the scheduler has been shut down.
        """
        with self._cond:
            if self._closed:
                raise RuntimeError("cannot schedule on a scheduler that has been shut down")

        fires_at = self.trigger_time(session_start)
        now = self._clock()

        if self.within_guard(fires_at, now):
            with self._cond:
                self._dropped += 1
            logger.info(
                "Notification not scheduled: trigger %s is past or within %s of now (%s)",
                fires_at, self._guard, now,
            )
            return None

        task = ScheduledTask(
            task_id=str(uuid.uuid4()),
            recipient=recipient,
            subject=subject,
            body=body,
            session_start=to_naive_utc(session_start),
            fires_at=fires_at,
        )
        callback = DispatchCallback(
            task, self._deliver, clock=self._clock, on_fired=self._record_fired,
        )

        with self._cond:
            if self._closed:
                raise RuntimeError("cannot schedule on a scheduler that has been shut down")
            heapq.heappush(self._heap, (fires_at, next(self._seq), callback))
            self._armed += 1
            self._cond.notify_all()

        logger.info("Scheduled task %s for %s (session at %s)", task.task_id, fires_at, task.session_start)
        return task

    # -- timer / pool ----------------------------------------------------------

    def _run_timer(self) -> None:
        with self._cond:
            while not self._closed:
                now = self._clock()
                while self._heap and self._heap[0][0] <= now:
                    _, _, callback = heapq.heappop(self._heap)
                    self._submit_locked(callback)

                timeout = self._max_wait
                if self._heap:
                    until_next = (self._heap[0][0] - now).total_seconds()
                    timeout = min(timeout, max(until_next, 0.0))
                self._cond.wait(timeout)

    def _submit_locked(self, callback: DispatchCallback) -> None:
        self._running += 1
        future = self._executor.submit(callback)
        future.add_done_callback(self._on_done)

    def _on_done(self, future: Future[None]) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Dispatch callback crashed: %s", exc)
        with self._cond:
            self._running -= 1
            self._cond.notify_all()

    def _record_fired(self, task: ScheduledTask, delivered: bool) -> None:
        with self._cond:
            self._fired += 1
            if not delivered:
                self._failed += 1

    def wake(self) -> None:
        """Make the timer thread re-read the clock now."""
        with self._cond:
            self._cond.notify_all()

    # -- introspection ---------------------------------------------------------

    def pending(self) -> list[ScheduledTask]:
        """Armed tasks that have not been handed to the pool, earliest first."""
        with self._cond:
            entries = sorted(self._heap)
        return [callback.task for _, _, callback in entries]

    def report(self) -> SchedulerReport:
        with self._cond:
            return SchedulerReport(
                armed=self._armed,
                dropped=self._dropped,
                fired=self._fired,
                failed=self._failed,
                pending=len(self._heap),
                running=self._running,
            )

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no armed task is due and no callback is running.

        Tasks whose trigger time is still in the future do not keep the
        scheduler busy.

        Args:
            timeout: Maximum seconds to wait, ``None`` for no limit.

        Returns:
            ``True`` if the scheduler went idle, ``False`` on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                due = bool(self._heap) and self._heap[0][0] <= self._clock()
                if not due and self._running == 0:
                    return True
                wait_for = self._max_wait
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    wait_for = min(wait_for, remaining)
                self._cond.notify_all()
                self._cond.wait(wait_for)

    # -- lifecycle -------------------------------------------------------------

    def shutdown(self, wait: bool = True) -> None:
        """Stop the timer, discard unfired tasks, and shut the pool down.

        Args:
            wait: Block until callbacks already handed to the pool finish.
        """
        with self._cond:
            if self._closed:
                return
            self._closed = True
            discarded = len(self._heap)
            self._heap.clear()
            self._cond.notify_all()

        if discarded:
            logger.warning("Scheduler shut down with %d unfired task(s) discarded", discarded)
        self._timer.join()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> DelayScheduler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True)
