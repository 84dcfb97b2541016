"""Fire-time dispatch boundary.

A :class:`DispatchCallback` is the zero-argument callable the scheduler
hands to its worker pool.  It owns exactly one task, calls the delivery
capability once, and swallows every delivery failure after logging it,
so one bad delivery can never disturb the scheduler or other tasks.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from studycue.core.time import utc_now
from studycue.core.types import ScheduledTask, TaskState
from studycue.notify.delivery import Deliverer, DeliveryResult

logger = logging.getLogger(__name__)


class DispatchCallback:
    """Bound ``(task, deliver)`` pair, executed at most once.

    Args:
        task: The task to deliver.  Its state moves to ``FIRED`` when the
            callback runs, whatever the delivery outcome.
        deliver: The delivery capability.
        clock: Source of "now" for ``task.fired_at``.
        on_fired: Optional hook receiving the task and the delivery
            outcome (``True`` on success); used by the scheduler to keep
            its counters.
    """

    def __init__(
        self,
        task: ScheduledTask,
        deliver: Deliverer,
        *,
        clock: Callable[[], datetime] = utc_now,
        on_fired: Callable[[ScheduledTask, bool], None] | None = None,
    ) -> None:
        self._task = task
        self._deliver = deliver
        self._clock = clock
        self._on_fired = on_fired

    @property
    def task(self) -> ScheduledTask:
        return self._task

    def __call__(self) -> None:
        task = self._task
        if task.state != TaskState.PENDING:
            logger.warning("Task %s already %s, not firing again", task.task_id, task.state)
            return

        result = safe_deliver(self._deliver, task.recipient, task.subject, task.body)
        error = None if result.success else result.error
        task.state = TaskState.FIRED
        task.fired_at = self._clock()
        task.delivery_error = error

        if error is None:
            logger.info("Task %s fired (scheduled for %s)", task.task_id, task.fires_at)
        else:
            logger.error("Task %s fired but delivery failed: %s", task.task_id, error)

        if self._on_fired is not None:
            try:
                self._on_fired(task, error is None)
            except Exception:
                logger.exception("on_fired hook failed for task %s", task.task_id)


def safe_deliver(deliver: Deliverer, recipient: str, subject: str, body: str) -> DeliveryResult:
    """Call *deliver* once and fold any exception into a failed :class:`DeliveryResult`.

    A deliverer that returns something other than a ``DeliveryResult``
    (e.g. ``None`` from a plain function) is treated as successful.
    """
    try:
        result = deliver(recipient, subject, body)
    except Exception as exc:
        logger.exception("Delivery raised for subject %r", subject)
        return DeliveryResult.failed(f"{type(exc).__name__}: {exc}")

    if isinstance(result, DeliveryResult):
        if not result.success and not result.error:
            return DeliveryResult.failed("delivery reported failure")
        return result
    return DeliveryResult.ok()
