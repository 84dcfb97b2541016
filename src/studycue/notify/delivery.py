"""Delivery capability contract and a logging backend.

studycue never talks to a mail server itself.  At fire time it calls
whatever object satisfies :class:`Deliverer`; the object reports the
outcome as a :class:`DeliveryResult` (or raises, which the dispatch
boundary treats the same as a failed result).
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class DeliveryResult(BaseModel, frozen=True):
    """Outcome of a single delivery attempt."""

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> DeliveryResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> DeliveryResult:
        return cls(success=False, error=error)


@runtime_checkable
class Deliverer(Protocol):
    """Anything that can send ``(recipient, subject, body)`` somewhere.

    Plain functions with the same signature satisfy the protocol too.
    """

    def __call__(self, recipient: str, subject: str, body: str) -> DeliveryResult: ...


class SentMessage(BaseModel, frozen=True):
    recipient: str
    subject: str
    body: str


class LoggingDeliverer:
    """Deliverer that logs each message and keeps it in memory.

    Used by the CLI as a stand-in transport.  Thread-safe: the scheduler
    calls it from several pool workers at once.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sent: list[SentMessage] = []

    def __call__(self, recipient: str, subject: str, body: str) -> DeliveryResult:
        message = SentMessage(recipient=recipient, subject=subject, body=body)
        with self._lock:
            self._sent.append(message)
        logger.info("Delivered %r (%d chars) recipient=%s", subject, len(body), recipient)
        return DeliveryResult.ok()

    @property
    def sent(self) -> list[SentMessage]:
        with self._lock:
            return list(self._sent)
