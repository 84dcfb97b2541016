"""Batch payload decoding: JSON study data and the bus envelope format.

A batch arrives as JSON shaped like::

    {
      "calendar": [...],                       # optional, ignored
      "subjects": [
        {"name": "Math",
         "tomatoes": [
           {"start_at": "2026-03-02T09:00:00+01:00",
            "end_at": "2026-03-02T09:25:00+01:00",
            "pause_end_at": "2026-03-02T09:30:00+01:00"}
         ]}
      ]
    }

Over the message bus the JSON is wrapped in an envelope naming the
recipient: ``EMAIL:<recipient>|DATA:<json>``.

Decoding never raises: :func:`decode_batch` returns a
:class:`DecodeResult` whose ``error`` is set when the payload is
unusable, and the caller abandons the batch.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from studycue.core.defaults import ENVELOPE_PREFIX, ENVELOPE_SEPARATOR
from studycue.core.time import to_naive_utc

logger = logging.getLogger(__name__)


class RawInterval(BaseModel, frozen=True):
    """One ``tomatoes[]`` entry as it appears on the wire."""

    start_at: datetime | None = None
    end_at: datetime | None = None
    pause_end_at: datetime | None = None

    @field_validator("start_at", "end_at", "pause_end_at")
    @classmethod
    def _normalise(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value) if value is not None else None


class RawSubject(BaseModel, frozen=True):
    """One ``subjects[]`` entry: a named subject and its intervals."""

    name: str = ""
    tomatoes: list[RawInterval] | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, value: Any) -> Any:
        return "" if value is None else value


class BatchPayload(BaseModel, frozen=True):
    """Top-level batch document.  ``calendar`` is accepted but unused."""

    subjects: list[RawSubject] | None = None
    calendar: list[dict[str, Any]] | None = None


class DecodeResult(BaseModel, frozen=True):
    """Outcome of decoding one raw batch.

    Exactly one of the two states holds: ``error is None`` and
    ``subjects`` carries the decoded data, or ``error`` describes why the
    batch was rejected and ``subjects`` is empty.
    """

    subjects: list[RawSubject] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Envelope(BaseModel, frozen=True):
    """A bus message split into its recipient and JSON data parts."""

    recipient: str
    data: str


def decode_batch(raw: str | bytes | Mapping[str, Any]) -> DecodeResult:
    """Decode a raw batch (JSON text or an already-parsed mapping).

    Args:
        raw: JSON document as ``str``/``bytes``, or a mapping.

    Returns:
        A :class:`DecodeResult`.  ``subjects: null`` and a missing
        ``subjects`` key both decode to an empty subject list.
    """
    try:
        if isinstance(raw, Mapping):
            payload = BatchPayload.model_validate(raw)
        else:
            payload = BatchPayload.model_validate_json(raw)
    except ValidationError as exc:
        logger.error("Rejected batch payload: %d validation error(s)", exc.error_count())
        return DecodeResult(error=_describe(exc))
    return DecodeResult(subjects=list(payload.subjects or []))


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    return f"{location}: {first.get('msg', 'invalid value')}"


def is_envelope(message: str | None) -> bool:
    """True if *message* uses the ``EMAIL:<recipient>|DATA:<json>`` form."""
    return (
        message is not None
        and message.startswith(ENVELOPE_PREFIX)
        and ENVELOPE_SEPARATOR in message
    )


def parse_envelope(message: str | None) -> Envelope | None:
    """Split an envelope message into recipient and data.

    Returns ``None`` for any message that is not in envelope form.  The
    recipient is taken verbatim (no format validation); the split happens
    at the first separator so the JSON part may itself contain it.
    """
    if message is None or not is_envelope(message):
        return None
    head, data = message.split(ENVELOPE_SEPARATOR, 1)
    return Envelope(recipient=head[len(ENVELOPE_PREFIX):], data=data)
