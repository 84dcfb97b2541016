"""Centralised default constants for studycue.

Every project-wide magic number / string lives here.
Import these instead of hard-coding values in function signatures or CLI options.
"""

from __future__ import annotations

from typing import Final

# ── Sessions ──
DEFAULT_SESSION_GAP_MINUTES: Final[int] = 30

# ── Notification timing ──
DEFAULT_LEAD_MINUTES: Final[int] = 15
DEFAULT_GUARD_MINUTES: Final[int] = 1

# ── Worker pool ──
DEFAULT_POOL_SIZE: Final[int] = 5
DEFAULT_THREAD_NAME_PREFIX: Final[str] = "studycue-dispatch-"
DEFAULT_TIMER_MAX_WAIT_SECONDS: Final[float] = 1.0

# ── Paths ──
DEFAULT_DATA_DIR: Final[str] = "data"

# ── Delivery ──
DEFAULT_RECIPIENT: Final[str] = "studycue@localhost"
REGULAR_MESSAGE_SUBJECT: Final[str] = "Message received"

# ── Envelope format ──
ENVELOPE_PREFIX: Final[str] = "EMAIL:"
ENVELOPE_SEPARATOR: Final[str] = "|DATA:"
