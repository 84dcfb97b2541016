"""Scheduler configuration persistence.

Stores per-install settings as a JSON file inside the data directory.
The file is created on first access, pre-filled with the defaults from
:mod:`studycue.core.defaults`.

Typical location::

    data/config.json

Usage::

    from studycue.core.config import AppConfig

    cfg = AppConfig(data_dir)
    cfg.default_recipient            # who receives plain bus messages
    cfg.pool_size = 8                # persists immediately
    cfg.as_dict()
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from studycue.core.defaults import (
    DEFAULT_DATA_DIR,
    DEFAULT_GUARD_MINUTES,
    DEFAULT_LEAD_MINUTES,
    DEFAULT_POOL_SIZE,
    DEFAULT_RECIPIENT,
    DEFAULT_SESSION_GAP_MINUTES,
)

logger = logging.getLogger(__name__)

_CONFIG_FILENAME = "config.json"

_INT_SETTINGS: dict[str, tuple[int, int]] = {
    # key: (default, minimum)
    "session_gap_minutes": (DEFAULT_SESSION_GAP_MINUTES, 0),
    "lead_minutes": (DEFAULT_LEAD_MINUTES, 0),
    "guard_minutes": (DEFAULT_GUARD_MINUTES, 0),
    "pool_size": (DEFAULT_POOL_SIZE, 1),
}


class AppConfig:
    """Read/write access to ``config.json`` in a data directory.

    Integer settings (gap threshold, notification lead, near-term guard,
    worker pool size) are validated on every write; ``default_recipient``
    must be a non-empty string.  Unknown keys are preserved untouched so
    the file can carry extra values for external collaborators.

    All mutations are persisted immediately.  The file is plain JSON so
    it can be hand-edited when the CLI is not available.
    """

    def __init__(self, data_dir: Path | str = DEFAULT_DATA_DIR) -> None:
        self._path = Path(data_dir) / _CONFIG_FILENAME
        self._data: dict[str, Any] = self._load()
        if not self._path.exists():
            self._persist()

    def _load(self) -> dict[str, Any]:
        if self._path.exists():
            try:
                return json.loads(self._path.read_text("utf-8"))
            except (json.JSONDecodeError, OSError):
                logger.warning("Corrupt config at %s, using defaults", self._path)
        return {}

    def _persist(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self.as_dict(), indent=2) + "\n", "utf-8")

    @property
    def path(self) -> Path:
        return self._path

    # -- integer settings ------------------------------------------------------

    def _get_int(self, key: str) -> int:
        default, minimum = _INT_SETTINGS[key]
        raw = self._data.get(key, default)
        try:
            number = int(raw)
        except (TypeError, ValueError):
            logger.warning("Invalid %s %r in %s, using default %d", key, raw, self._path, default)
            return default
        if number < minimum:
            logger.warning("Out-of-range %s %d in %s, using default %d", key, number, self._path, default)
            return default
        return number

    def _set_int(self, key: str, value: Any) -> None:
        _, minimum = _INT_SETTINGS[key]
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be an integer, got {value!r}") from None
        if number < minimum:
            raise ValueError(f"{key} must be >= {minimum}, got {number}")
        self._data[key] = number

    @property
    def session_gap_minutes(self) -> int:
        """Largest start-to-start gap (minutes) that keeps intervals in one session."""
        return self._get_int("session_gap_minutes")

    @session_gap_minutes.setter
    def session_gap_minutes(self, value: int) -> None:
        self._set_int("session_gap_minutes", value)
        self._persist()

    @property
    def lead_minutes(self) -> int:
        """How long before a session start its notification fires."""
        return self._get_int("lead_minutes")

    @lead_minutes.setter
    def lead_minutes(self, value: int) -> None:
        self._set_int("lead_minutes", value)
        self._persist()

    @property
    def guard_minutes(self) -> int:
        """Minimum distance into the future a trigger time must have."""
        return self._get_int("guard_minutes")

    @guard_minutes.setter
    def guard_minutes(self, value: int) -> None:
        self._set_int("guard_minutes", value)
        self._persist()

    @property
    def pool_size(self) -> int:
        return self._get_int("pool_size")

    @pool_size.setter
    def pool_size(self, value: int) -> None:
        self._set_int("pool_size", value)
        self._persist()

    # -- default_recipient -----------------------------------------------------

    @property
    def default_recipient(self) -> str:
        return self._data.get("default_recipient", DEFAULT_RECIPIENT)

    @default_recipient.setter
    def default_recipient(self, value: str) -> None:
        value = value.strip()
        if not value:
            raise ValueError("default_recipient must not be empty")
        self._data["default_recipient"] = value
        self._persist()

    # -- generic helpers -------------------------------------------------------

    def as_dict(self) -> dict[str, Any]:
        return {
            **{k: v for k, v in self._data.items() if k not in _INT_SETTINGS and k != "default_recipient"},
            "default_recipient": self.default_recipient,
            **{key: self._get_int(key) for key in _INT_SETTINGS},
        }

    def update(self, patch: dict[str, Any]) -> dict[str, Any]:
        """Merge *patch* into the config and persist.  Returns the full config.

        Validation happens before anything is written, so an invalid value
        leaves the stored config unchanged.
        """
        staged = dict(self._data)
        try:
            for key, val in patch.items():
                if key in _INT_SETTINGS:
                    self._set_int(key, val)
                elif key == "default_recipient":
                    name = str(val).strip()
                    if not name:
                        raise ValueError("default_recipient must not be empty")
                    self._data[key] = name
                else:
                    self._data[key] = val
        except ValueError:
            self._data = staged
            raise
        self._persist()
        return self.as_dict()
