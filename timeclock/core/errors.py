"""
Domain exceptions raised by the time-accounting services.

Kept free of web imports so the pure engine modules can use them; the HTTP
mapping lives in `timeclock.core.exceptions`.
"""

from __future__ import annotations


class TimeclockError(Exception):
    """Base class for all domain errors."""


class ClockDecodeError(TimeclockError, ValueError):
    """A timestamp could not be decoded into an instant."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Cannot decode timestamp: {value!r}")
        self.value = value


class MalformedSequenceError(TimeclockError, ValueError):
    """The pairing input is not a single-employee punch sequence."""


class OvertimeConfigError(TimeclockError, ValueError):
    """Expected daily minutes or the overtime threshold is missing or invalid."""


class StateConflictError(TimeclockError):
    """The requested punch is not allowed in the employee's current state."""

    def __init__(self, code: str, message: str, state: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.state = state


class NotFoundError(TimeclockError, LookupError):
    """A referenced employee, punch or request does not exist."""


class PunchValidationError(TimeclockError, ValueError):
    """A punch request is well formed but fails a business rule."""
