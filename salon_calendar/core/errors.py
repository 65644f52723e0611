# salon_calendar/core/errors.py
"""
Exception hierarchy for the calendar engine and its upstream clients.
"""
from __future__ import annotations

from typing import Optional


class CalendarError(Exception):
    """Base class for every error raised by this package."""


class InvalidIntervalError(CalendarError, ValueError):
    """An interval or appointment was built with end <= start (upstream data bug)."""


class InvalidWallTimeError(CalendarError, ValueError):
    """Wall-clock fields outside their calendar range."""


class InvalidSelectionError(CalendarError, ValueError):
    """A reschedule selection cannot be turned into instants."""


class ActionNotAllowedError(CalendarError):
    """Cancel or reschedule blocked by the appointment status policy."""

    def __init__(self, appointment_id: str, reason: str):
        self.appointment_id = appointment_id
        self.reason = reason
        super().__init__(f"Appointment {appointment_id} cannot be changed: {reason}")


class UpstreamError(CalendarError):
    """An external API call failed or returned an unusable payload."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        self.service = service
        self.status_code = status_code
        detail = f"{service}: {message}"
        if status_code is not None:
            detail = f"{service} returned {status_code}: {message}"
        super().__init__(detail)
