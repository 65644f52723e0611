# salon_calendar/services/policy.py
"""
Cancel/reschedule gating shared by the calendar, the appointment list and the
appointment detail views.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from salon_calendar.schemas.calendar import Appointment

DEFAULT_LOCKOUT_WINDOW = timedelta(hours=2)

BlockedReason = Literal["cancelled", "too_late", "ended"]

_BLOCKED_LABELS = {
    "cancelled": "Cancelled",
    "too_late": "Too Late",
    "ended": "Ended",
}


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def is_within_lockout_window(start: Optional[datetime], now: Optional[datetime] = None,
                             window: timedelta = DEFAULT_LOCKOUT_WINDOW) -> bool:
    if start is None:
        return False
    return start <= _now(now) + window


def has_ended(end: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if end is None:
        return False
    return _now(now) > end


def blocked_reason(appointment: Appointment, now: Optional[datetime] = None,
                   window: timedelta = DEFAULT_LOCKOUT_WINDOW) -> Optional[BlockedReason]:
    """First rule that blocks mutation, or None when cancel/reschedule is allowed."""
    now = _now(now)
    if appointment.is_cancelled:
        return "cancelled"
    if is_within_lockout_window(appointment.start_time, now, window):
        return "too_late"
    if has_ended(appointment.end_time, now):
        return "ended"
    return None


def can_cancel_or_reschedule(appointment: Appointment, now: Optional[datetime] = None,
                             window: timedelta = DEFAULT_LOCKOUT_WINDOW) -> bool:
    return blocked_reason(appointment, now, window) is None


def action_label(action: Literal["cancel", "reschedule"], appointment: Appointment,
                 now: Optional[datetime] = None, window: timedelta = DEFAULT_LOCKOUT_WINDOW) -> str:
    reason = blocked_reason(appointment, now, window)
    if reason is None:
        return action.capitalize()
    return _BLOCKED_LABELS[reason]
