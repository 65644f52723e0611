# salon_calendar/services/reschedule.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from salon_calendar.core.errors import ActionNotAllowedError, InvalidSelectionError
from salon_calendar.schemas.calendar import Appointment
from salon_calendar.services.policy import DEFAULT_LOCKOUT_WINDOW, blocked_reason
from salon_calendar.services.slots import parse_date_string, parse_slot_label
from salon_calendar.services.wallclock import TimezoneLike, to_utc_iso, wall_time_to_utc

ANY_STAFF = "any"


# ---------- Requests handed to the booking API ----------

class CancelRequest(BaseModel):
    appointment_id: str = Field(..., description="Booking to cancel")


class RescheduleRequest(BaseModel):
    appointment_id: str
    assigned_user_id: str
    start_time: str = Field(..., description="UTC ISO-8601")
    end_time: str = Field(..., description="UTC ISO-8601")


# ---------- Helpers ----------

def _ensure_allowed(appointment: Appointment, now: Optional[datetime], window: timedelta) -> None:
    reason = blocked_reason(appointment, now, window)
    if reason is not None:
        raise ActionNotAllowedError(appointment.id, reason)


def resolve_staff(selected: Optional[str], staff_options: Sequence[str], current: str = "") -> str:
    """
    An explicit staff id wins. "any" (or nothing) falls back to the first real
    staff option, then to the current assignee.
    """
    if selected and selected != ANY_STAFF:
        return selected
    real = [s for s in staff_options if s and s != ANY_STAFF]
    if real:
        return real[0]
    if current:
        return current
    raise InvalidSelectionError("A team member needs to be selected")


# ---------- Planning ----------

def plan_cancel(appointment: Appointment, now: Optional[datetime] = None,
                window: timedelta = DEFAULT_LOCKOUT_WINDOW) -> CancelRequest:
    _ensure_allowed(appointment, now, window)
    return CancelRequest(appointment_id=appointment.id)


def plan_reschedule(appointment: Appointment,
                    date_string: str,
                    slot_label: str,
                    tz: TimezoneLike,
                    selected_staff: Optional[str] = None,
                    staff_options: Sequence[str] = (),
                    now: Optional[datetime] = None,
                    window: timedelta = DEFAULT_LOCKOUT_WINDOW) -> RescheduleRequest:
    """
    Move `appointment` to `slot_label` on `date_string` (business wall time),
    keeping its original duration.
    """
    _ensure_allowed(appointment, now, window)

    duration = appointment.duration
    if duration is None:
        raise InvalidSelectionError(f"appointment {appointment.id} has no start/end time")

    slot = parse_slot_label(slot_label)
    day = parse_date_string(date_string)
    if slot is None:
        raise InvalidSelectionError(f"unrecognised slot label: {slot_label!r}")
    if day is None:
        raise InvalidSelectionError(f"unrecognised date: {date_string!r}")

    wall_start = datetime(day.year, day.month, day.day, slot.hour24, slot.minute)
    wall_end = wall_start + duration

    start_utc = wall_time_to_utc(tz, wall_start.year, wall_start.month, wall_start.day,
                                 wall_start.hour, wall_start.minute)
    end_utc = wall_time_to_utc(tz, wall_end.year, wall_end.month, wall_end.day,
                               wall_end.hour, wall_end.minute)

    return RescheduleRequest(
        appointment_id=appointment.id,
        assigned_user_id=resolve_staff(selected_staff, staff_options, appointment.assigned_user_id),
        start_time=to_utc_iso(start_utc),
        end_time=to_utc_iso(end_utc),
    )
