# salon_calendar/api/routes/calendar.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from salon_calendar.core.config import settings
from salon_calendar.core.errors import ActionNotAllowedError, InvalidSelectionError, UpstreamError
from salon_calendar.core.logging import bind_calendar_context, get_logger
from salon_calendar.schemas.calendar import Appointment
from salon_calendar.services.booking_api import build_clients
from salon_calendar.services.cache import build_cache
from salon_calendar.services.calendar_view import CalendarService, DayView
from salon_calendar.services.policy import action_label, blocked_reason
from salon_calendar.services.reschedule import CancelRequest, RescheduleRequest

logger = get_logger(__name__)

router = APIRouter(tags=["calendar"])

_calendar_service: Optional[CalendarService] = None


def get_calendar_service() -> CalendarService:
    """Process-wide service; tests override this dependency."""
    global _calendar_service
    if _calendar_service is None:
        booking_api, data_api = build_clients(settings)
        _calendar_service = CalendarService(booking_api, data_api, build_cache(settings), settings)
    return _calendar_service


# ---------- Request/response contracts ----------

class DatesResponse(BaseModel):
    calendar_id: str
    staff_id: Optional[str] = None
    dates: List[str]


class SlotsResponse(BaseModel):
    calendar_id: str
    staff_id: Optional[str] = None
    date: str
    slots: List[str]


class ActionsResponse(BaseModel):
    appointment_id: str
    can_modify: bool
    blocked_reason: Optional[str] = None
    cancel_label: str
    reschedule_label: str


class RescheduleBody(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD in the business timezone")
    slot: str = Field(..., description="Slot label such as '9:30 AM'")
    staff_id: Optional[str] = Field(None, description="Staff id or 'any'")
    staff_options: List[str] = Field(default_factory=list)


# ---------- Helpers ----------

def _parse_day(value: Optional[str], service: CalendarService) -> date:
    if not value:
        return service.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format, use YYYY-MM-DD")


def _upstream_failed(e: UpstreamError) -> HTTPException:
    return HTTPException(status_code=502, detail=str(e))


async def _load_appointment(appointment_id: str, anchor: Optional[str],
                            service: CalendarService) -> Appointment:
    bind_calendar_context(appointment_id=appointment_id)
    try:
        appt = await service.find_appointment(appointment_id, _parse_day(anchor, service))
    except UpstreamError as e:
        raise _upstream_failed(e)
    if appt is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appt


# ---------- Routes ----------

@router.get("/calendar/day", response_model=DayView)
async def day_view(date_str: Optional[str] = Query(None, alias="date", description="YYYY-MM-DD"),
                   service: CalendarService = Depends(get_calendar_service)):
    day = _parse_day(date_str, service)
    try:
        return await service.day_view(day)
    except UpstreamError as e:
        raise _upstream_failed(e)


@router.get("/availability/{calendar_id}/dates", response_model=DatesResponse)
async def available_dates(calendar_id: str,
                          staff_id: Optional[str] = Query(None),
                          service: CalendarService = Depends(get_calendar_service)):
    bind_calendar_context(calendar_id=calendar_id)
    try:
        dates = await service.available_dates(calendar_id, staff_id)
    except UpstreamError as e:
        raise _upstream_failed(e)
    return DatesResponse(calendar_id=calendar_id, staff_id=staff_id, dates=dates)


@router.get("/availability/{calendar_id}/slots", response_model=SlotsResponse)
async def available_slots(calendar_id: str,
                          date_str: str = Query(..., alias="date", description="YYYY-MM-DD"),
                          staff_id: Optional[str] = Query(None),
                          service: CalendarService = Depends(get_calendar_service)):
    bind_calendar_context(calendar_id=calendar_id)
    _parse_day(date_str, service)
    try:
        slots = await service.slots_for(calendar_id, date_str, staff_id)
    except UpstreamError as e:
        raise _upstream_failed(e)
    return SlotsResponse(calendar_id=calendar_id, staff_id=staff_id, date=date_str, slots=slots)


@router.get("/appointments/{appointment_id}/actions", response_model=ActionsResponse)
async def appointment_actions(appointment_id: str,
                              anchor: Optional[str] = Query(None, description="Any date in the appointment's month or year"),
                              service: CalendarService = Depends(get_calendar_service)):
    appt = await _load_appointment(appointment_id, anchor, service)
    now = datetime.now(timezone.utc)
    reason = blocked_reason(appt, now, service.window)
    return ActionsResponse(
        appointment_id=appt.id,
        can_modify=reason is None,
        blocked_reason=reason,
        cancel_label=action_label("cancel", appt, now, service.window),
        reschedule_label=action_label("reschedule", appt, now, service.window),
    )


@router.post("/appointments/{appointment_id}/cancel", response_model=CancelRequest)
async def cancel_appointment(appointment_id: str,
                             anchor: Optional[str] = Query(None),
                             service: CalendarService = Depends(get_calendar_service)):
    appt = await _load_appointment(appointment_id, anchor, service)
    try:
        return await service.cancel(appt)
    except ActionNotAllowedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except UpstreamError as e:
        raise _upstream_failed(e)


@router.post("/appointments/{appointment_id}/reschedule", response_model=RescheduleRequest)
async def reschedule_appointment(appointment_id: str,
                                 body: RescheduleBody,
                                 anchor: Optional[str] = Query(None),
                                 service: CalendarService = Depends(get_calendar_service)):
    appt = await _load_appointment(appointment_id, anchor, service)
    try:
        return await service.reschedule(appt, body.date, body.slot,
                                        staff_id=body.staff_id, staff_options=body.staff_options)
    except ActionNotAllowedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidSelectionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except UpstreamError as e:
        raise _upstream_failed(e)
