# salon_calendar/services/booking_api.py
"""
Thin httpx clients for the two upstreams that feed the calendar engine:

- the booking backend (slot query, cancel, reschedule)
- the salon data API (bookings listing, leaves, time blocks, business hours,
  staff hours), whose responses are wrapped as {"ok": true, "data": [...]}

No retries: a failure raises UpstreamError and the caller keeps its
previous data.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from salon_calendar.core.config import Settings, settings
from salon_calendar.core.errors import UpstreamError
from salon_calendar.core.logging import get_logger
from salon_calendar.schemas.calendar import (
    Appointment,
    BreakInterval,
    BusinessHoursDay,
    LeaveInterval,
    StaffWorkingHours,
    WorkingSlotSet,
)
from salon_calendar.services.reschedule import RescheduleRequest
from salon_calendar.services.wallclock import to_utc_iso

logger = get_logger(__name__)

T = TypeVar("T")


class _JsonClient:
    service = "upstream"

    def __init__(self, base_url: str, timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str, *,
                       params: Optional[Dict[str, Any]] = None,
                       json: Optional[Dict[str, Any]] = None) -> Any:
        headers = {"Accept": "application/json"}
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                         transport=self._transport) as client:
                resp = await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error("upstream_unreachable", service=self.service, path=path, error=str(e))
            raise UpstreamError(self.service, str(e)) from e

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if resp.status_code >= 400:
            message = (body.get("error") if isinstance(body, dict) else None) or resp.text[:200]
            logger.error("upstream_error", service=self.service, path=path,
                         status_code=resp.status_code, error=message)
            raise UpstreamError(self.service, message, status_code=resp.status_code)
        return body


class BookingApiClient(_JsonClient):
    service = "booking_api"

    async def fetch_staff_slots(self, calendar_id: str, user_id: Optional[str] = None) -> WorkingSlotSet:
        """Working slot labels per date for a service, optionally for one staff member."""
        params = {"calendarId": calendar_id}
        if user_id:
            params["userId"] = user_id
        body = await self._request("GET", "/staffSlots", params=params)
        slots = body.get("slots") if isinstance(body, dict) else None
        if not isinstance(slots, dict):
            return {}
        return {str(day): [str(label) for label in labels or []] for day, labels in slots.items()}

    async def cancel_booking(self, appointment_id: str) -> Dict[str, Any]:
        body = await self._request("POST", "/cancelbooking", json={"bookingId": appointment_id})
        logger.info("booking_cancelled", appointment_id=appointment_id)
        return body if isinstance(body, dict) else {}

    async def update_appointment(self, request: RescheduleRequest) -> Dict[str, Any]:
        params = {
            "appointmentId": request.appointment_id,
            "assignedUserId": request.assigned_user_id,
            "startTime": request.start_time,
            "endTime": request.end_time,
        }
        body = await self._request("GET", "/updateappointment", params=params)
        message = body.get("message", "") if isinstance(body, dict) else ""
        if "successfully" not in message:
            error = (body.get("error") if isinstance(body, dict) else None) or "Reschedule failed"
            raise UpstreamError(self.service, error)
        logger.info("booking_rescheduled", appointment_id=request.appointment_id,
                    start_time=request.start_time, assigned_user_id=request.assigned_user_id)
        return body


class DataApiClient(_JsonClient):
    service = "data_api"

    async def _rows(self, path: str) -> List[Dict[str, Any]]:
        body = await self._request("GET", path)
        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error") if isinstance(body, dict) else "malformed response"
            raise UpstreamError(self.service, f"{path}: {error}")
        return list(body.get("data") or [])

    async def fetch_bookings(self, start: datetime, end: datetime, page_size: int = 5000) -> List[Appointment]:
        """Bookings in [start, end]; entries without a start time are dropped."""
        params = {
            "startDate": to_utc_iso(start),
            "endDate": to_utc_iso(end),
            "pageSize": page_size,
            "page": 1,
        }
        body = await self._request("GET", "/bookings", params=params)
        if not isinstance(body, dict):
            raise UpstreamError(self.service, "/bookings: malformed response")
        raw = body.get("bookings") or []
        appointments = []
        for booking in raw:
            if not isinstance(booking, dict):
                logger.warning("booking_malformed", entry_type=type(booking).__name__)
                continue
            try:
                appointments.append(Appointment.from_booking(booking))
            except ValueError as e:
                # end <= start or an unparseable timestamp: skip the row, keep the list
                logger.warning("booking_invalid", booking_id=booking.get("id"), error=str(e))
        visible = [a for a in appointments if a.is_renderable]
        if len(visible) != len(appointments):
            logger.warning("bookings_missing_start", dropped=len(appointments) - len(visible))
        logger.debug("bookings_fetched", count=len(visible), total=body.get("total", len(raw)))
        return visible

    async def _mapped(self, path: str, factory: Callable[[Dict[str, Any]], T]) -> List[T]:
        items = []
        for row in await self._rows(path):
            try:
                items.append(factory(row))
            except (KeyError, ValueError) as e:
                logger.warning("row_invalid", service=self.service, path=path, error=str(e))
        return items

    async def fetch_leaves(self) -> List[LeaveInterval]:
        return await self._mapped("/leaves", LeaveInterval.from_row)

    async def fetch_time_blocks(self) -> List[BreakInterval]:
        return await self._mapped("/time-blocks", BreakInterval.from_row)

    async def fetch_business_hours(self) -> List[BusinessHoursDay]:
        return await self._mapped("/business-hours", BusinessHoursDay.from_row)

    async def fetch_staff(self) -> List[StaffWorkingHours]:
        return await self._mapped("/barber-hours", StaffWorkingHours.from_row)


def build_clients(cfg: Settings = settings) -> tuple[BookingApiClient, DataApiClient]:
    return (
        BookingApiClient(cfg.BOOKING_API_BASE_URL, timeout=cfg.HTTP_TIMEOUT_SECONDS),
        DataApiClient(cfg.DATA_API_BASE_URL, timeout=cfg.HTTP_TIMEOUT_SECONDS),
    )
