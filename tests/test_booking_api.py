#!/usr/bin/env python3
"""
Tests for the booking backend and data API clients, using httpx mock transports.
"""

import pytest
import json
import sys
import os
from datetime import date, datetime, timedelta, timezone

import httpx

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from salon_calendar.core.errors import UpstreamError
from salon_calendar.schemas.calendar import Weekday
from salon_calendar.services.booking_api import BookingApiClient, DataApiClient
from salon_calendar.services.reschedule import RescheduleRequest

UTC = timezone.utc


def booking_client(handler):
    return BookingApiClient("https://booking.test/fn", transport=httpx.MockTransport(handler))


def data_client(handler):
    return DataApiClient("https://data.test/api", transport=httpx.MockTransport(handler))


class TestBookingApiClient:
    """Slot query, cancel and reschedule calls"""

    @pytest.mark.asyncio
    async def test_fetch_staff_slots(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"slots": {"2024-01-16": ["9:00 AM", "9:30 AM"]}})

        slots = await booking_client(handler).fetch_staff_slots("cal-1", "staff-1")
        assert slots == {"2024-01-16": ["9:00 AM", "9:30 AM"]}
        assert seen["path"].endswith("/staffSlots")
        assert seen["params"] == {"calendarId": "cal-1", "userId": "staff-1"}

    @pytest.mark.asyncio
    async def test_fetch_staff_slots_without_staff(self):
        def handler(request):
            assert "userId" not in request.url.params
            return httpx.Response(200, json={"slots": None})

        assert await booking_client(handler).fetch_staff_slots("cal-1") == {}

    @pytest.mark.asyncio
    async def test_cancel_booking_posts_id(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.path.endswith("/cancelbooking")
            assert json.loads(request.content) == {"bookingId": "appt-1"}
            return httpx.Response(200, json={"success": True})

        assert await booking_client(handler).cancel_booking("appt-1") == {"success": True}

    @pytest.mark.asyncio
    async def test_update_appointment_success(self):
        def handler(request):
            assert request.url.params["appointmentId"] == "appt-1"
            assert request.url.params["startTime"] == "2024-01-22T16:30:00.000Z"
            return httpx.Response(200, json={"message": "Appointment updated successfully"})

        request = RescheduleRequest(appointment_id="appt-1", assigned_user_id="staff-1",
                                    start_time="2024-01-22T16:30:00.000Z", end_time="2024-01-22T17:30:00.000Z")
        body = await booking_client(handler).update_appointment(request)
        assert "successfully" in body["message"]

    @pytest.mark.asyncio
    async def test_update_appointment_without_success_message(self):
        def handler(request):
            return httpx.Response(200, json={"message": "Slot no longer available"})

        request = RescheduleRequest(appointment_id="appt-1", assigned_user_id="staff-1",
                                    start_time="2024-01-22T16:30:00.000Z", end_time="2024-01-22T17:30:00.000Z")
        with pytest.raises(UpstreamError):
            await booking_client(handler).update_appointment(request)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request):
            return httpx.Response(500, json={"error": "database unavailable"})

        with pytest.raises(UpstreamError) as exc:
            await booking_client(handler).cancel_booking("appt-1")
        assert exc.value.status_code == 500
        assert "database unavailable" in str(exc.value)

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamError) as exc:
            await booking_client(handler).fetch_staff_slots("cal-1")
        assert exc.value.service == "booking_api"
        assert exc.value.status_code is None


class TestDataApiClient:
    """Bookings listing and the tabular datasets"""

    @pytest.mark.asyncio
    async def test_fetch_bookings_maps_and_drops(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"bookings": [
                {"id": "a1", "startTime": "2024-01-15T16:00:00Z", "endTime": "2024-01-15T17:00:00Z",
                 "serviceName": "Skin Fade", "assigned_user_id": "staff-1", "payment_status": "paid"},
                {"id": "a2", "startTime": "2024-01-15T18:00:00Z", "durationMinutes": 45},
                {"id": "a3", "serviceName": "No start"},
                {"id": "a4", "startTime": "2024-01-15T18:00:00Z", "endTime": "2024-01-15T17:00:00Z"},
            ], "total": 4})

        start = datetime(2024, 1, 15, 7, 0, tzinfo=UTC)
        appointments = await data_client(handler).fetch_bookings(start, start + timedelta(days=1), page_size=50)

        assert [a.id for a in appointments] == ["a1", "a2"]
        assert appointments[0].payment_status == "paid"
        assert appointments[0].service_name == "Skin Fade"
        assert appointments[1].end_time == datetime(2024, 1, 15, 18, 45, tzinfo=UTC)
        assert appointments[1].service_name == "Untitled Service"
        assert seen["params"] == {
            "startDate": "2024-01-15T07:00:00.000Z",
            "endDate": "2024-01-16T07:00:00.000Z",
            "pageSize": "50",
            "page": "1",
        }

    @pytest.mark.asyncio
    async def test_fetch_bookings_skips_non_object_entries(self):
        def handler(request):
            return httpx.Response(200, json={"bookings": [
                "garbage",
                None,
                42,
                {"id": "a1", "startTime": "2024-01-15T16:00:00Z", "endTime": "2024-01-15T17:00:00Z"},
            ]})

        start = datetime(2024, 1, 15, 7, 0, tzinfo=UTC)
        appointments = await data_client(handler).fetch_bookings(start, start + timedelta(days=1))

        assert [a.id for a in appointments] == ["a1"]

    @pytest.mark.asyncio
    async def test_rows_require_ok(self):
        def handler(request):
            return httpx.Response(200, json={"ok": False, "error": "sheet locked"})

        with pytest.raises(UpstreamError, match="sheet locked"):
            await data_client(handler).fetch_leaves()

    @pytest.mark.asyncio
    async def test_fetch_datasets(self):
        rows = {
            "/leaves": [{"🔒 Row ID": "r1", "ghl_id": "staff-1", "Event/Name": "Vacation",
                         "Event/Start": "2024-01-15T07:00:00Z", "Event/End": "2024-01-17T07:00:00Z"},
                        {"ghl_id": "staff-1", "Event/Start": "2024-01-15T07:00:00Z",
                         "Event/End": "2024-01-14T07:00:00Z"}],
            "/time-blocks": [{"ghl_id": "staff-1", "Block/Name": "Lunch", "Block/Recurring": "true",
                              "Block/Recurring Day": "1,3", "Block/Start": "720", "Block/End": "780"}],
            "/business-hours": [{"day_of_week": 0, "is_open": False},
                                {"day_of_week": 1, "is_open": True, "open_time": 540, "close_time": 1140}],
            "/barber-hours": [{"ghl_id": "staff-1", "Barber/Name": "Alex",
                               "Monday/Start Value": "600", "Monday/End Value": "1080",
                               "Sunday/Start Value": "0", "Sunday/End Value": "0"}],
        }

        def handler(request):
            for suffix, data in rows.items():
                if request.url.path.endswith(suffix):
                    return httpx.Response(200, json={"ok": True, "data": data})
            return httpx.Response(404, json={"error": "not found"})

        client = data_client(handler)
        leaves = await client.fetch_leaves()
        breaks = await client.fetch_time_blocks()
        hours = await client.fetch_business_hours()
        staff = await client.fetch_staff()

        assert [leave.id for leave in leaves] == ["r1"]  # reversed row skipped
        assert breaks[0].recurring_days == frozenset({Weekday.MONDAY, Weekday.WEDNESDAY})
        assert [h.window for h in hours] == [None, (540, 1140)]
        assert staff[0].name == "Alex"
        assert staff[0].window_for(date(2024, 1, 15)) == (600, 1080)
        assert staff[0].window_for(date(2024, 1, 14)) is None
