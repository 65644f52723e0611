#!/usr/bin/env python3
"""
Tests for turning cancel/reschedule selections into booking API requests.
"""

import pytest
import sys
import os
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from salon_calendar.core.errors import ActionNotAllowedError, InvalidSelectionError
from salon_calendar.services.reschedule import plan_cancel, plan_reschedule, resolve_staff

UTC = timezone.utc
DENVER = "America/Denver"
NOW = datetime(2024, 1, 15, 17, 0, tzinfo=UTC)


@pytest.fixture
def future_appointment(make_appointment):
    """One hour appointment five days out"""
    return make_appointment(datetime(2024, 1, 20, 16, 0, tzinfo=UTC), minutes=60, id="appt-9")


class TestResolveStaff:
    """'any' resolves to a concrete staff id"""

    def test_explicit_choice_wins(self):
        assert resolve_staff("staff-2", ["staff-1"], "staff-3") == "staff-2"

    def test_any_takes_first_real_option(self):
        assert resolve_staff("any", ["any", "staff-1", "staff-2"], "staff-3") == "staff-1"

    def test_any_falls_back_to_current_assignee(self):
        assert resolve_staff("any", ["any"], "staff-3") == "staff-3"
        assert resolve_staff(None, [], "staff-3") == "staff-3"

    def test_nobody_to_assign(self):
        with pytest.raises(InvalidSelectionError, match="team member"):
            resolve_staff("any", [], "")


class TestPlanReschedule:
    """Wall-time selections converted to UTC, duration preserved"""

    def test_winter_slot(self, future_appointment):
        request = plan_reschedule(future_appointment, "2024-01-22", "9:30 AM", DENVER, now=NOW)
        assert request.appointment_id == "appt-9"
        assert request.assigned_user_id == "staff-1"
        assert request.start_time == "2024-01-22T16:30:00.000Z"
        assert request.end_time == "2024-01-22T17:30:00.000Z"

    def test_summer_slot_uses_daylight_offset(self, future_appointment):
        request = plan_reschedule(future_appointment, "2024-07-15", "9:00 AM", DENVER, now=NOW)
        assert request.start_time == "2024-07-15T15:00:00.000Z"
        assert request.end_time == "2024-07-15T16:00:00.000Z"

    def test_duration_can_cross_midnight(self, make_appointment):
        appt = make_appointment(datetime(2024, 1, 20, 16, 0, tzinfo=UTC), minutes=90)
        request = plan_reschedule(appt, "2024-01-22", "11:00 PM", DENVER, now=NOW)
        assert request.start_time == "2024-01-23T06:00:00.000Z"
        assert request.end_time == "2024-01-23T07:30:00.000Z"

    def test_selected_staff(self, future_appointment):
        request = plan_reschedule(future_appointment, "2024-01-22", "9:30 AM", DENVER,
                                  selected_staff="any", staff_options=["any", "staff-7"], now=NOW)
        assert request.assigned_user_id == "staff-7"

    @pytest.mark.parametrize("date_string,slot", [
        ("2024-01-22", "half past nine"),
        ("2024-01-22", "13:30 PM"),
        ("22/01/2024", "9:30 AM"),
    ])
    def test_bad_selection(self, future_appointment, date_string, slot):
        with pytest.raises(InvalidSelectionError):
            plan_reschedule(future_appointment, date_string, slot, DENVER, now=NOW)

    def test_locked_appointment_is_refused(self, make_appointment):
        appt = make_appointment(NOW + timedelta(minutes=90))
        with pytest.raises(ActionNotAllowedError) as exc:
            plan_reschedule(appt, "2024-01-22", "9:30 AM", DENVER, now=NOW)
        assert exc.value.reason == "too_late"


class TestPlanCancel:
    def test_allowed(self, future_appointment):
        assert plan_cancel(future_appointment, NOW).appointment_id == "appt-9"

    def test_cancelled_appointment_is_refused(self, make_appointment):
        appt = make_appointment(NOW + timedelta(days=2), appointment_status="cancelled")
        with pytest.raises(ActionNotAllowedError) as exc:
            plan_cancel(appt, NOW)
        assert exc.value.reason == "cancelled"
