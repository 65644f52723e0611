#!/usr/bin/env python3
"""
Pytest configuration and shared fixtures for the salon calendar tests.
Upstream APIs are always faked; nothing here touches the network or Redis.
"""

import pytest
import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import patch, AsyncMock, MagicMock
from zoneinfo import ZoneInfo

# Add the project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from salon_calendar.core.config import Settings
from salon_calendar.schemas.calendar import Appointment, StaffWorkingHours

UTC = timezone.utc
DENVER = ZoneInfo("America/Denver")
BUSINESS_TZ = "America/Denver"


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment variables"""
    test_env = {
        'APP_ENV': 'testing',
        'BUSINESS_TIMEZONE': BUSINESS_TZ,
        'REDIS_URL': '',  # Disable Redis in tests
        'BOOKING_API_BASE_URL': 'https://booking.test/fn',
        'DATA_API_BASE_URL': 'https://data.test/api',
    }

    with patch.dict(os.environ, test_env):
        yield


@pytest.fixture
def test_settings():
    """Settings with defaults, ignoring any local .env file"""
    return Settings(_env_file=None, REDIS_URL=None)


@pytest.fixture
def make_appointment():
    """Factory for appointments starting at a UTC instant"""
    def _make(start, minutes=60, **kwargs):
        fields = {
            'id': 'appt-1',
            'calendar_id': 'cal-1',
            'title': 'Skin Fade',
            'service_name': 'Skin Fade',
            'appointment_status': 'confirmed',
            'assigned_user_id': 'staff-1',
            'start_time': start,
            'end_time': start + timedelta(minutes=minutes) if start else None,
        }
        fields.update(kwargs)
        return Appointment(**fields)
    return _make


@pytest.fixture
def monday_staff():
    """One staff member working 10:00-18:00 on Mondays only"""
    return StaffWorkingHours(staff_id='staff-1', name='Alex', hours={1: (600, 1080)})


@pytest.fixture
def mock_booking_api():
    """Booking backend client with async methods"""
    api = MagicMock()
    api.fetch_staff_slots = AsyncMock(return_value={})
    api.cancel_booking = AsyncMock(return_value={'success': True})
    api.update_appointment = AsyncMock(return_value={'message': 'Appointment updated successfully'})
    return api


@pytest.fixture
def mock_data_api(monday_staff):
    """Data API client returning empty datasets by default"""
    api = MagicMock()
    api.fetch_bookings = AsyncMock(return_value=[])
    api.fetch_leaves = AsyncMock(return_value=[])
    api.fetch_time_blocks = AsyncMock(return_value=[])
    api.fetch_business_hours = AsyncMock(return_value=[])
    api.fetch_staff = AsyncMock(return_value=[monday_staff])
    return api


@pytest.fixture
def monday_noon_utc():
    """2024-01-15 12:00 in Denver (a Monday)"""
    return datetime(2024, 1, 15, 19, 0, tzinfo=UTC)
