#!/usr/bin/env python3
"""
Tests for day-grid geometry.
"""

import pytest
import sys
import os
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from salon_calendar.services.grid import (
    GridConfig,
    current_time_indicator_px,
    grid_height_px,
    hour_rows,
    layout,
    layout_appointment,
    layout_minutes,
)

UTC = timezone.utc
DENVER = "America/Denver"


def denver(hour, minute=0, day=15):
    """Instant for a January wall time in Denver (UTC-7)"""
    return datetime(2024, 1, day, hour, minute, tzinfo=UTC) + timedelta(hours=7)


@pytest.fixture
def config():
    return GridConfig()


class TestLayout:
    """Pixel positions of events on the default 08:00-20:00 grid"""

    def test_one_hour_event(self, config):
        position = layout(denver(9), denver(10), config, DENVER)
        assert position.top_px == 8 + 60 * 2
        assert position.height_px == 60 * 2 - 4

    def test_event_starting_before_open_is_hidden(self, config):
        """07:30-08:45 overlaps the grid but starts outside it"""
        assert layout(denver(7, 30), denver(8, 45), config, DENVER) is None

    def test_event_starting_at_close_is_hidden(self, config):
        assert layout(denver(20), denver(21), config, DENVER) is None

    def test_event_starting_at_open_sits_at_padding(self, config):
        assert layout(denver(8), denver(8, 30), config, DENVER).top_px == 8

    def test_event_running_past_close_keeps_full_height(self, config):
        position = layout(denver(19, 30), denver(21), config, DENVER)
        assert position.top_px == 8 + 690 * 2
        assert position.height_px == 90 * 2 - 4

    def test_short_event_gets_minimum_height(self, config):
        assert layout(denver(10), denver(10, 10), config, DENVER).height_px == 30

    def test_top_is_monotonic_in_start(self, config):
        tops = [layout_minutes(m, m + 30, config).top_px for m in range(480, 1200, 15)]
        assert tops == sorted(tops)
        assert len(set(tops)) == len(tops)

    def test_summer_offsets(self, config):
        """09:00 MDT is 15:00Z"""
        start = datetime(2024, 7, 15, 15, 0, tzinfo=UTC)
        assert layout(start, start + timedelta(hours=1), config, DENVER).top_px == 128

    def test_appointment_without_times_is_hidden(self, config, make_appointment):
        assert layout_appointment(make_appointment(None), config, DENVER) is None

    def test_layout_appointment(self, config, make_appointment):
        position = layout_appointment(make_appointment(denver(9), minutes=45), config, DENVER)
        assert position.top_px == 128
        assert position.height_px == 86


class TestGridFrame:
    """Rows, total height and the current-time indicator"""

    def test_current_time_indicator(self, config):
        assert current_time_indicator_px(denver(12), config, DENVER) == 8 + 240 * 2

    def test_indicator_hidden_outside_grid(self, config):
        assert current_time_indicator_px(denver(7, 59), config, DENVER) is None
        assert current_time_indicator_px(denver(20), config, DENVER) is None

    def test_hour_rows(self, config):
        rows = hour_rows(config)
        assert len(rows) == 24
        assert rows[0] == ("8:00 AM", 8)
        assert rows[1] == ("8:30 AM", 68)
        assert rows[-1] == ("7:30 PM", 8 + 690 * 2)

    def test_grid_height(self, config):
        assert grid_height_px(config) == 8 + 720 * 2 + 16

    def test_custom_window(self):
        config = GridConfig(grid_start_minute=540, grid_end_minute_exclusive=1020, pixels_per_slot=30)
        assert config.pixels_per_minute == 1
        assert layout_minutes(540, 600, config).top_px == 8
        assert layout_minutes(500, 600, config) is None

    @pytest.mark.parametrize("start,end", [(600, 600), (700, 600), (-10, 600), (600, 1500)])
    def test_invalid_window_rejected(self, start, end):
        with pytest.raises(ValueError):
            GridConfig(grid_start_minute=start, grid_end_minute_exclusive=end)

    def test_from_settings(self, test_settings):
        config = GridConfig.from_settings(test_settings)
        assert config == GridConfig()
