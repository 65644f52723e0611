# salon_calendar/services/grid.py
"""
Day-grid geometry: minutes of the business day -> vertical pixel offsets.

Only the start decides visibility. An event that starts inside the window is
shown with its full height even if it runs past closing; one that starts
before the window is hidden even if it overlaps it. Overlapping events are
positioned independently (no lanes).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from salon_calendar.core.config import Settings, settings
from salon_calendar.schemas.calendar import Appointment, GridPosition
from salon_calendar.services.slots import format_slot_label
from salon_calendar.services.wallclock import TimezoneLike, minute_of_day

ROW_MINUTES = 30


@dataclass(frozen=True)
class GridConfig:
    grid_start_minute: int = 8 * 60
    grid_end_minute_exclusive: int = 20 * 60
    pixels_per_slot: float = 60.0  # per ROW_MINUTES row
    top_padding: float = 8.0
    bottom_padding: float = 16.0
    minimum_height_px: float = 30.0
    gap_px: float = 4.0

    def __post_init__(self):
        if not 0 <= self.grid_start_minute < self.grid_end_minute_exclusive <= 24 * 60:
            raise ValueError(
                f"invalid grid window [{self.grid_start_minute}, {self.grid_end_minute_exclusive})"
            )
        if self.pixels_per_slot <= 0:
            raise ValueError("pixels_per_slot must be positive")

    @property
    def pixels_per_minute(self) -> float:
        return self.pixels_per_slot / ROW_MINUTES

    def contains(self, minute: int) -> bool:
        return self.grid_start_minute <= minute < self.grid_end_minute_exclusive

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "GridConfig":
        return cls(
            grid_start_minute=cfg.GRID_START_MINUTE,
            grid_end_minute_exclusive=cfg.GRID_END_MINUTE,
            pixels_per_slot=cfg.PIXELS_PER_SLOT,
            top_padding=cfg.GRID_TOP_PADDING,
            bottom_padding=cfg.GRID_BOTTOM_PADDING,
            minimum_height_px=cfg.MIN_EVENT_HEIGHT_PX,
            gap_px=cfg.EVENT_GAP_PX,
        )


def _offset_px(minute: int, config: GridConfig) -> float:
    return config.top_padding + (minute - config.grid_start_minute) * config.pixels_per_minute


def layout_minutes(start_minute: int, end_minute: int, config: GridConfig) -> Optional[GridPosition]:
    """Position for a span given in minutes of the day; None when hidden."""
    if not config.contains(start_minute):
        return None
    top = max(0.0, _offset_px(start_minute, config))
    height = (end_minute - start_minute) * config.pixels_per_minute - config.gap_px
    return GridPosition(top_px=top, height_px=max(config.minimum_height_px, height))


def layout(start: datetime, end: datetime, config: GridConfig, tz: TimezoneLike) -> Optional[GridPosition]:
    return layout_minutes(minute_of_day(start, tz), minute_of_day(end, tz), config)


def layout_appointment(appointment: Appointment, config: GridConfig, tz: TimezoneLike) -> Optional[GridPosition]:
    if appointment.start_time is None or appointment.end_time is None:
        return None
    return layout(appointment.start_time, appointment.end_time, config, tz)


def current_time_indicator_px(now: datetime, config: GridConfig, tz: TimezoneLike) -> Optional[float]:
    minute = minute_of_day(now, tz)
    if not config.contains(minute):
        return None
    return _offset_px(minute, config)


def hour_rows(config: GridConfig) -> List[Tuple[str, float]]:
    """(label, top_px) for each ROW_MINUTES row of the grid."""
    rows = []
    for minute in range(config.grid_start_minute, config.grid_end_minute_exclusive, ROW_MINUTES):
        rows.append((format_slot_label(minute // 60, minute % 60), _offset_px(minute, config)))
    return rows


def grid_height_px(config: GridConfig) -> float:
    span = config.grid_end_minute_exclusive - config.grid_start_minute
    return config.top_padding + span * config.pixels_per_minute + config.bottom_padding
