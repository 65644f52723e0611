# salon_calendar/core/business.py
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Iterable, Optional, Tuple

from salon_calendar.schemas.calendar import BusinessHoursDay, Weekday

Window = Tuple[int, int]  # (open, close) in minutes since midnight

# Used when the data API has no business_hours rows
DEFAULT_BUSINESS_HOURS: Dict[Weekday, Optional[Window]] = {
    Weekday.SUNDAY: None,                 # closed
    Weekday.MONDAY: (9 * 60, 19 * 60),
    Weekday.TUESDAY: (9 * 60, 19 * 60),
    Weekday.WEDNESDAY: (9 * 60, 19 * 60),
    Weekday.THURSDAY: (9 * 60, 19 * 60),
    Weekday.FRIDAY: (9 * 60, 19 * 60),
    Weekday.SATURDAY: (9 * 60, 17 * 60),
}


def index_business_hours(days: Iterable[BusinessHoursDay]) -> Dict[Weekday, Optional[Window]]:
    rows = list(days)
    if not rows:
        return dict(DEFAULT_BUSINESS_HOURS)
    table: Dict[Weekday, Optional[Window]] = {weekday: None for weekday in Weekday}
    for row in rows:
        table[row.day_of_week] = row.window
    return table


def window_for(day: date, hours: Dict[Weekday, Optional[Window]]) -> Optional[Window]:
    return hours.get(Weekday.of(day))


def is_closed(day: date, hours: Dict[Weekday, Optional[Window]]) -> bool:
    return window_for(day, hours) is None


def is_within_hours(dt_local: datetime, hours: Dict[Weekday, Optional[Window]]) -> bool:
    wnd = window_for(dt_local.date(), hours)
    if not wnd:
        return False
    start, end = wnd
    minute = dt_local.hour * 60 + dt_local.minute
    return start <= minute <= end
