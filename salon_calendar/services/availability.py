# salon_calendar/services/availability.py
"""
Per-staff availability: bookable slot labels from the slot API, plus the
leave/break/closed intervals that block a staff member's day.

"No slots" is a normal state (fully booked service, unknown staff) and is
always an empty result, never an error.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence

from salon_calendar.core.business import Window, index_business_hours, is_closed, window_for
from salon_calendar.schemas.calendar import (
    BlockingInterval,
    BreakInterval,
    BusinessHoursDay,
    LeaveInterval,
    StaffWorkingHours,
    Weekday,
    WorkingSlotSet,
)
from salon_calendar.services.slots import filter_future_slots, parse_date_string
from salon_calendar.services.wallclock import TimezoneLike, local_date_of, minute_of_day

MINUTES_PER_DAY = 24 * 60


def available_dates_from(working_slots: WorkingSlotSet, now: Optional[datetime] = None) -> List[str]:
    """
    Dates strictly after today, plus today when it still has a non-past slot.
    YYYY-MM-DD sorts chronologically as a plain string.
    """
    now = now or datetime.now()
    today = now.date().isoformat()
    dates = []
    for date_string in sorted(working_slots):
        if parse_date_string(date_string) is None:
            continue
        if date_string > today:
            dates.append(date_string)
        elif date_string == today and filter_future_slots(working_slots[date_string], date_string, now):
            dates.append(date_string)
    return dates


def slots_for_date(working_slots: WorkingSlotSet, date_string: str,
                   now: Optional[datetime] = None) -> List[str]:
    labels = working_slots.get(date_string)
    if not labels:
        return []
    return filter_future_slots(labels, date_string, now)


def leaves_on(leaves: Iterable[LeaveInterval], staff_id: str, day: date,
              tz: TimezoneLike) -> List[LeaveInterval]:
    """Leaves covering `day`; the end day is exclusive."""
    return [
        leave for leave in leaves
        if leave.staff_id == staff_id
        and local_date_of(leave.start, tz) <= day < local_date_of(leave.end, tz)
    ]


def breaks_on(breaks: Iterable[BreakInterval], staff_id: str, day: date) -> List[BreakInterval]:
    weekday = Weekday.of(day)
    result = []
    for item in breaks:
        if item.staff_id != staff_id:
            continue
        if item.is_recurring:
            if weekday in item.recurring_days:
                result.append(item)
        elif item.specific_date == day:
            result.append(item)
    return result


def leave_spans_on(leaves: Iterable[LeaveInterval], staff_id: str, day: date,
                   tz: TimezoneLike) -> List[BlockingInterval]:
    """
    Minute spans of every leave touching `day`, including partial-day ones.
    A span that starts on an earlier day begins at 00:00; one that ends on a
    later day runs to 24:00.
    """
    spans = []
    for leave in leaves:
        if leave.staff_id != staff_id:
            continue
        start_day = local_date_of(leave.start, tz)
        end_day = local_date_of(leave.end, tz)
        if not start_day <= day <= end_day:
            continue
        start = minute_of_day(leave.start, tz) if start_day == day else 0
        end = minute_of_day(leave.end, tz) if end_day == day else MINUTES_PER_DAY
        if end > start:
            spans.append(BlockingInterval(start_minute=start, end_minute=end, kind="leave", label=leave.name))
    return spans


def blocking_intervals(leaves: Iterable[LeaveInterval], breaks: Iterable[BreakInterval],
                       staff_id: str, day: date, tz: TimezoneLike) -> List[BlockingInterval]:
    intervals = leave_spans_on(leaves, staff_id, day, tz)
    intervals.extend(
        BlockingInterval(start_minute=b.start_minute, end_minute=b.end_minute, kind="break", label=b.name)
        for b in breaks_on(breaks, staff_id, day)
    )
    return intervals


def non_working_periods(day: date,
                        salon_window: Optional[Window],
                        staff_window: Optional[Window],
                        on_leave: bool = False,
                        day_breaks: Sequence[BreakInterval] = (),
                        grid_start: int = 8 * 60,
                        grid_end: int = 20 * 60) -> List[BlockingInterval]:
    """
    Greyed-out periods of a staff column between `grid_start` and `grid_end`.

    Leave, a closed salon or a staff day off grey out the whole column.
    Otherwise: before opening / after closing (salon-closed), outside the
    staff's hours but inside the salon's (staff-off), and breaks that fit the
    grid. Periods are sorted by start and may overlap.
    """
    if on_leave:
        return [BlockingInterval(start_minute=grid_start, end_minute=grid_end, kind="leave")]
    if salon_window is None:
        return [BlockingInterval(start_minute=grid_start, end_minute=grid_end, kind="salon-closed")]
    if staff_window is None:
        return [BlockingInterval(start_minute=grid_start, end_minute=grid_end, kind="staff-off")]

    salon_open, salon_close = salon_window
    periods = []
    if salon_open > grid_start:
        periods.append(BlockingInterval(
            start_minute=grid_start, end_minute=min(salon_open, grid_end), kind="salon-closed"))
    if salon_close < grid_end:
        periods.append(BlockingInterval(
            start_minute=max(salon_close, grid_start), end_minute=grid_end, kind="salon-closed"))

    work_start = max(staff_window[0], salon_open)
    work_end = min(staff_window[1], salon_close)
    if work_start > salon_open:
        periods.append(BlockingInterval(start_minute=salon_open, end_minute=work_start, kind="staff-off"))
    if work_end < salon_close:
        periods.append(BlockingInterval(start_minute=work_end, end_minute=salon_close, kind="staff-off"))

    for item in day_breaks:
        if item.start_minute >= grid_start and item.end_minute <= grid_end:
            periods.append(BlockingInterval(
                start_minute=item.start_minute, end_minute=item.end_minute, kind="break", label=item.name))

    periods.sort(key=lambda p: p.start_minute)
    return [p for p in periods if p.start_minute < p.end_minute]


class AvailabilityIndex:
    """
    Holds the raw availability inputs for one calendar (service) and answers
    per staff/date questions. Working slot sets are keyed by staff id; the
    `None` key is the "any staff" query.
    """

    def __init__(self,
                 tz: TimezoneLike,
                 slots_by_staff: Optional[Dict[Optional[str], WorkingSlotSet]] = None,
                 leaves: Iterable[LeaveInterval] = (),
                 breaks: Iterable[BreakInterval] = (),
                 business_hours: Iterable[BusinessHoursDay] = (),
                 staff_hours: Iterable[StaffWorkingHours] = ()):
        self.tz = tz
        self.slots_by_staff: Dict[Optional[str], WorkingSlotSet] = dict(slots_by_staff or {})
        self.leaves = list(leaves)
        self.breaks = list(breaks)
        self.business_hours = index_business_hours(business_hours)
        self.staff_hours = {s.staff_id: s for s in staff_hours}

    def set_working_slots(self, working_slots: WorkingSlotSet, staff_id: Optional[str] = None) -> None:
        self.slots_by_staff[staff_id] = dict(working_slots)

    def working_slots(self, staff_id: Optional[str] = None) -> WorkingSlotSet:
        return self.slots_by_staff.get(staff_id) or {}

    def _closed(self, date_string: str) -> bool:
        day = parse_date_string(date_string)
        return day is not None and is_closed(day, self.business_hours)

    def available_dates(self, staff_id: Optional[str] = None, now: Optional[datetime] = None) -> List[str]:
        dates = available_dates_from(self.working_slots(staff_id), now)
        return [d for d in dates if not self._closed(d)]

    def slots_for(self, date_string: str, staff_id: Optional[str] = None,
                  now: Optional[datetime] = None) -> List[str]:
        if self._closed(date_string):
            return []
        return slots_for_date(self.working_slots(staff_id), date_string, now)

    def leaves_for(self, staff_id: str, day: date) -> List[LeaveInterval]:
        return leaves_on(self.leaves, staff_id, day, self.tz)

    def breaks_for(self, staff_id: str, day: date) -> List[BreakInterval]:
        return breaks_on(self.breaks, staff_id, day)

    def is_on_leave(self, staff_id: str, day: date) -> bool:
        return bool(self.leaves_for(staff_id, day))

    def blocking_intervals(self, staff_id: str, day: date) -> List[BlockingInterval]:
        return blocking_intervals(self.leaves, self.breaks, staff_id, day, self.tz)

    def non_working_periods(self, staff_id: str, day: date,
                            grid_start: int = 8 * 60, grid_end: int = 20 * 60) -> List[BlockingInterval]:
        hours = self.staff_hours.get(staff_id)
        return non_working_periods(
            day,
            salon_window=window_for(day, self.business_hours),
            staff_window=hours.window_for(day) if hours else None,
            on_leave=self.is_on_leave(staff_id, day),
            day_breaks=self.breaks_for(staff_id, day),
            grid_start=grid_start,
            grid_end=grid_end,
        )
