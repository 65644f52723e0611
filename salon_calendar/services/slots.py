# salon_calendar/services/slots.py
"""
Slot label parsing and past-slot filtering.

Slot labels come from the slot API as "H:MM AM" strings. The past check
combines the label with the calendar date in the same clock as `now`: a naive
`now` (the default) means the runtime's local clock, not the business
timezone. Pass an aware `now` to compare in a specific zone.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Iterable, List, NamedTuple, Optional

_SLOT_LABEL_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*(AM|PM)\s*$", re.IGNORECASE)


class SlotTime(NamedTuple):
    hour24: int
    minute: int


def parse_slot_label(label: str) -> Optional[SlotTime]:
    """'9:30 PM' -> SlotTime(21, 30); None when the label is unparseable."""
    m = _SLOT_LABEL_RE.match(label or "")
    if not m:
        return None
    hour, minute, period = int(m.group(1)), int(m.group(2)), m.group(3).upper()
    if not 1 <= hour <= 12 or minute > 59:
        return None
    if period == "PM" and hour != 12:
        hour += 12
    elif period == "AM" and hour == 12:
        hour = 0
    return SlotTime(hour, minute)


def format_slot_label(hour24: int, minute: int) -> str:
    period = "PM" if hour24 >= 12 else "AM"
    hour12 = hour24 % 12 or 12
    return f"{hour12}:{minute:02d} {period}"


def parse_date_string(date_string: str) -> Optional[date]:
    try:
        return date.fromisoformat(date_string)
    except (TypeError, ValueError):
        return None


def slot_datetime(label: str, date_string: str, tzinfo=None) -> Optional[datetime]:
    parsed = parse_slot_label(label)
    day = parse_date_string(date_string)
    if parsed is None or day is None:
        return None
    return datetime(day.year, day.month, day.day, parsed.hour24, parsed.minute, tzinfo=tzinfo)


def is_slot_in_past(label: str, date_string: str, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now()
    slot_at = slot_datetime(label, date_string, tzinfo=now.tzinfo)
    if slot_at is None:
        # Unparseable input stays visible
        return False
    return slot_at < now


def filter_future_slots(labels: Iterable[str], date_string: str,
                        now: Optional[datetime] = None) -> List[str]:
    now = now or datetime.now()
    return [label for label in labels if not is_slot_in_past(label, date_string, now)]
