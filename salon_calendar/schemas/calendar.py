# salon_calendar/schemas/calendar.py
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from salon_calendar.core.errors import InvalidIntervalError

UTC = timezone.utc

# Calendar date string (YYYY-MM-DD) -> ordered "H:MM AM" labels from the slot API
WorkingSlotSet = Dict[str, List[str]]

PaymentStatus = Literal["pending", "paid", "failed"]
BlockKind = Literal["leave", "break", "salon-closed", "staff-off"]

_LEGACY_BLOCK_DATE_FORMAT = "%m/%d/%Y, %I:%M:%S %p"


class Weekday(IntEnum):
    """Day-of-week numbering used by the data API (0=Sunday .. 6=Saturday)."""
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, day: date) -> "Weekday":
        # date.weekday() is 0=Monday
        return cls((day.weekday() + 1) % 7)


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Accept ISO8601 strings (with or without 'Z') or datetimes.
    Naive values are treated as UTC. Empty values give None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _minutes(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class Appointment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    calendar_id: str = ""
    contact_id: str = ""
    title: str = ""
    service_name: str = ""
    status: str = ""
    # Opaque: the booking backend is authoritative for the value set
    appointment_status: str = ""
    assigned_user_id: str = ""  # empty = unassigned
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    payment_status: PaymentStatus = "pending"
    contact_name: str = ""
    contact_phone: str = ""
    assigned_staff_first_name: str = ""
    assigned_staff_last_name: str = ""

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _as_utc(cls, v: Any) -> Optional[datetime]:
        return parse_instant(v)

    @field_validator("payment_status", mode="before")
    @classmethod
    def _known_payment_status(cls, v: Any) -> str:
        value = str(v or "").strip().lower()
        return value if value in ("pending", "paid", "failed") else "pending"

    @model_validator(mode="after")
    def _check_order(self) -> "Appointment":
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise InvalidIntervalError(
                f"appointment {self.id}: end_time {self.end_time.isoformat()} "
                f"is not after start_time {self.start_time.isoformat()}"
            )
        return self

    @property
    def is_cancelled(self) -> bool:
        return self.appointment_status.strip().lower() == "cancelled"

    @property
    def is_renderable(self) -> bool:
        return self.start_time is not None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        return None

    @property
    def staff_name(self) -> str:
        return f"{self.assigned_staff_first_name} {self.assigned_staff_last_name}".strip()

    @classmethod
    def from_booking(cls, raw: Dict[str, Any]) -> "Appointment":
        """Map one booking from the booking API listing."""
        start = parse_instant(raw.get("startTime"))
        end = parse_instant(raw.get("endTime"))
        duration = _minutes(raw.get("durationMinutes"))
        if end is None and start is not None and duration:
            end = start + timedelta(minutes=duration)

        title = raw.get("title") or raw.get("serviceName") or ""
        return cls(
            id=str(raw.get("id") or ""),
            calendar_id=str(raw.get("calendar_id") or ""),
            contact_id=str(raw.get("contact_id") or ""),
            title=title,
            service_name=raw.get("serviceName") or raw.get("title") or "Untitled Service",
            status=raw.get("status") or "",
            appointment_status=raw.get("appointment_status") or "",
            assigned_user_id=str(raw.get("assigned_user_id") or ""),
            start_time=start,
            end_time=end,
            payment_status=raw.get("payment_status") or "pending",
            contact_name=raw.get("contactName") or "",
            contact_phone=raw.get("contactPhone") or "",
            assigned_staff_first_name=raw.get("assignedStaffFirstName") or "",
            assigned_staff_last_name=raw.get("assignedStaffLastName") or "",
        )


class LeaveInterval(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    staff_id: str
    name: str = ""
    start: datetime
    end: datetime

    @field_validator("start", "end", mode="before")
    @classmethod
    def _as_utc(cls, v: Any) -> Optional[datetime]:
        return parse_instant(v)

    @model_validator(mode="after")
    def _check_order(self) -> "LeaveInterval":
        if self.end <= self.start:
            raise InvalidIntervalError(f"leave {self.id or self.name!r}: end is not after start")
        return self

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "LeaveInterval":
        return cls(
            id=str(row.get("🔒 Row ID") or row.get("id") or ""),
            staff_id=str(row.get("ghl_id") or ""),
            name=row.get("Event/Name") or "",
            start=row.get("Event/Start"),
            end=row.get("Event/End"),
        )


class BreakInterval(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    staff_id: str
    name: str = ""
    is_recurring: bool = False
    recurring_days: FrozenSet[Weekday] = frozenset()
    start_minute: int = Field(ge=0, lt=24 * 60)
    end_minute: int = Field(gt=0, le=24 * 60)
    specific_date: Optional[date] = None  # only meaningful when not recurring

    @model_validator(mode="after")
    def _check_order(self) -> "BreakInterval":
        if self.end_minute <= self.start_minute:
            raise InvalidIntervalError(
                f"break {self.id or self.name!r}: end minute {self.end_minute} "
                f"is not after start minute {self.start_minute}"
            )
        return self

    @staticmethod
    def parse_recurring_days(value: Any) -> FrozenSet[Weekday]:
        """'1,3,5' -> {MONDAY, WEDNESDAY, FRIDAY}; unknown tokens are ignored."""
        if not value:
            return frozenset()
        tokens = value if isinstance(value, (list, tuple, set, frozenset)) else str(value).split(",")
        days = set()
        for token in tokens:
            token = str(token).strip()
            if token.isdigit() and 0 <= int(token) <= 6:
                days.add(Weekday(int(token)))
        return frozenset(days)

    @staticmethod
    def parse_block_date(value: Any) -> Optional[date]:
        if not value:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        text = str(value).strip()
        try:
            return datetime.strptime(text, _LEGACY_BLOCK_DATE_FORMAT).date()
        except ValueError:
            pass
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BreakInterval":
        recurring = str(row.get("Block/Recurring", "")).strip().lower() == "true"
        return cls(
            id=str(row.get("🔒 Row ID") or row.get("id") or ""),
            staff_id=str(row.get("ghl_id") or ""),
            name=row.get("Block/Name") or "",
            is_recurring=recurring,
            recurring_days=cls.parse_recurring_days(row.get("Block/Recurring Day")) if recurring else frozenset(),
            start_minute=_minutes(row.get("Block/Start")) or 0,
            end_minute=_minutes(row.get("Block/End")) or 0,
            specific_date=None if recurring else cls.parse_block_date(row.get("Block/Date")),
        )


class BusinessHoursDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    day_of_week: Weekday
    is_open: bool = False
    open_time: Optional[int] = None  # minutes since midnight
    close_time: Optional[int] = None

    @property
    def window(self) -> Optional[Tuple[int, int]]:
        if not self.is_open or not self.open_time or not self.close_time:
            return None
        return self.open_time, self.close_time

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BusinessHoursDay":
        return cls(
            day_of_week=Weekday(int(row["day_of_week"])),
            is_open=bool(row.get("is_open")),
            open_time=_minutes(row.get("open_time")),
            close_time=_minutes(row.get("close_time")),
        )


class StaffWorkingHours(BaseModel):
    model_config = ConfigDict(frozen=True)

    staff_id: str
    name: str = ""
    hours: Dict[Weekday, Tuple[int, int]] = Field(default_factory=dict)

    def window_for(self, day: date) -> Optional[Tuple[int, int]]:
        return self.hours.get(Weekday.of(day))

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "StaffWorkingHours":
        # A 0, "0" or null start/end marks a day off
        hours: Dict[Weekday, Tuple[int, int]] = {}
        for weekday in Weekday:
            label = weekday.name.capitalize()
            start = _minutes(row.get(f"{label}/Start Value"))
            end = _minutes(row.get(f"{label}/End Value"))
            if start and end:
                hours[weekday] = (start, end)
        return cls(
            staff_id=str(row.get("ghl_id") or ""),
            name=row.get("Barber/Name") or "",
            hours=hours,
        )


class BlockingInterval(BaseModel):
    start_minute: int
    end_minute: int
    kind: BlockKind
    label: str = ""


class GridPosition(BaseModel):
    top_px: float
    height_px: float
