# salon_calendar/services/calendar_view.py
"""
Calendar orchestration: date ranges per view, day-grid assembly and the
CalendarService that wires upstream clients, the appointment cache and the
pure engine together.

Mutations (cancel/reschedule) never patch a cached list in place: they refetch
the full list and then clear the rest of the appointment cache. A refresh that
fails after the booking backend accepted a mutation is reported as a
notification, not as a failed mutation.
"""
from __future__ import annotations

import asyncio
import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from salon_calendar.core.business import is_within_hours
from salon_calendar.core.config import Settings, settings
from salon_calendar.core.errors import UpstreamError
from salon_calendar.core.logging import get_logger
from salon_calendar.schemas.calendar import (
    Appointment,
    BlockingInterval,
    GridPosition,
    StaffWorkingHours,
    WorkingSlotSet,
)
from salon_calendar.services.availability import AvailabilityIndex
from salon_calendar.services.booking_api import BookingApiClient, DataApiClient
from salon_calendar.services.cache import (
    APPOINTMENTS_CACHE_PREFIX,
    CachePort,
    appointments_cache_key,
    is_fresh,
)
from salon_calendar.services.fetch import CancellationToken, FetchedValue, FetchOutcome, LatestFetchGate
from salon_calendar.services.grid import (
    GridConfig,
    current_time_indicator_px,
    grid_height_px,
    hour_rows,
    layout_appointment,
    layout_minutes,
)
from salon_calendar.services.policy import DEFAULT_LOCKOUT_WINDOW, action_label, can_cancel_or_reschedule
from salon_calendar.services.reschedule import CancelRequest, RescheduleRequest, plan_cancel, plan_reschedule
from salon_calendar.services.wallclock import TimezoneLike, local_date_of, resolve_timezone, wall_time_to_utc

logger = get_logger(__name__)

CalendarView = Literal["day", "month", "year"]


# ---------- Date ranges ----------

def calendar_range(view: CalendarView, anchor: date, tz: TimezoneLike) -> Tuple[datetime, datetime]:
    """UTC bounds of a view, from 00:00 of its first day to 23:59 of its last, in wall time."""
    if view == "day":
        first, last = anchor, anchor
    elif view == "month":
        first = anchor.replace(day=1)
        last = anchor.replace(day=calendar.monthrange(anchor.year, anchor.month)[1])
    elif view == "year":
        first, last = date(anchor.year, 1, 1), date(anchor.year, 12, 31)
    else:
        raise ValueError(f"unknown calendar view: {view!r}")
    return (
        wall_time_to_utc(tz, first.year, first.month, first.day, 0, 0),
        wall_time_to_utc(tz, last.year, last.month, last.day, 23, 59),
    )


# ---------- Day grid ----------

class PositionedAppointment(BaseModel):
    appointment: Appointment
    position: GridPosition
    can_modify: bool
    cancel_label: str
    reschedule_label: str


class PositionedBlock(BaseModel):
    block: BlockingInterval
    position: GridPosition


class StaffColumn(BaseModel):
    staff_id: str
    name: str = ""
    on_leave: bool = False
    appointments: List[PositionedAppointment] = Field(default_factory=list)
    blocks: List[PositionedBlock] = Field(default_factory=list)
    non_working: List[PositionedBlock] = Field(default_factory=list)


class DayView(BaseModel):
    day: date
    timezone: str
    rows: List[Tuple[str, float]]
    height_px: float
    current_time_px: Optional[float] = None
    open_now: bool = False
    staff: List[StaffColumn] = Field(default_factory=list)
    unassigned: List[PositionedAppointment] = Field(default_factory=list)


def _position_appointment(appt: Appointment, config: GridConfig, tz: TimezoneLike,
                          now: datetime, window: timedelta) -> Optional[PositionedAppointment]:
    position = layout_appointment(appt, config, tz)
    if position is None:
        return None
    return PositionedAppointment(
        appointment=appt,
        position=position,
        can_modify=can_cancel_or_reschedule(appt, now, window),
        cancel_label=action_label("cancel", appt, now, window),
        reschedule_label=action_label("reschedule", appt, now, window),
    )


def _position_blocks(blocks: Sequence[BlockingInterval], config: GridConfig) -> List[PositionedBlock]:
    positioned = []
    for block in blocks:
        position = layout_minutes(block.start_minute, block.end_minute, config)
        if position is not None:
            positioned.append(PositionedBlock(block=block, position=position))
    return positioned


def build_day_view(day: date,
                   appointments: Sequence[Appointment],
                   index: AvailabilityIndex,
                   staff: Sequence[StaffWorkingHours],
                   config: GridConfig,
                   tz: TimezoneLike,
                   now: datetime,
                   window: timedelta = DEFAULT_LOCKOUT_WINDOW) -> DayView:
    todays = [a for a in appointments if a.start_time and local_date_of(a.start_time, tz) == day]
    is_today = local_date_of(now, tz) == day
    zone = resolve_timezone(tz)

    columns = []
    staff_ids = set()
    for member in staff:
        staff_ids.add(member.staff_id)
        mine = [a for a in todays if a.assigned_user_id == member.staff_id]
        columns.append(StaffColumn(
            staff_id=member.staff_id,
            name=member.name,
            on_leave=index.is_on_leave(member.staff_id, day),
            appointments=[p for p in (_position_appointment(a, config, tz, now, window) for a in mine) if p],
            blocks=_position_blocks(index.blocking_intervals(member.staff_id, day), config),
            non_working=_position_blocks(
                index.non_working_periods(member.staff_id, day,
                                          config.grid_start_minute, config.grid_end_minute_exclusive),
                config,
            ),
        ))

    others = [a for a in todays if a.assigned_user_id not in staff_ids]
    return DayView(
        day=day,
        timezone=str(zone),
        rows=hour_rows(config),
        height_px=grid_height_px(config),
        current_time_px=current_time_indicator_px(now, config, tz) if is_today else None,
        open_now=is_today and is_within_hours(now.astimezone(zone), index.business_hours),
        staff=columns,
        unassigned=[p for p in (_position_appointment(a, config, tz, now, window) for a in others) if p],
    )


# ---------- Service ----------

class CalendarService:
    def __init__(self, booking_api: BookingApiClient, data_api: DataApiClient,
                 cache: CachePort, cfg: Settings = settings):
        self.booking_api = booking_api
        self.data_api = data_api
        self.cache = cache
        self.cfg = cfg
        self.tz = cfg.BUSINESS_TIMEZONE
        self.grid = GridConfig.from_settings(cfg)
        self.window = cfg.lockout_window
        self._slot_gates: Dict[Tuple[str, Optional[str]], LatestFetchGate] = {}
        self._slots: Dict[Tuple[str, Optional[str]], FetchedValue[WorkingSlotSet]] = {}
        self._slot_tasks: Dict[Tuple[str, Optional[str]], asyncio.Task] = {}
        # Failures after a mutation already went through
        self.notifications: List[str] = []

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return now or datetime.now(timezone.utc)

    def today(self, now: Optional[datetime] = None) -> date:
        return local_date_of(self._now(now), self.tz)

    def _anchor_of(self, appointment: Appointment, now: Optional[datetime] = None) -> date:
        if appointment.start_time is None:
            return self.today(now)
        return local_date_of(appointment.start_time, self.tz)

    # ----- appointments -----

    async def get_appointments(self, view: CalendarView, anchor: date,
                               force_refresh: bool = False,
                               now: Optional[datetime] = None) -> List[Appointment]:
        now = self._now(now)
        key = appointments_cache_key(view, anchor)
        entry = self.cache.get(key)
        if not force_refresh and is_fresh(entry, now, self.cfg.appointment_cache_ttl):
            logger.debug("appointments_cache_hit", key=key, count=len(entry.value))
            return [Appointment.model_validate(a) for a in entry.value]

        appointments = await self._fetch_range(view, anchor)
        self.cache.set(key, [a.model_dump(mode="json") for a in appointments], fetched_at=now)
        return appointments

    async def _fetch_range(self, view: CalendarView, anchor: date) -> List[Appointment]:
        start, end = calendar_range(view, anchor, self.tz)
        return await self.data_api.fetch_bookings(start, end, page_size=self.cfg.BOOKINGS_PAGE_SIZE)

    async def refresh(self, view: CalendarView, anchor: date,
                      now: Optional[datetime] = None) -> List[Appointment]:
        """
        Refetch `view` and drop every other cached appointment list. The
        cache is only cleared once the refetch succeeded, so a failed refresh
        leaves the previous lists in place.
        """
        now = self._now(now)
        appointments = await self._fetch_range(view, anchor)
        cleared = self.cache.clear_prefix(APPOINTMENTS_CACHE_PREFIX)
        logger.info("appointments_cache_cleared", entries=cleared)
        self.cache.set(appointments_cache_key(view, anchor),
                       [a.model_dump(mode="json") for a in appointments], fetched_at=now)
        return appointments

    async def _refresh_after_mutation(self, appointment: Appointment, now: datetime) -> None:
        try:
            await self.refresh("day", self._anchor_of(appointment, now), now=now)
        except UpstreamError as e:
            logger.warning("refresh_after_mutation_failed", appointment_id=appointment.id, error=str(e))
            self.notifications.append(f"Appointment {appointment.id} was updated but the calendar "
                                      f"could not be refreshed: {e}")

    async def find_appointment(self, appointment_id: str, anchor: Optional[date] = None,
                               now: Optional[datetime] = None) -> Optional[Appointment]:
        """Look in the anchor's month first, then in the rest of its year."""
        anchor = anchor or self.today(now)
        for view in ("month", "year"):
            for appt in await self.get_appointments(view, anchor, now=now):
                if appt.id == appointment_id:
                    return appt
        return None

    # ----- availability -----

    async def working_slots(self, calendar_id: str, staff_id: Optional[str] = None) -> WorkingSlotSet:
        """
        Latest working slots for (calendar, staff).

        A caller whose fetch gets superseded waits for the newest fetch of the
        same key and returns its result, so a discarded response never reaches
        anyone as "no slots". A failed fetch keeps the last good value and only
        raises when there is nothing to fall back to.
        """
        key = (calendar_id, staff_id)
        gate = self._slot_gates.setdefault(key, LatestFetchGate(f"staff_slots:{calendar_id}:{staff_id or 'any'}"))
        state = self._slots.setdefault(key, FetchedValue())

        token = gate.issue()
        task = asyncio.ensure_future(self._fetch_slots(key, gate, state, token))
        self._slot_tasks[key] = task
        outcome = await asyncio.shield(task)
        while outcome.discarded:
            latest = self._slot_tasks.get(key)
            if latest is None or latest is task:
                break
            task = latest
            outcome = await asyncio.shield(task)

        if outcome.ok:
            return outcome.value or {}
        if outcome.error is not None and state.value is None:
            raise outcome.error
        if state.value is None and state.last_error:
            # superseded, and the fetch that replaced it failed too
            raise UpstreamError("booking_api", state.last_error)
        return state.value or {}

    async def _fetch_slots(self, key: Tuple[str, Optional[str]], gate: LatestFetchGate,
                           state: FetchedValue[WorkingSlotSet],
                           token: CancellationToken) -> FetchOutcome[WorkingSlotSet]:
        calendar_id, staff_id = key
        try:
            outcome = await gate.run(token, self.booking_api.fetch_staff_slots(calendar_id, staff_id))
            state.apply(outcome)
            return outcome
        finally:
            if self._slot_tasks.get(key) is asyncio.current_task():
                del self._slot_tasks[key]

    async def load_index(self, calendar_id: Optional[str] = None,
                         staff_id: Optional[str] = None) -> Tuple[AvailabilityIndex, List[StaffWorkingHours]]:
        leaves, breaks, hours, staff = await asyncio.gather(
            self.data_api.fetch_leaves(),
            self.data_api.fetch_time_blocks(),
            self.data_api.fetch_business_hours(),
            self.data_api.fetch_staff(),
        )
        index = AvailabilityIndex(self.tz, leaves=leaves, breaks=breaks,
                                  business_hours=hours, staff_hours=staff)
        if calendar_id:
            index.set_working_slots(await self.working_slots(calendar_id, staff_id), staff_id)
        return index, staff

    async def available_dates(self, calendar_id: str, staff_id: Optional[str] = None,
                              now: Optional[datetime] = None) -> List[str]:
        index, _ = await self.load_index(calendar_id, staff_id)
        return index.available_dates(staff_id, now)

    async def slots_for(self, calendar_id: str, date_string: str, staff_id: Optional[str] = None,
                        now: Optional[datetime] = None) -> List[str]:
        index, _ = await self.load_index(calendar_id, staff_id)
        return index.slots_for(date_string, staff_id, now)

    async def day_view(self, day: date, now: Optional[datetime] = None) -> DayView:
        now = self._now(now)
        appointments = await self.get_appointments("day", day, now=now)
        index, staff = await self.load_index()
        return build_day_view(day, appointments, index, staff, self.grid, self.tz, now, self.window)

    # ----- mutations (refresh-on-mutate) -----

    async def cancel(self, appointment: Appointment, now: Optional[datetime] = None) -> CancelRequest:
        now = self._now(now)
        request = plan_cancel(appointment, now, self.window)
        await self.booking_api.cancel_booking(request.appointment_id)
        await self._refresh_after_mutation(appointment, now)
        return request

    async def reschedule(self, appointment: Appointment, date_string: str, slot_label: str,
                         staff_id: Optional[str] = None, staff_options: Sequence[str] = (),
                         now: Optional[datetime] = None) -> RescheduleRequest:
        now = self._now(now)
        request = plan_reschedule(appointment, date_string, slot_label, self.tz,
                                  selected_staff=staff_id, staff_options=staff_options,
                                  now=now, window=self.window)
        await self.booking_api.update_appointment(request)
        await self._refresh_after_mutation(appointment, now)
        return request
