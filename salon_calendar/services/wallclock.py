# salon_calendar/services/wallclock.py
"""
Wall-clock <-> UTC conversion in a fixed business timezone.

Offsets are looked up in the tz database for each instant, so DST changes are
picked up date by date. `wall_time_to_utc` is a single-step approximation and
is off by the DST delta inside the skipped/repeated hour of a transition.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import NamedTuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from salon_calendar.core.errors import InvalidWallTimeError
from salon_calendar.core.logging import get_logger

logger = get_logger(__name__)

UTC = timezone.utc

TimezoneLike = Union[str, tzinfo]


class WallFields(NamedTuple):
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int


@lru_cache(maxsize=64)
def _zone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_timezone", timezone=name, fallback="UTC")
        return UTC


def resolve_timezone(tz: TimezoneLike) -> tzinfo:
    """Accept an IANA name or a tzinfo. Unknown names fall back to UTC."""
    if isinstance(tz, tzinfo):
        return tz
    return _zone(str(tz))


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def wall_fields_of(instant: datetime, tz: TimezoneLike) -> WallFields:
    local = _as_utc(instant).astimezone(resolve_timezone(tz))
    return WallFields(local.year, local.month, local.day, local.hour, local.minute, local.second)


def offset_millis(tz: TimezoneLike, instant_utc: datetime) -> int:
    """
    Local wall-clock of `instant_utc` in `tz`, read back as if it were UTC,
    minus the instant itself. Negative west of Greenwich.
    """
    instant = _as_utc(instant_utc).replace(microsecond=0)
    f = wall_fields_of(instant, tz)
    as_utc = datetime(f.year, f.month, f.day, f.hour, f.minute, f.second, tzinfo=UTC)
    return int((as_utc - instant).total_seconds() * 1000)


def _check_wall_fields(year: int, month: int, day: int, hour: int, minute: int) -> None:
    if not 1 <= month <= 12:
        raise InvalidWallTimeError(f"month out of range: {month}")
    if not 0 <= hour <= 23:
        raise InvalidWallTimeError(f"hour out of range: {hour}")
    if not 0 <= minute <= 59:
        raise InvalidWallTimeError(f"minute out of range: {minute}")
    try:
        date(year, month, day)
    except ValueError as e:
        raise InvalidWallTimeError(f"invalid date {year}-{month}-{day}: {e}") from e


def wall_time_to_utc(tz: TimezoneLike, year: int, month: int, day: int,
                     hour: int = 0, minute: int = 0) -> datetime:
    """Convert wall-clock fields in `tz` to an aware UTC datetime."""
    _check_wall_fields(year, month, day, hour, minute)
    naive = datetime(year, month, day, hour, minute, tzinfo=UTC)
    offset = offset_millis(tz, naive)
    return naive - timedelta(milliseconds=offset)


def minute_of_day(instant: datetime, tz: TimezoneLike) -> int:
    f = wall_fields_of(instant, tz)
    return f.hour * 60 + f.minute


def local_date_of(instant: datetime, tz: TimezoneLike) -> date:
    f = wall_fields_of(instant, tz)
    return date(f.year, f.month, f.day)


def to_utc_iso(instant: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a 'Z' suffix."""
    return _as_utc(instant).isoformat(timespec="milliseconds").replace("+00:00", "Z")
