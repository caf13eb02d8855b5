"""Timezone helpers shared by the planner core. No I/O."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

if TYPE_CHECKING:
    from event_planner.ports.clock_port import Clock

FAR_FUTURE_DATE = date(5000, 1, 1)

_EPSILON = timedelta(microseconds=1)


@lru_cache(maxsize=64)
def zone(tz_name: str) -> ZoneInfo:
    return ZoneInfo(tz_name)


def to_local(moment: datetime, tz_name: str) -> datetime:
    return moment.astimezone(zone(tz_name))


def to_utc(day: date, at: time, tz_name: str) -> datetime:
    """Wall-clock ``day at`` in ``tz_name``, converted to an aware UTC datetime."""
    return datetime.combine(day, at, tzinfo=zone(tz_name)).astimezone(timezone.utc)


def local_today(clock: Clock, tz_name: str) -> date:
    return to_local(clock.now(), tz_name).date()


def local_dates_covered(start: datetime, end: datetime, tz_name: str) -> list[date]:
    """Local calendar dates touched by the half-open interval [start, end)."""
    if end <= start:
        return []
    first = to_local(start, tz_name).date()
    last = to_local(end - _EPSILON, tz_name).date()
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime,
) -> bool:
    """Half-open overlap: touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a
