"""
Event Planner — Data Models.

Plain dataclasses for everything the planner core reads and writes. Storage
adapters map these to rows; the core never sees a database handle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum, IntEnum


class Weekday(IntEnum):
    """Day of week, numbered like ``date.weekday()`` (Monday = 0)."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def abbrev(self) -> str:
        return self.name[:3]

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @classmethod
    def of(cls, day: date) -> Weekday:
        return cls(day.weekday())


ALL_WEEKDAYS: frozenset[Weekday] = frozenset(Weekday)


class RecurrenceFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


@dataclass(frozen=True)
class RecurrenceRule:
    """A validated recurrence pattern. Replaced wholesale, never mutated.

    ``ordinal`` is only set for MONTHLY rules and means "the Nth occurrence
    of each weekday in ``days_of_week``" (1-4). ``interval`` repeats every N
    days/weeks/months counted from the series start date.
    """

    frequency: RecurrenceFrequency
    days_of_week: frozenset[Weekday]
    ordinal: int | None = None
    interval: int = 1
    summary: str = ""

    @property
    def sorted_days(self) -> list[Weekday]:
        return sorted(self.days_of_week)

    def to_rule_string(self) -> str:
        """Compact storage form, e.g. ``WEEKLY:MON,WED`` or ``MONTHLY:2:TUE``."""
        days = ",".join(d.abbrev for d in self.sorted_days)
        if self.frequency is RecurrenceFrequency.DAILY:
            return "DAILY:" if self.days_of_week == ALL_WEEKDAYS else f"DAILY:{days}"
        if self.frequency is RecurrenceFrequency.WEEKLY:
            return f"WEEKLY:{days}"
        return f"MONTHLY:{self.ordinal}:{days}"


@dataclass
class Label:
    """A user-owned tag that events are filed under."""

    id: int
    owner_id: int
    name: str


@dataclass
class RecurringEvent:
    """A repeating event owned by one user.

    ``end_date`` of None means the series never ends. Drafts
    (``unconfirmed``) may leave any field empty.
    """

    id: int | None
    owner_id: int
    name: str | None
    label_id: int | None
    start_time: time | None           # local time-of-day in ``timezone``
    end_time: time | None
    start_date: date | None
    end_date: date | None = None
    recurrence_rule: RecurrenceRule | None = None
    skip_days: set[date] = field(default_factory=set)
    unconfirmed: bool = False
    timezone: str = "UTC"             # inherited from the owner
    description: str | None = None

    def add_skip_day(self, day: date) -> None:
        self.skip_days.add(day)

    def remove_skip_day(self, day: date) -> None:
        self.skip_days.discard(day)


@dataclass
class Event:
    """A single event, stored or materialized from a recurring series.

    Times are timezone-aware UTC datetimes. ``start_timezone`` and
    ``end_timezone`` keep the zone the user picked, for display only.
    """

    id: int | None
    owner_id: int
    name: str | None
    start_time: datetime | None
    end_time: datetime | None
    label_id: int | None
    timezone: str = "UTC"             # owner's zone
    start_timezone: str | None = None
    end_timezone: str | None = None
    description: str | None = None
    completed: bool = False
    unconfirmed: bool = False
    is_virtual: bool = False
    recurring_event_id: int | None = None

    @property
    def duration_minutes(self) -> int | None:
        if self.start_time is None or self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() // 60)


class TimeBucketType(str, Enum):
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"


@dataclass(frozen=True)
class BucketKey:
    """Identifies one bucket period.

    DAY: year + YYYYMMDD value. WEEK: ISO week-based year + ISO week.
    MONTH: calendar year + month number.
    """

    bucket_type: TimeBucketType
    year: int
    value: int


@dataclass
class LabelTimeBucket:
    """Accumulated completed minutes for one (user, label, period)."""

    user_id: int
    label_id: int
    label_name: str
    bucket_type: TimeBucketType
    bucket_year: int
    bucket_value: int
    duration_minutes: int = 0
    id: int | None = None

    @property
    def key(self) -> BucketKey:
        return BucketKey(self.bucket_type, self.bucket_year, self.bucket_value)


@dataclass(frozen=True)
class EventChangeContext:
    """Before/after snapshot of an event mutation that may move bucket time."""

    user_id: int
    timezone: str
    was_completed: bool
    is_now_completed: bool
    old_label_id: int | None = None
    new_label_id: int | None = None
    old_start: datetime | None = None
    new_start: datetime | None = None
    old_duration_minutes: int | None = None
    new_duration_minutes: int | None = None


@dataclass
class ConflictResolution:
    """Per-date decisions: which event id yields on each conflicting date."""

    new_event_id: int
    resolutions: dict[date, int] = field(default_factory=dict)
