"""
Event Planner — Field updates and event validation.

Partial updates say, per field, one of three things:

    UNCHANGED        leave the stored value alone
    CLEAR            reset the field to empty
    SetTo(value)     replace the stored value

Patches are applied to a copy first and validated there, so a rejected
update leaves the stored object exactly as it was.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Generic, TypeVar

from event_planner.core.errors import ErrorCode, InvalidEventStateError, InvalidTimeError
from event_planner.core.recurrence import (
    ParsedRecurrenceInput,
    build_rule,
    build_summary,
    parse_rule_string,
)
from event_planner.core.timeutil import zone
from event_planner.data.models import Event, RecurrenceRule, RecurringEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Unchanged:
    _instance: Unchanged | None = None

    def __new__(cls) -> Unchanged:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"


class Clear:
    _instance: Clear | None = None

    def __new__(cls) -> Clear:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CLEAR"


@dataclass(frozen=True)
class SetTo(Generic[T]):
    value: T


UNCHANGED = Unchanged()
CLEAR = Clear()

FieldUpdate = Unchanged | Clear | SetTo


def resolve(update: FieldUpdate, current: Any) -> Any:
    """New value of a field after ``update``."""
    if isinstance(update, Unchanged):
        return current
    if isinstance(update, Clear):
        return None
    if isinstance(update, SetTo):
        return update.value
    raise TypeError(f"Not a field update: {update!r}")


@dataclass
class RecurringEventUpdate:
    """Partial update of a recurring event.

    ``recurrence_rule`` takes either the compact string form
    (``WEEKLY:MON,WED``) or a ParsedRecurrenceInput.
    """

    name: FieldUpdate = UNCHANGED
    label_id: FieldUpdate = UNCHANGED
    start_time: FieldUpdate = UNCHANGED
    end_time: FieldUpdate = UNCHANGED
    start_date: FieldUpdate = UNCHANGED
    end_date: FieldUpdate = UNCHANGED
    recurrence_rule: FieldUpdate = UNCHANGED
    description: FieldUpdate = UNCHANGED


@dataclass
class EventUpdate:
    """Partial update of a single event. Naive datetimes are read in the owner's zone."""

    name: FieldUpdate = UNCHANGED
    label_id: FieldUpdate = UNCHANGED
    start_time: FieldUpdate = UNCHANGED
    end_time: FieldUpdate = UNCHANGED
    start_timezone: FieldUpdate = UNCHANGED
    end_timezone: FieldUpdate = UNCHANGED
    description: FieldUpdate = UNCHANGED


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _require(value: Any, code: ErrorCode) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidEventStateError(code)


def check_recurring_event_times(recurring_event: RecurringEvent) -> None:
    """Ordering checks that apply to drafts as well as confirmed series."""
    re = recurring_event
    if re.start_time is not None and re.end_time is not None and re.start_time >= re.end_time:
        raise InvalidTimeError(re.start_time, re.end_time)
    if re.start_date is not None and re.end_date is not None and re.end_date < re.start_date:
        raise InvalidTimeError(re.start_date, re.end_date)


def validate_recurring_event_fields(recurring_event: RecurringEvent) -> None:
    """Raise InvalidEventStateError unless the series is complete enough to confirm."""
    re = recurring_event
    _require(re.name, ErrorCode.MISSING_EVENT_NAME)
    _require(re.start_time, ErrorCode.MISSING_EVENT_START_TIME)
    _require(re.end_time, ErrorCode.MISSING_EVENT_END_TIME)
    _require(re.start_date, ErrorCode.MISSING_EVENT_START_DATE)
    _require(re.label_id, ErrorCode.MISSING_EVENT_LABEL)
    _require(re.recurrence_rule, ErrorCode.MISSING_RECURRENCE_RULE)
    check_recurring_event_times(re)


def check_event_times(event: Event) -> None:
    if event.start_time is not None and event.end_time is not None:
        if event.end_time <= event.start_time:
            raise InvalidTimeError(event.start_time, event.end_time)


def validate_event_fields(event: Event) -> None:
    """Raise InvalidEventStateError unless the event is complete enough to confirm."""
    _require(event.name, ErrorCode.MISSING_EVENT_NAME)
    _require(event.start_time, ErrorCode.MISSING_EVENT_START_TIME)
    _require(event.end_time, ErrorCode.MISSING_EVENT_END_TIME)
    _require(event.label_id, ErrorCode.MISSING_EVENT_LABEL)
    check_event_times(event)


# ---------------------------------------------------------------------------
# Rule helpers
# ---------------------------------------------------------------------------


def rule_from_input(
    raw: str | ParsedRecurrenceInput | RecurrenceRule,
    start_date: date | None,
    end_date: date | None,
) -> RecurrenceRule:
    """Validated rule with its summary for the given date range."""
    if isinstance(raw, RecurrenceRule):
        return dataclasses.replace(raw, summary=build_summary(raw, start_date, end_date))
    if isinstance(raw, str):
        raw = parse_rule_string(raw)
    return build_rule(raw, start_date, end_date)


def as_utc(value: datetime | None, tz_name: str) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone(tz_name))
    return value.astimezone(timezone.utc)


def _commit(target: Any, candidate: Any) -> bool:
    changed = False
    for f in dataclasses.fields(target):
        new = getattr(candidate, f.name)
        if getattr(target, f.name) != new:
            setattr(target, f.name, new)
            changed = True
    return changed


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------


def apply_recurring_event_patch(existing: RecurringEvent, update: RecurringEventUpdate) -> bool:
    """Apply ``update`` in place; returns whether anything changed.

    A new rule or new dates rebuild the rule summary. Skip days that fall
    outside a narrowed date range are dropped. Confirmed series must stay
    complete after the update.
    """
    candidate = dataclasses.replace(existing, skip_days=set(existing.skip_days))
    candidate.name = resolve(update.name, existing.name)
    candidate.label_id = resolve(update.label_id, existing.label_id)
    candidate.start_time = resolve(update.start_time, existing.start_time)
    candidate.end_time = resolve(update.end_time, existing.end_time)
    candidate.start_date = resolve(update.start_date, existing.start_date)
    candidate.end_date = resolve(update.end_date, existing.end_date)
    candidate.description = resolve(update.description, existing.description)

    raw_rule = resolve(update.recurrence_rule, existing.recurrence_rule)
    dates_changed = (
        candidate.start_date != existing.start_date or candidate.end_date != existing.end_date
    )
    if raw_rule is None:
        candidate.recurrence_rule = None
    elif not isinstance(update.recurrence_rule, Unchanged) or dates_changed:
        candidate.recurrence_rule = rule_from_input(
            raw_rule, candidate.start_date, candidate.end_date,
        )

    if dates_changed:
        kept = {
            d for d in candidate.skip_days
            if (candidate.start_date is None or d >= candidate.start_date)
            and (candidate.end_date is None or d <= candidate.end_date)
        }
        if len(kept) != len(candidate.skip_days):
            logger.debug(
                "Dropping %d skip day(s) outside the new date range",
                len(candidate.skip_days) - len(kept),
            )
        candidate.skip_days = kept

    if existing.unconfirmed:
        check_recurring_event_times(candidate)
    else:
        validate_recurring_event_fields(candidate)

    changed = _commit(existing, candidate)
    if changed:
        logger.info("Patched recurring event %s", existing.id)
    return changed


def apply_event_patch(existing: Event, update: EventUpdate) -> bool:
    """Apply ``update`` in place; returns whether anything changed."""
    candidate = dataclasses.replace(existing)
    candidate.name = resolve(update.name, existing.name)
    candidate.label_id = resolve(update.label_id, existing.label_id)
    candidate.description = resolve(update.description, existing.description)
    candidate.start_timezone = resolve(update.start_timezone, existing.start_timezone)
    candidate.end_timezone = resolve(update.end_timezone, existing.end_timezone)
    candidate.start_time = as_utc(
        resolve(update.start_time, existing.start_time),
        candidate.start_timezone or existing.timezone,
    )
    candidate.end_time = as_utc(
        resolve(update.end_time, existing.end_time),
        candidate.end_timezone or existing.timezone,
    )

    if existing.unconfirmed:
        check_event_times(candidate)
    else:
        validate_event_fields(candidate)

    changed = _commit(existing, candidate)
    if changed:
        logger.info("Patched event %s", existing.id)
    return changed


def has_time_change(before: Event, after: Event) -> bool:
    return before.start_time != after.start_time or before.end_time != after.end_time
