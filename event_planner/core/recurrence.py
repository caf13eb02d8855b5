"""
Event Planner — Recurrence Rules.

Turns raw recurrence input (a pydantic model, or the compact
``FREQUENCY:PARAMS`` string form) into a validated ``RecurrenceRule`` and
renders its human-readable summary.

Supported string forms:
    DAILY:               every day
    DAILY:MON,TUE        every day, restricted to those weekdays
    WEEKLY:MON,WED,FRI   specific weekdays
    MONTHLY:2:TUE        the Nth (1-4) occurrence of the weekday(s) in a month
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from pydantic import BaseModel

from event_planner.core.errors import ErrorCode, InvalidRecurrenceRuleError
from event_planner.data.models import (
    ALL_WEEKDAYS,
    RecurrenceFrequency,
    RecurrenceRule,
    Weekday,
)

logger = logging.getLogger(__name__)

MAX_ORDINAL = 4

_ORDINAL_WORDS = {1: "first", 2: "second", 3: "third", 4: "fourth"}

_MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

_DAY_LOOKUP: dict[str, Weekday] = {}
for _day in Weekday:
    _DAY_LOOKUP[_day.name] = _day
    _DAY_LOOKUP[_day.abbrev] = _day


class ParsedRecurrenceInput(BaseModel):
    """Unvalidated recurrence input as it arrives from a client.

    Fields stay loosely typed so that ``validate`` can report a precise
    error code instead of a generic type error.

    JSON example:
    {
        "frequency": "MONTHLY",
        "days_of_week": ["TUE"],
        "ordinal": 2
    }
    """
    frequency: str | None = None
    days_of_week: list[str | int] = []
    ordinal: int | str | None = None
    interval: int | str = 1


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_rule_string(rule: str, interval: int = 1) -> ParsedRecurrenceInput:
    """Split a ``FREQUENCY:PARAMS`` string into a ParsedRecurrenceInput.

    Only the shape is checked here; ``validate`` does the rest.
    """
    logger.debug("Parsing recurrence rule: %s", rule)
    parts = rule.strip().split(":")
    if len(parts) < 2:
        if not parts[0].strip():
            raise InvalidRecurrenceRuleError(ErrorCode.MISSING_RECURRENCE_FREQUENCY)
        raise InvalidRecurrenceRuleError(ErrorCode.UNSUPPORTED_RECURRENCE_COMBINATION)

    frequency = parts[0].strip().upper()

    if frequency == RecurrenceFrequency.MONTHLY.value:
        if len(parts) < 3:
            logger.warning("Monthly rule missing ordinal or days: %s", rule)
            raise InvalidRecurrenceRuleError(ErrorCode.MONTHLY_MISSING_ORDINAL_OR_DAY)
        ordinal = parts[1].strip() or None
        return ParsedRecurrenceInput(
            frequency=frequency,
            days_of_week=_split_days(parts[2]),
            ordinal=ordinal,
            interval=interval,
        )

    if len(parts) > 2:
        raise InvalidRecurrenceRuleError(ErrorCode.UNSUPPORTED_RECURRENCE_COMBINATION)

    return ParsedRecurrenceInput(
        frequency=frequency or None,
        days_of_week=_split_days(parts[1]),
        interval=interval,
    )


def _split_days(raw: str) -> list[str | int]:
    return [token.strip() for token in raw.split(",") if token.strip()]


def _parse_day(value: str | int, invalid_code: ErrorCode) -> Weekday:
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value <= 6:
            return Weekday(value)
        raise InvalidRecurrenceRuleError(invalid_code)
    if isinstance(value, str):
        day = _DAY_LOOKUP.get(value.strip().upper())
        if day is not None:
            return day
    logger.warning("Invalid day name: %r", value)
    raise InvalidRecurrenceRuleError(invalid_code)


def _parse_days(values: list[str | int], invalid_code: ErrorCode) -> frozenset[Weekday]:
    return frozenset(_parse_day(v, invalid_code) for v in values)


def _parse_ordinal(value: int | str) -> int:
    try:
        ordinal = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid ordinal format: %r", value)
        raise InvalidRecurrenceRuleError(ErrorCode.MONTHLY_INVALID_ORDINAL) from None
    if not 1 <= ordinal <= MAX_ORDINAL:
        logger.warning("Ordinal out of range (1-%d): %d", MAX_ORDINAL, ordinal)
        raise InvalidRecurrenceRuleError(ErrorCode.MONTHLY_INVALID_ORDINAL)
    return ordinal


def _parse_interval(value: int | str) -> int:
    try:
        interval = int(value)
    except (TypeError, ValueError):
        raise InvalidRecurrenceRuleError(ErrorCode.UNSUPPORTED_RECURRENCE_COMBINATION) from None
    if interval < 1:
        raise InvalidRecurrenceRuleError(ErrorCode.UNSUPPORTED_RECURRENCE_COMBINATION)
    return interval


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate(parsed: ParsedRecurrenceInput) -> RecurrenceRule:
    """Validate raw input and return an immutable RecurrenceRule (no summary).

    Raises InvalidRecurrenceRuleError with the code of the first violated
    constraint.
    """
    if parsed.frequency is None or not str(parsed.frequency).strip():
        raise InvalidRecurrenceRuleError(ErrorCode.MISSING_RECURRENCE_FREQUENCY)

    try:
        frequency = RecurrenceFrequency(str(parsed.frequency).strip().upper())
    except ValueError:
        logger.warning("Invalid frequency in rule: %s", parsed.frequency)
        raise InvalidRecurrenceRuleError(ErrorCode.UNSUPPORTED_RECURRENCE_COMBINATION) from None

    interval = _parse_interval(parsed.interval)

    if frequency is RecurrenceFrequency.MONTHLY:
        if parsed.ordinal is None or not parsed.days_of_week:
            raise InvalidRecurrenceRuleError(ErrorCode.MONTHLY_MISSING_ORDINAL_OR_DAY)
        ordinal = _parse_ordinal(parsed.ordinal)
        days = _parse_days(parsed.days_of_week, ErrorCode.MONTHLY_INVALID_DAY)
        return RecurrenceRule(frequency, days, ordinal=ordinal, interval=interval)

    # DAILY and WEEKLY never carry an ordinal
    if parsed.ordinal is not None:
        raise InvalidRecurrenceRuleError(ErrorCode.UNSUPPORTED_RECURRENCE_COMBINATION)

    if frequency is RecurrenceFrequency.WEEKLY:
        if not parsed.days_of_week:
            raise InvalidRecurrenceRuleError(ErrorCode.WEEKLY_MISSING_DAYS)
        days = _parse_days(parsed.days_of_week, ErrorCode.WEEKLY_INVALID_DAY)
        return RecurrenceRule(frequency, days, interval=interval)

    days = _parse_days(parsed.days_of_week, ErrorCode.WEEKLY_INVALID_DAY) or ALL_WEEKDAYS
    return RecurrenceRule(frequency, days, interval=interval)


def build_rule(
    parsed: ParsedRecurrenceInput, start_date: date | None, end_date: date | None,
) -> RecurrenceRule:
    """Validate ``parsed`` and attach its summary for the given date range."""
    rule = validate(parsed)
    summary = build_summary(rule, start_date, end_date)
    return RecurrenceRule(
        frequency=rule.frequency,
        days_of_week=rule.days_of_week,
        ordinal=rule.ordinal,
        interval=rule.interval,
        summary=summary,
    )


def build_rule_from_string(
    rule: str, start_date: date | None, end_date: date | None, interval: int = 1,
) -> RecurrenceRule:
    return build_rule(parse_rule_string(rule, interval=interval), start_date, end_date)


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def format_date(day: date) -> str:
    """Render e.g. ``June 15, 2025`` (locale independent)."""
    return f"{_MONTH_NAMES[day.month - 1]} {day.day}, {day.year}"


def _format_days(days: list[Weekday]) -> str:
    return " and ".join(d.display_name for d in days)


def build_summary(
    parsed: ParsedRecurrenceInput | RecurrenceRule,
    start_date: date | None,
    end_date: date | None,
) -> str:
    """Render a deterministic description of the rule over a date range.

    Pure: the same inputs always produce the same string. A missing
    ``end_date`` renders as "forever".
    """
    rule = parsed if isinstance(parsed, RecurrenceRule) else validate(parsed)
    days = _format_days(rule.sorted_days)
    n = rule.interval

    if rule.frequency is RecurrenceFrequency.DAILY:
        head = "Every day" if n == 1 else f"Every {n} days"
        if rule.days_of_week != ALL_WEEKDAYS:
            head = f"{head} on {days}"
    elif rule.frequency is RecurrenceFrequency.WEEKLY:
        head = f"Every {days}" if n == 1 else f"Every {n} weeks on {days}"
    else:
        ordinal = _ORDINAL_WORDS[rule.ordinal]
        period = "the month" if n == 1 else f"every {n} months"
        head = f"Every {ordinal} {days} of {period}"

    parts = [head]
    if start_date is not None:
        parts.append(f"from {format_date(start_date)}")
    parts.append(f"until {format_date(end_date)}" if end_date is not None else "forever")
    summary = " ".join(parts)
    logger.debug("Generated summary: %s", summary)
    return summary


# ---------------------------------------------------------------------------
# Point tests
# ---------------------------------------------------------------------------


def monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def months_between(start: date, day: date) -> int:
    return (day.year - start.year) * 12 + (day.month - start.month)


def nth_weekday_of_month(year: int, month: int, weekday: Weekday, ordinal: int) -> date:
    """Date of the ``ordinal``-th ``weekday`` in a month (ordinal 1-4 always exists)."""
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (ordinal - 1))


def is_nth_weekday_of_month(day: date, ordinal: int) -> bool:
    return (day.day - 1) // 7 + 1 == ordinal


def occurs_on(rule: RecurrenceRule, start_date: date, day: date) -> bool:
    """Whether the pattern (ignoring end date and skip days) fires on ``day``.

    ``start_date`` anchors the interval; days before it never match.
    """
    if day < start_date or Weekday.of(day) not in rule.days_of_week:
        return False

    if rule.frequency is RecurrenceFrequency.DAILY:
        return (day - start_date).days % rule.interval == 0
    if rule.frequency is RecurrenceFrequency.WEEKLY:
        weeks = (monday_of(day) - monday_of(start_date)).days // 7
        return weeks % rule.interval == 0
    return (
        is_nth_weekday_of_month(day, rule.ordinal)
        and months_between(start_date, day) % rule.interval == 0
    )
