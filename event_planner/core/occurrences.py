"""
Event Planner — Occurrence Generator.

Expands a RecurrenceRule into the concrete dates it fires on inside a
window. Generation is lazy and jumps by the rule's natural stride (a day, a
week, a month), so an open-ended series costs only as much as the window
asked for. Nothing is cached between calls: every call is a fresh iterator.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from event_planner.core.recurrence import (
    monday_of,
    months_between,
    nth_weekday_of_month,
)
from event_planner.core.timeutil import local_dates_covered, overlaps, to_local, to_utc
from event_planner.data.models import (
    Event,
    RecurrenceFrequency,
    RecurrenceRule,
    RecurringEvent,
    Weekday,
)

logger = logging.getLogger(__name__)


def occurrences_in_range(
    rule: RecurrenceRule,
    start_date: date,
    end_date: date | None,
    skip_days: Iterable[date],
    window_start: date,
    window_end: date,
) -> Iterator[date]:
    """Yield occurrence dates in ``[max(start, window_start), min(end, window_end)]``.

    ``end_date`` of None means the series is infinite; the window still
    bounds the work. Skip days are never yielded. Dates come out in
    chronological order.
    """
    lower = max(start_date, window_start)
    upper = window_end if end_date is None else min(end_date, window_end)
    if lower > upper:
        return

    skipped = frozenset(skip_days)

    if rule.frequency is RecurrenceFrequency.DAILY:
        candidates = _daily(rule, start_date, lower, upper)
    elif rule.frequency is RecurrenceFrequency.WEEKLY:
        candidates = _weekly(rule, start_date, lower, upper)
    else:
        candidates = _monthly(rule, start_date, lower, upper)

    for day in candidates:
        if day in skipped:
            logger.debug("Skipping date: %s", day)
            continue
        yield day


def _daily(rule: RecurrenceRule, anchor: date, lower: date, upper: date) -> Iterator[date]:
    step = rule.interval
    behind = (lower - anchor).days % step
    cursor = lower + timedelta(days=(step - behind) % step)
    while cursor <= upper:
        if Weekday.of(cursor) in rule.days_of_week:
            yield cursor
        cursor += timedelta(days=step)


def _weekly(rule: RecurrenceRule, anchor: date, lower: date, upper: date) -> Iterator[date]:
    days = rule.sorted_days
    week = monday_of(lower)
    behind = ((week - monday_of(anchor)).days // 7) % rule.interval
    if behind:
        week += timedelta(weeks=rule.interval - behind)

    while week <= upper:
        for weekday in days:
            day = week + timedelta(days=int(weekday))
            if day > upper:
                return
            if day >= lower:
                yield day
        week += timedelta(weeks=rule.interval)


def _monthly(rule: RecurrenceRule, anchor: date, lower: date, upper: date) -> Iterator[date]:
    year, month = lower.year, lower.month
    behind = months_between(anchor, lower) % rule.interval
    if behind:
        year, month = _add_months(year, month, rule.interval - behind)

    while date(year, month, 1) <= upper:
        hits = sorted(
            nth_weekday_of_month(year, month, weekday, rule.ordinal)
            for weekday in rule.days_of_week
        )
        for day in hits:
            if day > upper:
                return
            if day >= lower:
                yield day
        year, month = _add_months(year, month, rule.interval)


def _add_months(year: int, month: int, count: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + count
    return index // 12, index % 12 + 1


def series_occurrences(
    recurring_event: RecurringEvent, window_start: date, window_end: date,
) -> Iterator[date]:
    """Occurrences of a stored series; empty for drafts missing a rule or start."""
    if recurring_event.recurrence_rule is None or recurring_event.start_date is None:
        return iter(())
    return occurrences_in_range(
        recurring_event.recurrence_rule,
        recurring_event.start_date,
        recurring_event.end_date,
        recurring_event.skip_days,
        window_start,
        window_end,
    )


# ---------------------------------------------------------------------------
# Virtual occurrences
# ---------------------------------------------------------------------------


@dataclass
class VirtualOccurrence:
    """One date of a recurring series. Display-only, never persisted."""

    day: date
    recurring_event: RecurringEvent

    def interval(self) -> tuple[datetime, datetime]:
        """UTC [start, end) of this occurrence."""
        re = self.recurring_event
        return (
            to_utc(self.day, re.start_time, re.timezone),
            to_utc(self.day, re.end_time, re.timezone),
        )

    def materialize(self) -> Event:
        re = self.recurring_event
        start, end = self.interval()
        return Event(
            id=None,
            owner_id=re.owner_id,
            name=re.name,
            start_time=start,
            end_time=end,
            label_id=re.label_id,
            timezone=re.timezone,
            description=re.description,
            completed=False,
            unconfirmed=False,
            is_virtual=True,
            recurring_event_id=re.id,
        )


def _is_expandable(recurring_event: RecurringEvent) -> bool:
    return (
        not recurring_event.unconfirmed
        and recurring_event.recurrence_rule is not None
        and recurring_event.start_date is not None
        and recurring_event.start_time is not None
        and recurring_event.end_time is not None
    )


def expand_virtual_occurrences(
    recurring_events: Iterable[RecurringEvent], window_start: date, window_end: date,
) -> list[VirtualOccurrence]:
    """Occurrences of every confirmed series in the window, chronologically."""
    found = [
        VirtualOccurrence(day, re)
        for re in recurring_events
        if _is_expandable(re)
        for day in series_occurrences(re, window_start, window_end)
    ]
    found.sort(key=lambda occ: (occ.day, occ.recurring_event.start_time))
    return found


def virtual_events_between(
    recurring_events: Iterable[RecurringEvent], start: datetime, end: datetime,
) -> list[Event]:
    """Materialized occurrences overlapping the UTC window [start, end)."""
    events: list[Event] = []
    for re in recurring_events:
        if not _is_expandable(re):
            continue
        dates = local_dates_covered(start, end, re.timezone)
        if not dates:
            continue
        for day in series_occurrences(re, dates[0], dates[-1]):
            occ = VirtualOccurrence(day, re)
            occ_start, occ_end = occ.interval()
            if overlaps(occ_start, occ_end, start, end):
                events.append(occ.materialize())
    events.sort(key=lambda ev: ev.start_time)
    logger.debug("Generated %d virtual events between %s and %s", len(events), start, end)
    return events


def dates_with_events_in_month(
    events: Iterable[Event],
    recurring_events: Iterable[RecurringEvent],
    year: int,
    month: int,
    tz_name: str,
) -> list[date]:
    """Sorted distinct local dates in the month with a confirmed event or occurrence."""
    first = date(year, month, 1)
    last = (first.replace(day=28) + timedelta(days=4)).replace(day=1) - timedelta(days=1)

    dates: set[date] = set()
    for ev in events:
        if ev.unconfirmed or ev.start_time is None:
            continue
        if ev.end_time is None:
            dates.add(to_local(ev.start_time, tz_name).date())
            continue
        dates.update(local_dates_covered(ev.start_time, ev.end_time, tz_name))

    for occ in expand_virtual_occurrences(recurring_events, first, last):
        dates.add(occ.day)

    return sorted(d for d in dates if first <= d <= last)
