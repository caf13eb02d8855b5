"""
Event Planner — Conflict Detector.

Finds scheduling overlaps between a candidate (a single event or a recurring
series) and the owner's existing events and series. Intervals are half-open:
an event ending at 10:00 does not conflict with one starting at 10:00.

Results map each conflicting date (in the owner's timezone) to the ids of
the events that collide on it, in chronological order. No conflicts means an
empty dict.
"""

from __future__ import annotations

import dataclasses
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta

from event_planner.config import settings
from event_planner.core.errors import ConflictError, ErrorCode
from event_planner.core.occurrences import VirtualOccurrence, series_occurrences
from event_planner.core.timeutil import local_dates_covered, overlaps
from event_planner.data.models import Event, RecurringEvent

logger = logging.getLogger(__name__)

Candidate = Event | RecurringEvent
ConflictMap = dict[date, set[int]]


def _is_scheduled_event(event: Event) -> bool:
    return (
        not event.unconfirmed
        and event.start_time is not None
        and event.end_time is not None
    )


def _is_scheduled_series(series: RecurringEvent) -> bool:
    return (
        not series.unconfirmed
        and series.recurrence_rule is not None
        and series.start_date is not None
        and series.start_time is not None
        and series.end_time is not None
    )


def _clip(
    lower: date, upper: date, window_start: date | None, window_end: date | None,
) -> tuple[date, date]:
    if window_start is not None:
        lower = max(lower, window_start)
    if window_end is not None:
        upper = min(upper, window_end)
    return lower, upper


# ---------------------------------------------------------------------------
# Pairwise checks: each returns the dates on which the pair collides
# ---------------------------------------------------------------------------


def _event_vs_event(
    a: Event, b: Event, window_start: date | None, window_end: date | None,
) -> list[date]:
    if not overlaps(a.start_time, a.end_time, b.start_time, b.end_time):
        return []
    shared_start = max(a.start_time, b.start_time)
    shared_end = min(a.end_time, b.end_time)
    return [
        d for d in local_dates_covered(shared_start, shared_end, a.timezone)
        if (window_start is None or d >= window_start)
        and (window_end is None or d <= window_end)
    ]


def _series_vs_event(
    series: RecurringEvent, event: Event, window_start: date | None, window_end: date | None,
) -> list[date]:
    covered = local_dates_covered(event.start_time, event.end_time, series.timezone)
    if not covered:
        return []
    lower, upper = _clip(covered[0], covered[-1], window_start, window_end)

    hits: list[date] = []
    for day in series_occurrences(series, lower, upper):
        occ_start, occ_end = VirtualOccurrence(day, series).interval()
        if overlaps(occ_start, occ_end, event.start_time, event.end_time):
            hits.append(day)
    return hits


def _shares_weekdays(a: RecurringEvent, b: RecurringEvent) -> bool:
    return bool(a.recurrence_rule.days_of_week & b.recurrence_rule.days_of_week)


def _series_vs_series(
    a: RecurringEvent,
    b: RecurringEvent,
    window_start: date | None,
    window_end: date | None,
    horizon_days: int,
) -> list[date]:
    same_zone = a.timezone == b.timezone
    if same_zone:
        # Disjoint times of day can never collide
        if not (a.start_time < b.end_time and b.start_time < a.end_time):
            return []
        if not _shares_weekdays(a, b):
            logger.debug("Skipping series %s - no shared recurrence days", b.id)
            return []
    # Across zones an occurrence of b can land on a's previous or next local date
    slack = timedelta(days=0 if same_zone else 1)

    lower = max(a.start_date, b.start_date - slack)
    if window_start is not None:
        lower = max(lower, window_start)
    bounds = [a.end_date, window_end]
    if b.end_date is not None:
        bounds.append(b.end_date + slack)
    bounds = [d for d in bounds if d is not None]
    if bounds:
        upper = min(bounds)
    else:
        upper = lower + timedelta(days=horizon_days)
        logger.debug("Capping open-ended series comparison at %s", upper)
    if upper < lower:
        return []

    other_days = set(series_occurrences(b, lower - slack, upper + slack))
    hits: list[date] = []
    for day in series_occurrences(a, lower, upper):
        a_start, a_end = VirtualOccurrence(day, a).interval()
        for other_day in sorted({day - slack, day, day + slack}):
            if other_day not in other_days:
                continue
            b_start, b_end = VirtualOccurrence(other_day, b).interval()
            if overlaps(a_start, a_end, b_start, b_end):
                hits.append(day)
                break
    return hits


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def find_conflicts(
    candidate: Candidate,
    existing_events: Iterable[Event],
    existing_recurring_events: Iterable[RecurringEvent],
    window_start: date | None = None,
    window_end: date | None = None,
    horizon_days: int | None = None,
) -> ConflictMap:
    """Map each conflicting date to the ids of the events colliding with ``candidate``.

    Only confirmed existing events with concrete times take part, and the
    candidate never conflicts with itself (same id). Recurring-vs-recurring
    comparisons are bounded by the intersection of both series, the window,
    and ``horizon_days`` (default ``settings.CONFLICT_HORIZON_DAYS``) when
    nothing else bounds them.
    """
    horizon = horizon_days or settings.CONFLICT_HORIZON_DAYS
    found: dict[date, set[int]] = defaultdict(set)

    def record(days: list[date], other_id: int) -> None:
        for day in days:
            found[day].add(other_id)

    if isinstance(candidate, RecurringEvent):
        if not _is_scheduled_series(candidate):
            return {}
        for ev in existing_events:
            if ev.id is None or ev.id == candidate.id or not _is_scheduled_event(ev):
                continue
            record(_series_vs_event(candidate, ev, window_start, window_end), ev.id)
        for re in existing_recurring_events:
            if re.id is None or re.id == candidate.id or not _is_scheduled_series(re):
                continue
            record(_series_vs_series(candidate, re, window_start, window_end, horizon), re.id)
    else:
        if not _is_scheduled_event(candidate):
            return {}
        for ev in existing_events:
            if ev.id is None or ev.id == candidate.id or not _is_scheduled_event(ev):
                continue
            record(_event_vs_event(candidate, ev, window_start, window_end), ev.id)
        for re in existing_recurring_events:
            if re.id is None or re.id == candidate.id or not _is_scheduled_series(re):
                continue
            record(_series_vs_event(re, candidate, window_start, window_end), re.id)

    conflicts = {day: found[day] for day in sorted(found)}
    if conflicts:
        logger.info(
            "Found conflicts for '%s' (ID: %s) on %d date(s)",
            candidate.name, candidate.id, len(conflicts),
        )
    return conflicts


def ensure_no_conflicts(
    candidate: Candidate,
    existing_events: Iterable[Event],
    existing_recurring_events: Iterable[RecurringEvent],
    window_start: date | None = None,
    window_end: date | None = None,
) -> None:
    """Raise ConflictError when ``find_conflicts`` reports anything."""
    conflicts = find_conflicts(
        candidate, existing_events, existing_recurring_events, window_start, window_end,
    )
    if not conflicts:
        return
    code = (
        ErrorCode.RECURRING_EVENT_CONFLICT
        if isinstance(candidate, RecurringEvent)
        else ErrorCode.EVENT_CONFLICT
    )
    logger.warning("Conflict detected for '%s' (ID: %s)", candidate.name, candidate.id)
    raise ConflictError(code, conflicts)


def find_skip_day_removal_conflicts(
    recurring_event: RecurringEvent,
    skip_days_to_remove: Iterable[date],
    existing_events: Iterable[Event],
    existing_recurring_events: Iterable[RecurringEvent],
) -> ConflictMap:
    """Conflicts that would appear if the given skip days were reinstated."""
    to_remove = set(skip_days_to_remove)
    if not to_remove:
        return {}
    events = list(existing_events)
    series = list(existing_recurring_events)
    reinstated = dataclasses.replace(
        recurring_event, skip_days=recurring_event.skip_days - to_remove,
    )

    merged: dict[date, set[int]] = {}
    for day in sorted(to_remove):
        for hit_day, ids in find_conflicts(
            reinstated, events, series, window_start=day, window_end=day,
        ).items():
            merged.setdefault(hit_day, set()).update(ids)
    return merged
