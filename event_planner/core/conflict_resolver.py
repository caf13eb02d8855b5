"""
Event Planner — Conflict Resolver and skip-day management.

Applies the user's per-date decisions ("on 2025-03-04 the gym class yields")
by adding skip days to whichever recurring series loses. Past dates are
immutable history: skip days can only be added or removed for today or later
in the owner's timezone.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, time, timedelta
from typing import TYPE_CHECKING

from event_planner.core.conflict_detector import find_skip_day_removal_conflicts
from event_planner.core.errors import (
    ConflictError,
    ErrorCode,
    EventNotFoundError,
    InvalidSkipDayError,
    PlannerError,
)
from event_planner.core.timeutil import local_today, to_utc
from event_planner.data.models import ConflictResolution, Event, RecurringEvent

if TYPE_CHECKING:
    from event_planner.ports.clock_port import Clock
    from event_planner.ports.event_store_port import EventStore

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Turns conflict decisions and skip-day edits into stored skip days."""

    def __init__(self, store: EventStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    # -- helpers -------------------------------------------------------------

    def _today(self, recurring_event: RecurringEvent) -> date:
        return local_today(self._clock, recurring_event.timezone)

    @staticmethod
    def _outside_series(recurring_event: RecurringEvent, days: Iterable[date]) -> set[date]:
        start, end = recurring_event.start_date, recurring_event.end_date
        return {
            d for d in days
            if (start is not None and d < start) or (end is not None and d > end)
        }

    def _load_loser(self, loser_id: int, owner_id: int) -> RecurringEvent:
        item = self._store.find_by_id(loser_id)
        if item is None or item.owner_id != owner_id:
            raise EventNotFoundError(loser_id)
        if isinstance(item, Event):
            logger.warning("Resolution names single event %d as the loser", loser_id)
            raise PlannerError(
                ErrorCode.INVALID_CONFLICT_RESOLUTION, f"Event {loser_id} is not recurring.",
            )
        return item

    # -- resolutions ---------------------------------------------------------

    def apply_resolutions(
        self, resolution: ConflictResolution, recurring_event: RecurringEvent,
    ) -> frozenset[date]:
        """Add each resolved date to the losing series' skip days.

        Every date and every loser is checked before anything is written, so a
        rejected resolution leaves all series untouched. Returns the new
        series' skip days afterwards. Re-applying the same resolution is a
        no-op (skip days are a set).
        """
        if recurring_event.id is not None and recurring_event.id != resolution.new_event_id:
            raise ValueError(
                f"Resolution is for event {resolution.new_event_id}, "
                f"got recurring event {recurring_event.id}"
            )

        today = self._today(recurring_event)
        past = {d for d in resolution.resolutions if d < today}
        if past:
            logger.warning("Rejected resolution with past dates: %s", sorted(past))
            raise InvalidSkipDayError(ErrorCode.INVALID_SKIP_DAY_ADDITION, past)

        targets: dict[int, RecurringEvent] = {}
        planned: dict[int, set[date]] = {}
        for day, loser_id in sorted(resolution.resolutions.items()):
            if loser_id == resolution.new_event_id:
                target = recurring_event
            else:
                target = targets.get(loser_id) or self._load_loser(
                    loser_id, recurring_event.owner_id,
                )
            targets[loser_id] = target
            planned.setdefault(loser_id, set()).add(day)

        for loser_id, days in planned.items():
            outside = self._outside_series(targets[loser_id], days)
            if outside:
                raise InvalidSkipDayError(ErrorCode.INVALID_SKIP_DAY_ADDITION, outside)

        for loser_id, days in planned.items():
            target = targets[loser_id]
            for day in days:
                target.add_skip_day(day)
            self._store.save_recurring_event(target)
            logger.info(
                "Recurring event %s yields on %s",
                loser_id, ", ".join(d.isoformat() for d in sorted(days)),
            )

        return frozenset(recurring_event.skip_days)

    # -- explicit skip-day edits --------------------------------------------

    def add_skip_days(
        self, recurring_event: RecurringEvent, days: Iterable[date],
    ) -> frozenset[date]:
        to_add = set(days)
        today = self._today(recurring_event)
        invalid = {d for d in to_add if d < today} | self._outside_series(recurring_event, to_add)
        if invalid:
            raise InvalidSkipDayError(ErrorCode.INVALID_SKIP_DAY_ADDITION, invalid)

        for day in to_add:
            recurring_event.add_skip_day(day)
        self._store.save_recurring_event(recurring_event)
        logger.info("Added %d skip day(s) to recurring event %s", len(to_add), recurring_event.id)
        return frozenset(recurring_event.skip_days)

    def remove_skip_days(
        self, recurring_event: RecurringEvent, days: Iterable[date],
    ) -> frozenset[date]:
        """Reinstate skipped dates, refusing past dates and new conflicts."""
        to_remove = set(days)
        if not to_remove:
            return frozenset(recurring_event.skip_days)

        today = self._today(recurring_event)
        past = {d for d in to_remove if d < today}
        if past:
            raise InvalidSkipDayError(ErrorCode.INVALID_SKIP_DAY_REMOVAL, past)

        first, last = min(to_remove), max(to_remove)
        tz = recurring_event.timezone
        events = self._store.find_events(
            recurring_event.owner_id,
            to_utc(first, time.min, tz),
            to_utc(last + timedelta(days=1), time.min, tz),
        )
        series = self._store.find_recurring_events(recurring_event.owner_id, first, last)
        conflicts = find_skip_day_removal_conflicts(recurring_event, to_remove, events, series)
        if conflicts:
            raise ConflictError(ErrorCode.RECURRING_EVENT_CONFLICT, conflicts)

        for day in to_remove:
            recurring_event.remove_skip_day(day)
        self._store.save_recurring_event(recurring_event)
        logger.info(
            "Removed %d skip day(s) from recurring event %s", len(to_remove), recurring_event.id,
        )
        return frozenset(recurring_event.skip_days)

    def visible_skip_days(self, recurring_event: RecurringEvent) -> frozenset[date]:
        """Skip days from today onward; older ones are history."""
        today = self._today(recurring_event)
        return frozenset(d for d in recurring_event.skip_days if d >= today)
