"""
Event Planner — Planner Service.

Stateless orchestration over the ports:
validate input -> check conflicts -> persist -> feed time buckets.

Single events refuse to be stored on top of another event. Recurring events
are stored even when they collide; the caller gets the conflict map back and
settles it with ``resolve_conflicts``. Every completion, label or time change
on a completed event is reported to the TimeBucketAggregator as a
before/after pair.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING

from event_planner.config import settings
from event_planner.core.conflict_detector import ConflictMap, ensure_no_conflicts, find_conflicts
from event_planner.core.conflict_resolver import ConflictResolver
from event_planner.core.errors import ErrorCode, EventNotFoundError, InvalidEventStateError
from event_planner.core.occurrences import dates_with_events_in_month, virtual_events_between
from event_planner.core.patching import (
    EventUpdate,
    RecurringEventUpdate,
    apply_event_patch,
    apply_recurring_event_patch,
    as_utc,
    check_event_times,
    check_recurring_event_times,
    has_time_change,
    rule_from_input,
    validate_event_fields,
    validate_recurring_event_fields,
)
from event_planner.core.time_buckets import (
    TimeBucketAggregator,
    TimeStats,
    compute_time_stats,
)
from event_planner.core.timeutil import FAR_FUTURE_DATE, local_today, to_local, to_utc
from event_planner.data.models import (
    ConflictResolution,
    Event,
    EventChangeContext,
    RecurringEvent,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from event_planner.core.recurrence import ParsedRecurrenceInput
    from event_planner.ports.bucket_store_port import BucketStore
    from event_planner.ports.clock_port import Clock
    from event_planner.ports.event_store_port import EventStore
    from event_planner.ports.label_port import LabelLookup

logger = logging.getLogger(__name__)


@dataclass
class RecurringEventCreationResult:
    """A stored recurring event plus the dates it collides on."""

    event: RecurringEvent
    conflicts: ConflictMap = field(default_factory=dict)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


def change_context(before: Event, after: Event) -> EventChangeContext:
    return EventChangeContext(
        user_id=after.owner_id,
        timezone=after.timezone,
        was_completed=before.completed,
        is_now_completed=after.completed,
        old_label_id=before.label_id,
        new_label_id=after.label_id,
        old_start=before.start_time,
        new_start=after.start_time,
        old_duration_minutes=before.duration_minutes,
        new_duration_minutes=after.duration_minutes,
    )


class PlannerService:
    """Use-case entry points for events, recurring events and time stats."""

    def __init__(
        self,
        store: EventStore,
        buckets: BucketStore,
        labels: LabelLookup,
        clock: Clock,
    ) -> None:
        self._store = store
        self._buckets = buckets
        self._clock = clock
        self._resolver = ConflictResolver(store, clock)
        self._aggregator = TimeBucketAggregator(buckets, labels)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _get_event(self, owner_id: int, event_id: int) -> Event:
        event = self._store.get_event(event_id)
        if event is None or event.owner_id != owner_id:
            raise EventNotFoundError(event_id)
        return event

    def _get_recurring_event(self, owner_id: int, recurring_event_id: int) -> RecurringEvent:
        recurring_event = self._store.get_recurring_event(recurring_event_id)
        if recurring_event is None or recurring_event.owner_id != owner_id:
            raise EventNotFoundError(recurring_event_id)
        return recurring_event

    # ------------------------------------------------------------------
    # Conflict lookups
    # ------------------------------------------------------------------

    def _recurring_event_conflicts(self, recurring_event: RecurringEvent) -> ConflictMap:
        if recurring_event.unconfirmed:
            return {}
        tz = recurring_event.timezone
        last = recurring_event.end_date or FAR_FUTURE_DATE
        events = self._store.find_events(
            recurring_event.owner_id,
            to_utc(recurring_event.start_date, time.min, tz),
            to_utc(last + timedelta(days=1), time.min, tz),
        )
        series = self._store.find_recurring_events(
            recurring_event.owner_id, recurring_event.start_date, recurring_event.end_date,
        )
        return find_conflicts(recurring_event, events, series)

    def _ensure_event_fits(self, event: Event) -> None:
        events = self._store.find_events(event.owner_id, event.start_time, event.end_time)
        series = self._store.find_recurring_events(
            event.owner_id,
            to_local(event.start_time, event.timezone).date(),
            to_local(event.end_time, event.timezone).date(),
        )
        ensure_no_conflicts(event, events, series)

    # ------------------------------------------------------------------
    # Recurring events
    # ------------------------------------------------------------------

    def create_recurring_event(
        self,
        owner_id: int,
        name: str | None,
        label_id: int | None,
        start_time: time | None,
        end_time: time | None,
        start_date: date | None,
        end_date: date | None = None,
        recurrence_rule: str | ParsedRecurrenceInput | None = None,
        timezone: str | None = None,
        description: str | None = None,
        unconfirmed: bool = False,
    ) -> RecurringEventCreationResult:
        """Store a recurring event and report what it collides with.

        Drafts skip completeness checks and conflict detection.
        """
        rule = (
            rule_from_input(recurrence_rule, start_date, end_date)
            if recurrence_rule is not None else None
        )
        recurring_event = RecurringEvent(
            id=None,
            owner_id=owner_id,
            name=name,
            label_id=label_id,
            start_time=start_time,
            end_time=end_time,
            start_date=start_date,
            end_date=end_date,
            recurrence_rule=rule,
            unconfirmed=unconfirmed,
            timezone=timezone or settings.DEFAULT_TIMEZONE,
            description=description,
        )
        if unconfirmed:
            check_recurring_event_times(recurring_event)
        else:
            validate_recurring_event_fields(recurring_event)

        saved = self._store.save_recurring_event(recurring_event)
        conflicts = self._recurring_event_conflicts(saved)
        logger.info(
            "Created recurring event '%s' (ID: %s, %s) with %d conflicting date(s)",
            saved.name, saved.id, rule.summary if rule else "no rule", len(conflicts),
        )
        return RecurringEventCreationResult(saved, conflicts)

    def update_recurring_event(
        self, owner_id: int, recurring_event_id: int, update: RecurringEventUpdate,
    ) -> RecurringEventCreationResult:
        recurring_event = self._get_recurring_event(owner_id, recurring_event_id)
        if apply_recurring_event_patch(recurring_event, update):
            recurring_event = self._store.save_recurring_event(recurring_event)
        return RecurringEventCreationResult(
            recurring_event, self._recurring_event_conflicts(recurring_event),
        )

    def confirm_recurring_event(
        self, owner_id: int, recurring_event_id: int,
    ) -> RecurringEventCreationResult:
        recurring_event = self._get_recurring_event(owner_id, recurring_event_id)
        if not recurring_event.unconfirmed:
            raise InvalidEventStateError(ErrorCode.EVENT_ALREADY_CONFIRMED)
        validate_recurring_event_fields(recurring_event)
        recurring_event.unconfirmed = False
        saved = self._store.save_recurring_event(recurring_event)
        logger.info("Confirmed recurring event %s", saved.id)
        return RecurringEventCreationResult(saved, self._recurring_event_conflicts(saved))

    def delete_recurring_event(self, owner_id: int, recurring_event_id: int) -> bool:
        self._get_recurring_event(owner_id, recurring_event_id)
        return self._store.delete_recurring_event(recurring_event_id)

    def resolve_conflicts(
        self, owner_id: int, resolution: ConflictResolution,
    ) -> frozenset[date]:
        """Apply per-date decisions; returns the new series' skip days."""
        recurring_event = self._get_recurring_event(owner_id, resolution.new_event_id)
        return self._resolver.apply_resolutions(resolution, recurring_event)

    def add_skip_days(
        self, owner_id: int, recurring_event_id: int, days: Iterable[date],
    ) -> frozenset[date]:
        recurring_event = self._get_recurring_event(owner_id, recurring_event_id)
        return self._resolver.add_skip_days(recurring_event, days)

    def remove_skip_days(
        self, owner_id: int, recurring_event_id: int, days: Iterable[date],
    ) -> frozenset[date]:
        recurring_event = self._get_recurring_event(owner_id, recurring_event_id)
        return self._resolver.remove_skip_days(recurring_event, days)

    def upcoming_skip_days(self, owner_id: int, recurring_event_id: int) -> frozenset[date]:
        recurring_event = self._get_recurring_event(owner_id, recurring_event_id)
        return self._resolver.visible_skip_days(recurring_event)

    # ------------------------------------------------------------------
    # Single events
    # ------------------------------------------------------------------

    def create_event(
        self,
        owner_id: int,
        name: str | None,
        start_time: datetime | None,
        end_time: datetime | None,
        label_id: int | None,
        timezone: str | None = None,
        start_timezone: str | None = None,
        end_timezone: str | None = None,
        description: str | None = None,
        unconfirmed: bool = False,
    ) -> Event:
        """Store a single event; a confirmed one must not overlap anything."""
        tz = timezone or settings.DEFAULT_TIMEZONE
        event = Event(
            id=None,
            owner_id=owner_id,
            name=name,
            start_time=as_utc(start_time, start_timezone or tz),
            end_time=as_utc(end_time, end_timezone or tz),
            label_id=label_id,
            timezone=tz,
            start_timezone=start_timezone,
            end_timezone=end_timezone,
            description=description,
            unconfirmed=unconfirmed,
        )
        if unconfirmed:
            check_event_times(event)
        else:
            validate_event_fields(event)
            self._ensure_event_fits(event)

        saved = self._store.save_event(event)
        logger.info("Created event '%s' (ID: %s)", saved.name, saved.id)
        return saved

    def update_event(self, owner_id: int, event_id: int, update: EventUpdate) -> Event:
        event = self._get_event(owner_id, event_id)
        before = dataclasses.replace(event)
        if not apply_event_patch(event, update):
            return event
        if not event.unconfirmed and has_time_change(before, event):
            self._ensure_event_fits(event)

        saved = self._store.save_event(event)
        if before.completed:
            self._aggregator.apply_change(change_context(before, saved))
        return saved

    def confirm_event(self, owner_id: int, event_id: int) -> Event:
        event = self._get_event(owner_id, event_id)
        if not event.unconfirmed:
            raise InvalidEventStateError(ErrorCode.EVENT_ALREADY_CONFIRMED)
        validate_event_fields(event)
        self._ensure_event_fits(event)
        event.unconfirmed = False
        saved = self._store.save_event(event)
        logger.info("Confirmed event %s", saved.id)
        return saved

    def complete_event(self, owner_id: int, event_id: int) -> Event:
        """Mark an event done and credit its minutes to the label. Idempotent."""
        event = self._get_event(owner_id, event_id)
        if event.unconfirmed:
            raise InvalidEventStateError(ErrorCode.EVENT_NOT_CONFIRMED)
        if event.end_time is None:
            raise InvalidEventStateError(ErrorCode.MISSING_EVENT_END_TIME)
        if event.completed:
            return event

        before = dataclasses.replace(event)
        event.completed = True
        saved = self._store.save_event(event)
        self._aggregator.apply_change(change_context(before, saved))
        logger.info("Completed event %s (%s min)", saved.id, saved.duration_minutes)
        return saved

    def uncomplete_event(self, owner_id: int, event_id: int) -> Event:
        event = self._get_event(owner_id, event_id)
        if not event.completed:
            return event

        before = dataclasses.replace(event)
        event.completed = False
        saved = self._store.save_event(event)
        self._aggregator.apply_change(change_context(before, saved))
        logger.info("Reopened event %s", saved.id)
        return saved

    def delete_event(self, owner_id: int, event_id: int) -> bool:
        """Delete an event, withdrawing its minutes if it was completed."""
        event = self._get_event(owner_id, event_id)
        deleted = self._store.delete_event(event_id)
        if deleted and event.completed:
            gone = dataclasses.replace(event, completed=False)
            self._aggregator.apply_change(change_context(event, gone))
        return deleted

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def virtual_events(
        self, owner_id: int, start: datetime, end: datetime, timezone: str | None = None,
    ) -> list[Event]:
        """Materialized recurring occurrences overlapping [start, end)."""
        tz = timezone or settings.DEFAULT_TIMEZONE
        series = self._store.find_recurring_events(
            owner_id,
            to_local(start, tz).date() - timedelta(days=1),
            to_local(end, tz).date() + timedelta(days=1),
        )
        return virtual_events_between(series, start, end)

    def events_between(
        self, owner_id: int, start: datetime, end: datetime, timezone: str | None = None,
    ) -> list[Event]:
        """Stored events and recurring occurrences in [start, end), chronologically."""
        stored = self._store.find_events(owner_id, start, end)
        merged = stored + self.virtual_events(owner_id, start, end, timezone)
        merged.sort(key=lambda ev: ev.start_time)
        return merged

    def dates_with_events(
        self, owner_id: int, year: int, month: int, timezone: str | None = None,
    ) -> list[date]:
        tz = timezone or settings.DEFAULT_TIMEZONE
        first = date(year, month, 1)
        after = (first.replace(day=28) + timedelta(days=4)).replace(day=1)
        events = self._store.find_events(
            owner_id, to_utc(first, time.min, tz), to_utc(after, time.min, tz),
        )
        series = self._store.find_recurring_events(owner_id, first, after - timedelta(days=1))
        return dates_with_events_in_month(events, series, year, month, tz)

    def time_stats(
        self, owner_id: int, label_ids: Iterable[int], timezone: str | None = None,
    ) -> TimeStats:
        today = local_today(self._clock, timezone or settings.DEFAULT_TIMEZONE)
        return compute_time_stats(self._buckets, owner_id, label_ids, today)
