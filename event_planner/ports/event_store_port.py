"""Event store port — abstract interface for event persistence.

Core modules depend on this protocol, never on a specific database.
Events and recurring events share one id space, so ``find_by_id`` is
unambiguous.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from event_planner.data.models import Event, RecurringEvent


class EventStore(Protocol):
    """Abstract event storage used by core modules."""

    def find_events(
        self, owner_id: int, start: datetime, end: datetime
    ) -> list[Event]: ...

    def find_recurring_events(
        self, owner_id: int, start_date: date, end_date: date | None
    ) -> list[RecurringEvent]: ...

    def find_by_id(self, item_id: int) -> Event | RecurringEvent | None: ...

    def get_event(self, event_id: int) -> Event | None: ...

    def get_recurring_event(self, recurring_event_id: int) -> RecurringEvent | None: ...

    def save_event(self, event: Event) -> Event: ...

    def save_recurring_event(self, recurring_event: RecurringEvent) -> RecurringEvent: ...

    def delete_event(self, event_id: int) -> bool: ...

    def delete_recurring_event(self, recurring_event_id: int) -> bool: ...
