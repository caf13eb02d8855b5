"""Planner error codes and exceptions.

Every failure the core can report carries a stable ``ErrorCode``; transport
layers map the code to whatever status convention they use.
"""

from __future__ import annotations

from datetime import date
from enum import Enum


class ErrorCode(str, Enum):
    # Recurrence rules
    MISSING_RECURRENCE_FREQUENCY = "MISSING_RECURRENCE_FREQUENCY"
    WEEKLY_MISSING_DAYS = "WEEKLY_MISSING_DAYS"
    WEEKLY_INVALID_DAY = "WEEKLY_INVALID_DAY"
    MONTHLY_MISSING_ORDINAL_OR_DAY = "MONTHLY_MISSING_ORDINAL_OR_DAY"
    MONTHLY_INVALID_ORDINAL = "MONTHLY_INVALID_ORDINAL"
    MONTHLY_INVALID_DAY = "MONTHLY_INVALID_DAY"
    UNSUPPORTED_RECURRENCE_COMBINATION = "UNSUPPORTED_RECURRENCE_COMBINATION"

    # Conflicts
    EVENT_CONFLICT = "EVENT_CONFLICT"
    RECURRING_EVENT_CONFLICT = "RECURRING_EVENT_CONFLICT"
    INVALID_CONFLICT_RESOLUTION = "INVALID_CONFLICT_RESOLUTION"

    # Skip days
    INVALID_SKIP_DAY_ADDITION = "INVALID_SKIP_DAY_ADDITION"
    INVALID_SKIP_DAY_REMOVAL = "INVALID_SKIP_DAY_REMOVAL"

    # Event state
    MISSING_EVENT_NAME = "MISSING_EVENT_NAME"
    MISSING_EVENT_START_TIME = "MISSING_EVENT_START_TIME"
    MISSING_EVENT_END_TIME = "MISSING_EVENT_END_TIME"
    MISSING_EVENT_START_DATE = "MISSING_EVENT_START_DATE"
    MISSING_EVENT_LABEL = "MISSING_EVENT_LABEL"
    MISSING_RECURRENCE_RULE = "MISSING_RECURRENCE_RULE"
    INVALID_EVENT_TIME = "INVALID_EVENT_TIME"
    EVENT_ALREADY_CONFIRMED = "EVENT_ALREADY_CONFIRMED"
    EVENT_NOT_CONFIRMED = "EVENT_NOT_CONFIRMED"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"


_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.MISSING_RECURRENCE_FREQUENCY: "Recurrence rule must specify a frequency.",
    ErrorCode.WEEKLY_MISSING_DAYS: "Weekly recurrence must specify at least one day.",
    ErrorCode.WEEKLY_INVALID_DAY: "The recurrence rule contains an invalid day of the week.",
    ErrorCode.MONTHLY_MISSING_ORDINAL_OR_DAY: "Monthly recurrence must include both ordinal and day(s).",
    ErrorCode.MONTHLY_INVALID_ORDINAL: (
        "The recurrence rule contains an invalid ordinal value (must be between 1 and 4)."
    ),
    ErrorCode.MONTHLY_INVALID_DAY: "The recurrence rule contains an invalid day for monthly recurrence.",
    ErrorCode.UNSUPPORTED_RECURRENCE_COMBINATION: "The recurrence rule combination is not supported.",
    ErrorCode.EVENT_CONFLICT: "The event conflicts with existing events.",
    ErrorCode.RECURRING_EVENT_CONFLICT: "The recurring event conflicts with existing events.",
    ErrorCode.INVALID_CONFLICT_RESOLUTION: "Only recurring events can yield a conflicting date.",
    ErrorCode.INVALID_SKIP_DAY_ADDITION: "Cannot add skip days in the past or outside the series.",
    ErrorCode.INVALID_SKIP_DAY_REMOVAL: "Cannot remove skip days in the past.",
    ErrorCode.MISSING_EVENT_NAME: "Event cannot be confirmed without a name.",
    ErrorCode.MISSING_EVENT_START_TIME: "Event cannot be confirmed without a start time.",
    ErrorCode.MISSING_EVENT_END_TIME: "Event cannot be confirmed without an end time.",
    ErrorCode.MISSING_EVENT_START_DATE: "Event cannot be confirmed without a start date.",
    ErrorCode.MISSING_EVENT_LABEL: "Event cannot be confirmed without a label.",
    ErrorCode.MISSING_RECURRENCE_RULE: "Event cannot be confirmed without a recurrence rule.",
    ErrorCode.INVALID_EVENT_TIME: "Start must be before end.",
    ErrorCode.EVENT_ALREADY_CONFIRMED: "Event is already confirmed.",
    ErrorCode.EVENT_NOT_CONFIRMED: "Only confirmed events can be completed.",
    ErrorCode.EVENT_NOT_FOUND: "Event not found.",
}


class PlannerError(Exception):
    """Base class for every error the planner core raises."""

    def __init__(self, code: ErrorCode, detail: str = "") -> None:
        self.code = code
        message = _MESSAGES.get(code, "Planner error.")
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)


class InvalidRecurrenceRuleError(PlannerError):
    """Raised when a recurrence rule is malformed or incomplete."""


class InvalidSkipDayError(PlannerError):
    """Raised when skip days would rewrite the past."""

    def __init__(self, code: ErrorCode, dates: set[date]) -> None:
        self.dates = frozenset(dates)
        listed = ", ".join(d.isoformat() for d in sorted(self.dates))
        super().__init__(code, f"Invalid dates: {listed}")


class ConflictError(PlannerError):
    """Raised when a caller treats a non-empty conflict map as fatal."""

    def __init__(self, code: ErrorCode, conflicts: dict[date, set[int]]) -> None:
        self.conflicts = conflicts
        ids = sorted({eid for ids in conflicts.values() for eid in ids})
        super().__init__(code, f"Conflicting events: {ids}")


class InvalidEventStateError(PlannerError):
    """Raised when an event is missing fields for the requested transition."""


class InvalidTimeError(PlannerError):
    """Raised when start/end ordering is violated."""

    def __init__(self, start: object, end: object) -> None:
        super().__init__(ErrorCode.INVALID_EVENT_TIME, f"Got {start} -> {end}.")


class EventNotFoundError(PlannerError):
    def __init__(self, event_id: int) -> None:
        self.event_id = event_id
        super().__init__(ErrorCode.EVENT_NOT_FOUND, f"ID: {event_id}")
