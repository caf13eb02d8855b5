"""Tests for event_planner.core.conflict_resolver — resolutions and skip days."""

import pytest
from datetime import date, datetime, time, timedelta, timezone
from unittest.mock import MagicMock

from event_planner.core.conflict_resolver import ConflictResolver
from event_planner.core.errors import (
    ConflictError,
    ErrorCode,
    EventNotFoundError,
    InvalidSkipDayError,
    PlannerError,
)
from event_planner.core.recurrence import build_rule_from_string
from event_planner.data.models import ConflictResolution, Event, RecurringEvent

MON = date(2025, 1, 6)
WED = date(2025, 1, 8)


def _series(series_id, owner_id=1, skip_days=None, **kwargs):
    start = kwargs.pop("start_date", date(2025, 1, 1))
    end = kwargs.pop("end_date", None)
    return RecurringEvent(
        id=series_id, owner_id=owner_id, name=f"Series {series_id}", label_id=1,
        start_time=time(9), end_time=time(10), start_date=start, end_date=end,
        recurrence_rule=build_rule_from_string("WEEKLY:MON,WED", start, end),
        skip_days=set(skip_days or ()), **kwargs,
    )


@pytest.fixture
def store():
    mock = MagicMock()
    mock.find_events.return_value = []
    mock.find_recurring_events.return_value = []
    return mock


@pytest.fixture
def resolver(store, fixed_clock):
    return ConflictResolver(store, fixed_clock)


# ---------------------------------------------------------------------------
# apply_resolutions
# ---------------------------------------------------------------------------


class TestApplyResolutions:
    def test_new_event_yields(self, resolver, store):
        new = _series(1)
        result = resolver.apply_resolutions(ConflictResolution(1, {MON: 1}), new)
        assert result == frozenset({MON})
        assert new.skip_days == {MON}
        store.save_recurring_event.assert_called_once_with(new)

    def test_existing_series_yields(self, resolver, store):
        new = _series(1)
        other = _series(2)
        store.find_by_id.return_value = other
        result = resolver.apply_resolutions(ConflictResolution(1, {MON: 2, WED: 1}), new)
        assert result == frozenset({WED})
        assert other.skip_days == {MON}
        store.find_by_id.assert_called_once_with(2)
        assert store.save_recurring_event.call_count == 2

    def test_idempotent(self, resolver):
        new = _series(1)
        resolution = ConflictResolution(1, {MON: 1, WED: 1})
        first = resolver.apply_resolutions(resolution, new)
        second = resolver.apply_resolutions(resolution, new)
        assert first == second == frozenset({MON, WED})

    def test_today_is_allowed(self, resolver):
        new = _series(1)
        today = date(2025, 1, 1)
        assert resolver.apply_resolutions(ConflictResolution(1, {today: 1}), new) == {today}

    def test_past_date_rejected_without_changes(self, resolver, store):
        new = _series(1, start_date=date(2024, 12, 1))
        past = date(2024, 12, 30)
        with pytest.raises(InvalidSkipDayError) as exc_info:
            resolver.apply_resolutions(ConflictResolution(1, {past: 1, MON: 1}), new)
        assert exc_info.value.code == ErrorCode.INVALID_SKIP_DAY_ADDITION
        assert exc_info.value.dates == frozenset({past})
        assert new.skip_days == set()
        store.save_recurring_event.assert_not_called()

    def test_past_in_owner_timezone(self, store, fixed_clock):
        # 12:00 UTC on Jan 1 is already Jan 2 in Kiritimati (UTC+14)
        resolver = ConflictResolver(store, fixed_clock)
        new = _series(1, timezone="Pacific/Kiritimati")
        with pytest.raises(InvalidSkipDayError):
            resolver.apply_resolutions(ConflictResolution(1, {date(2025, 1, 1): 1}), new)

    def test_single_event_cannot_yield(self, resolver, store):
        new = _series(1)
        store.find_by_id.return_value = Event(
            id=5, owner_id=1, name="Lunch",
            start_time=datetime(2025, 1, 6, 9, tzinfo=timezone.utc),
            end_time=datetime(2025, 1, 6, 10, tzinfo=timezone.utc),
            label_id=1,
        )
        with pytest.raises(PlannerError) as exc_info:
            resolver.apply_resolutions(ConflictResolution(1, {MON: 5}), new)
        assert exc_info.value.code == ErrorCode.INVALID_CONFLICT_RESOLUTION
        store.save_recurring_event.assert_not_called()

    def test_unknown_loser(self, resolver, store):
        store.find_by_id.return_value = None
        with pytest.raises(EventNotFoundError) as exc_info:
            resolver.apply_resolutions(ConflictResolution(1, {MON: 99}), _series(1))
        assert exc_info.value.code == ErrorCode.EVENT_NOT_FOUND

    def test_loser_owned_by_someone_else(self, resolver, store):
        store.find_by_id.return_value = _series(2, owner_id=42)
        with pytest.raises(EventNotFoundError):
            resolver.apply_resolutions(ConflictResolution(1, {MON: 2}), _series(1))

    def test_date_outside_loser_series(self, resolver, store):
        store.find_by_id.return_value = _series(2, end_date=date(2025, 1, 5))
        with pytest.raises(InvalidSkipDayError) as exc_info:
            resolver.apply_resolutions(ConflictResolution(1, {MON: 2}), _series(1))
        assert exc_info.value.dates == frozenset({MON})
        store.save_recurring_event.assert_not_called()

    def test_mismatched_event(self, resolver):
        with pytest.raises(ValueError):
            resolver.apply_resolutions(ConflictResolution(2, {MON: 2}), _series(1))


# ---------------------------------------------------------------------------
# add_skip_days / remove_skip_days
# ---------------------------------------------------------------------------


class TestAddSkipDays:
    def test_adds_and_saves(self, resolver, store):
        series = _series(1)
        assert resolver.add_skip_days(series, [MON, WED]) == {MON, WED}
        store.save_recurring_event.assert_called_once_with(series)

    def test_past_rejected(self, resolver):
        series = _series(1, start_date=date(2024, 12, 1))
        with pytest.raises(InvalidSkipDayError) as exc_info:
            resolver.add_skip_days(series, [date(2024, 12, 2)])
        assert exc_info.value.code == ErrorCode.INVALID_SKIP_DAY_ADDITION

    def test_clock_moves_today(self, resolver, fixed_clock):
        fixed_clock.advance(timedelta(days=7))
        with pytest.raises(InvalidSkipDayError):
            resolver.add_skip_days(_series(1), [MON])


class TestRemoveSkipDays:
    def test_removes_and_saves(self, resolver, store):
        series = _series(1, skip_days={MON, WED})
        assert resolver.remove_skip_days(series, [MON]) == {WED}
        store.save_recurring_event.assert_called_once_with(series)

    def test_past_rejected(self, resolver, store):
        past = date(2024, 12, 30)
        series = _series(1, start_date=date(2024, 12, 1), skip_days={past})
        with pytest.raises(InvalidSkipDayError) as exc_info:
            resolver.remove_skip_days(series, [past])
        assert exc_info.value.code == ErrorCode.INVALID_SKIP_DAY_REMOVAL
        assert series.skip_days == {past}
        store.save_recurring_event.assert_not_called()

    def test_conflict_blocks_removal(self, resolver, store):
        series = _series(1, skip_days={WED})
        store.find_events.return_value = [Event(
            id=7, owner_id=1, name="Dentist",
            start_time=datetime(2025, 1, 8, 9, 30, tzinfo=timezone.utc),
            end_time=datetime(2025, 1, 8, 10, 30, tzinfo=timezone.utc),
            label_id=1,
        )]
        with pytest.raises(ConflictError) as exc_info:
            resolver.remove_skip_days(series, [WED])
        assert exc_info.value.code == ErrorCode.RECURRING_EVENT_CONFLICT
        assert exc_info.value.conflicts == {WED: {7}}
        assert series.skip_days == {WED}

    def test_nothing_to_remove(self, resolver, store):
        series = _series(1, skip_days={WED})
        assert resolver.remove_skip_days(series, []) == {WED}
        store.save_recurring_event.assert_not_called()


class TestVisibleSkipDays:
    def test_hides_history(self, resolver):
        series = _series(1, start_date=date(2024, 12, 1), skip_days={date(2024, 12, 2), MON})
        assert resolver.visible_skip_days(series) == {MON}
