"""Tests for event_planner.core.planner_service — end-to-end flows on SQLite."""

import pytest
from datetime import date, datetime, time, timezone

from event_planner.core.errors import (
    ConflictError,
    ErrorCode,
    EventNotFoundError,
    InvalidEventStateError,
    InvalidRecurrenceRuleError,
    InvalidSkipDayError,
)
from event_planner.core.patching import EventUpdate, RecurringEventUpdate, SetTo
from event_planner.data.models import ConflictResolution

OWNER = 1
MON = date(2025, 1, 6)
WED = date(2025, 1, 8)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def standup(planner, work_label):
    """Weekly Mon/Wed 09:00-10:00 UTC from 2025-01-06, open-ended."""
    result = planner.create_recurring_event(
        OWNER, "Standup", work_label.id, time(9), time(10), MON,
        recurrence_rule="WEEKLY:MON,WED", timezone="UTC",
    )
    return result.event


# ---------------------------------------------------------------------------
# Recurring events
# ---------------------------------------------------------------------------


class TestCreateRecurringEvent:
    def test_no_conflicts(self, planner, work_label):
        result = planner.create_recurring_event(
            OWNER, "Standup", work_label.id, time(9), time(10), MON,
            recurrence_rule="WEEKLY:MON,WED",
        )
        assert result.event.id is not None
        assert result.conflicts == {}
        assert result.has_conflicts is False
        assert result.event.recurrence_rule.summary == "Every Monday and Wednesday from January 6, 2025 forever"

    def test_reports_conflicts_and_still_stores(self, planner, event_db, work_label, standup):
        result = planner.create_recurring_event(
            OWNER, "Sprint week", work_label.id, time(9, 30), time(10, 30), MON,
            end_date=date(2025, 1, 12), recurrence_rule="DAILY:",
        )
        assert result.conflicts == {MON: {standup.id}, WED: {standup.id}}
        assert event_db.get_recurring_event(result.event.id) is not None

    def test_invalid_rule(self, planner, work_label):
        with pytest.raises(InvalidRecurrenceRuleError) as exc_info:
            planner.create_recurring_event(
                OWNER, "Bad", work_label.id, time(9), time(10), MON, recurrence_rule="MONTHLY:5:TUE",
            )
        assert exc_info.value.code == ErrorCode.MONTHLY_INVALID_ORDINAL

    def test_confirmed_requires_fields(self, planner):
        with pytest.raises(InvalidEventStateError) as exc_info:
            planner.create_recurring_event(
                OWNER, "No label", None, time(9), time(10), MON, recurrence_rule="DAILY:",
            )
        assert exc_info.value.code == ErrorCode.MISSING_EVENT_LABEL


class TestDraftLifecycle:
    def test_draft_then_confirm(self, planner, work_label, standup):
        draft = planner.create_recurring_event(
            OWNER, None, work_label.id, time(9), time(10), MON,
            recurrence_rule="WEEKLY:MON", unconfirmed=True,
        )
        assert draft.conflicts == {}

        with pytest.raises(InvalidEventStateError) as exc_info:
            planner.confirm_recurring_event(OWNER, draft.event.id)
        assert exc_info.value.code == ErrorCode.MISSING_EVENT_NAME

        planner.update_recurring_event(
            OWNER, draft.event.id, RecurringEventUpdate(name=SetTo("Planning")),
        )
        confirmed = planner.confirm_recurring_event(OWNER, draft.event.id)
        assert confirmed.event.unconfirmed is False
        assert MON in confirmed.conflicts

        with pytest.raises(InvalidEventStateError) as exc_info:
            planner.confirm_recurring_event(OWNER, draft.event.id)
        assert exc_info.value.code == ErrorCode.EVENT_ALREADY_CONFIRMED


class TestResolveConflicts:
    def test_each_side_yields_once(self, planner, event_db, work_label, standup):
        sprint = planner.create_recurring_event(
            OWNER, "Sprint week", work_label.id, time(9, 30), time(10, 30), MON,
            end_date=date(2025, 1, 12), recurrence_rule="DAILY:",
        ).event

        skip = planner.resolve_conflicts(
            OWNER, ConflictResolution(sprint.id, {MON: sprint.id, WED: standup.id}),
        )
        assert skip == {MON}
        assert event_db.get_recurring_event(standup.id).skip_days == {WED}

        events = planner.virtual_events(OWNER, _utc(2025, 1, 6), _utc(2025, 1, 13))
        by_series = {}
        for ev in events:
            by_series.setdefault(ev.recurring_event_id, []).append(ev.start_time.date())
        assert by_series[standup.id] == [MON]
        assert MON not in by_series[sprint.id]
        assert len(by_series[sprint.id]) == 6

    def test_past_date_rejected(self, planner, work_label):
        early = planner.create_recurring_event(
            OWNER, "Early", work_label.id, time(9), time(10), date(2024, 12, 1),
            recurrence_rule="DAILY:",
        ).event
        with pytest.raises(InvalidSkipDayError) as exc_info:
            planner.resolve_conflicts(OWNER, ConflictResolution(early.id, {date(2024, 12, 5): early.id}))
        assert exc_info.value.code == ErrorCode.INVALID_SKIP_DAY_ADDITION

    def test_unknown_series(self, planner):
        with pytest.raises(EventNotFoundError):
            planner.resolve_conflicts(OWNER, ConflictResolution(999, {MON: 999}))


class TestSkipDays:
    def test_removal_blocked_by_new_event(self, planner, work_label, standup):
        planner.add_skip_days(OWNER, standup.id, [WED])
        planner.create_event(OWNER, "Dentist", _utc(2025, 1, 8, 9, 30), _utc(2025, 1, 8, 10, 30), work_label.id)
        with pytest.raises(ConflictError) as exc_info:
            planner.remove_skip_days(OWNER, standup.id, [WED])
        assert exc_info.value.code == ErrorCode.RECURRING_EVENT_CONFLICT

    def test_deleted_series_stops_generating(self, planner, standup):
        assert planner.delete_recurring_event(OWNER, standup.id) is True
        assert planner.virtual_events(OWNER, _utc(2025, 1, 6), _utc(2025, 1, 13)) == []

    def test_upcoming_skip_days(self, planner, standup):
        planner.add_skip_days(OWNER, standup.id, [WED, date(2025, 1, 13)])
        assert planner.upcoming_skip_days(OWNER, standup.id) == {WED, date(2025, 1, 13)}


# ---------------------------------------------------------------------------
# Single events
# ---------------------------------------------------------------------------


class TestCreateEvent:
    def test_conflict_with_series(self, planner, work_label, standup):
        with pytest.raises(ConflictError) as exc_info:
            planner.create_event(OWNER, "Dentist", _utc(2025, 1, 8, 9, 30), _utc(2025, 1, 8, 10, 30), work_label.id)
        assert exc_info.value.code == ErrorCode.EVENT_CONFLICT
        assert exc_info.value.conflicts == {WED: {standup.id}}

    def test_free_slot(self, planner, work_label, standup):
        event = planner.create_event(
            OWNER, "Dentist", _utc(2025, 1, 7, 9, 30), _utc(2025, 1, 7, 10, 30), work_label.id,
        )
        assert event.id is not None
        assert event.duration_minutes == 60

    def test_draft_skips_conflict_check(self, planner, work_label, standup):
        draft = planner.create_event(
            OWNER, None, _utc(2025, 1, 8, 9, 30), _utc(2025, 1, 8, 10, 30), None, unconfirmed=True,
        )
        assert draft.unconfirmed is True
        with pytest.raises(InvalidEventStateError):
            planner.confirm_event(OWNER, draft.id)

    def test_update_into_conflict_is_rejected(self, planner, event_db, work_label):
        planner.create_event(OWNER, "A", _utc(2025, 1, 2, 9), _utc(2025, 1, 2, 10), work_label.id)
        b = planner.create_event(OWNER, "B", _utc(2025, 1, 2, 11), _utc(2025, 1, 2, 12), work_label.id)
        with pytest.raises(ConflictError):
            planner.update_event(OWNER, b.id, EventUpdate(start_time=SetTo(_utc(2025, 1, 2, 9, 30))))
        assert event_db.get_event(b.id).start_time == _utc(2025, 1, 2, 11)

    def test_other_owner_cannot_see(self, planner, work_label):
        event = planner.create_event(OWNER, "A", _utc(2025, 1, 2, 9), _utc(2025, 1, 2, 10), work_label.id)
        with pytest.raises(EventNotFoundError):
            planner.complete_event(2, event.id)


# ---------------------------------------------------------------------------
# Completion and time stats
# ---------------------------------------------------------------------------


class TestCompletion:
    def _today_event(self, planner, label_id):
        return planner.create_event(OWNER, "Deep work", _utc(2025, 1, 1, 9), _utc(2025, 1, 1, 10, 30), label_id)

    def test_complete_and_uncomplete(self, planner, work_label):
        event = self._today_event(planner, work_label.id)
        planner.complete_event(OWNER, event.id)
        assert planner.time_stats(OWNER, [work_label.id]).minutes_today == 90

        planner.complete_event(OWNER, event.id)
        assert planner.time_stats(OWNER, [work_label.id]).minutes_today == 90

        planner.uncomplete_event(OWNER, event.id)
        assert planner.time_stats(OWNER, [work_label.id]).minutes_today == 0

    def test_label_change_moves_minutes(self, planner, work_label, gym_label):
        event = self._today_event(planner, work_label.id)
        planner.complete_event(OWNER, event.id)
        planner.update_event(OWNER, event.id, EventUpdate(label_id=SetTo(gym_label.id)))
        assert planner.time_stats(OWNER, [work_label.id]).minutes_today == 0
        assert planner.time_stats(OWNER, [gym_label.id]).minutes_today == 90

    def test_time_change_on_completed_event(self, planner, work_label):
        event = self._today_event(planner, work_label.id)
        planner.complete_event(OWNER, event.id)
        planner.update_event(OWNER, event.id, EventUpdate(end_time=SetTo(_utc(2025, 1, 1, 9, 45))))
        assert planner.time_stats(OWNER, [work_label.id]).minutes_this_month == 45

    def test_delete_withdraws_minutes(self, planner, work_label):
        event = self._today_event(planner, work_label.id)
        planner.complete_event(OWNER, event.id)
        assert planner.delete_event(OWNER, event.id) is True
        stats = planner.time_stats(OWNER, [work_label.id])
        assert stats.minutes_today == 0
        assert stats.total_minutes_all_time == 0

    def test_draft_cannot_be_completed(self, planner, work_label):
        draft = planner.create_event(
            OWNER, "Maybe", _utc(2025, 1, 1, 9), _utc(2025, 1, 1, 10), work_label.id, unconfirmed=True,
        )
        with pytest.raises(InvalidEventStateError) as exc_info:
            planner.complete_event(OWNER, draft.id)
        assert exc_info.value.code == ErrorCode.EVENT_NOT_CONFIRMED


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


class TestViews:
    def test_dates_with_events(self, planner, work_label):
        planner.create_recurring_event(
            OWNER, "Review", work_label.id, time(15), time(16), MON, recurrence_rule="WEEKLY:MON",
        )
        planner.create_event(OWNER, "Lunch", _utc(2025, 1, 2, 12), _utc(2025, 1, 2, 13), work_label.id)
        assert planner.dates_with_events(OWNER, 2025, 1) == [
            date(2025, 1, 2), MON, date(2025, 1, 13), date(2025, 1, 20), date(2025, 1, 27),
        ]

    def test_events_between_merges_stored_and_virtual(self, planner, work_label, standup):
        lunch = planner.create_event(OWNER, "Lunch", _utc(2025, 1, 6, 12), _utc(2025, 1, 6, 13), work_label.id)
        events = planner.events_between(OWNER, _utc(2025, 1, 6), _utc(2025, 1, 7))
        assert [(e.id, e.is_virtual) for e in events] == [(None, True), (lunch.id, False)]
