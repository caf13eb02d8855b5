"""
Event Planner — Label Time Buckets.

Keeps running per-label totals of completed minutes, bucketed by day,
ISO week and month in the owner's timezone.

The arithmetic is split from persistence: ``compute_deltas`` is a pure
function of an EventChangeContext, and ``TimeBucketAggregator`` applies the
resulting deltas to a BucketStore. Callers must serialize changes touching
the same (user, label) buckets; nothing here is atomic across rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import TYPE_CHECKING

from event_planner.core.timeutil import to_local, to_utc
from event_planner.data.models import (
    BucketKey,
    EventChangeContext,
    LabelTimeBucket,
    TimeBucketType,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from event_planner.ports.bucket_store_port import BucketStore
    from event_planner.ports.label_port import LabelLookup

logger = logging.getLogger(__name__)

DATE_YEAR_MULTIPLIER = 10000
DATE_MONTH_MULTIPLIER = 100


@dataclass(frozen=True)
class BucketDelta:
    """Signed minutes to add to one bucket."""

    user_id: int
    label_id: int
    key: BucketKey
    minutes: int


# ---------------------------------------------------------------------------
# Bucket keys
# ---------------------------------------------------------------------------


def day_key(day: date) -> BucketKey:
    value = day.year * DATE_YEAR_MULTIPLIER + day.month * DATE_MONTH_MULTIPLIER + day.day
    return BucketKey(TimeBucketType.DAY, day.year, value)


def week_key(day: date) -> BucketKey:
    iso_year, iso_week, _ = day.isocalendar()
    return BucketKey(TimeBucketType.WEEK, iso_year, iso_week)


def month_key(day: date) -> BucketKey:
    return BucketKey(TimeBucketType.MONTH, day.year, day.month)


def bucket_keys(day: date) -> tuple[BucketKey, BucketKey, BucketKey]:
    """(day, week, month) keys for a local calendar date."""
    return day_key(day), week_key(day), month_key(day)


def split_by_day(
    start: datetime, total_minutes: int, tz_name: str,
) -> list[tuple[date, int]]:
    """Split [start, start + minutes) at local midnights.

    Returns (local date, minutes) slices whose minutes sum exactly to
    ``total_minutes``.
    """
    if total_minutes <= 0:
        return []
    cursor = start.astimezone(timezone.utc)
    end = cursor + timedelta(minutes=total_minutes)

    slices: list[tuple[date, int]] = []
    used = 0
    while cursor < end:
        local_day = to_local(cursor, tz_name).date()
        next_midnight = to_utc(local_day + timedelta(days=1), time.min, tz_name)
        segment_end = min(next_midnight, end)
        if segment_end >= end:
            minutes = total_minutes - used
        else:
            minutes = int((segment_end - cursor).total_seconds() // 60)
        if minutes > 0:
            slices.append((local_day, minutes))
            used += minutes
        cursor = segment_end
    return slices


# ---------------------------------------------------------------------------
# Deltas
# ---------------------------------------------------------------------------


def _accumulate(
    totals: dict[tuple[int, BucketKey], int],
    label_id: int | None,
    start: datetime | None,
    minutes: int | None,
    tz_name: str,
    direction: int,
) -> None:
    if label_id is None or start is None or minutes is None:
        raise ValueError("A completed event change needs a label, a start and a duration")
    if minutes < 0:
        raise ValueError(f"Negative duration: {minutes}")
    for local_day, slice_minutes in split_by_day(start, minutes, tz_name):
        for key in bucket_keys(local_day):
            totals[(label_id, key)] = totals.get((label_id, key), 0) + direction * slice_minutes


def compute_deltas(context: EventChangeContext) -> list[BucketDelta]:
    """Net bucket changes implied by an event change.

    If the event was completed, its old minutes leave the old label's
    buckets; if it is completed now, its new minutes join the new label's
    buckets. Changes that cancel out on a bucket are dropped.
    """
    totals: dict[tuple[int, BucketKey], int] = {}
    if context.was_completed:
        _accumulate(
            totals, context.old_label_id, context.old_start,
            context.old_duration_minutes, context.timezone, -1,
        )
    if context.is_now_completed:
        _accumulate(
            totals, context.new_label_id, context.new_start,
            context.new_duration_minutes, context.timezone, +1,
        )
    return [
        BucketDelta(context.user_id, label_id, key, minutes)
        for (label_id, key), minutes in totals.items()
        if minutes != 0
    ]


class TimeBucketAggregator:
    """Applies event-change deltas to stored bucket totals."""

    def __init__(self, buckets: BucketStore, labels: LabelLookup) -> None:
        self._buckets = buckets
        self._labels = labels

    def apply_change(self, context: EventChangeContext) -> list[BucketDelta]:
        """Adjust bucket totals for one event mutation; returns what was applied."""
        logger.debug(
            "Processing event change: user=%d, wasCompleted=%s, isNowCompleted=%s",
            context.user_id, context.was_completed, context.is_now_completed,
        )
        deltas = compute_deltas(context)
        label_names: dict[int, str] = {}
        for delta in deltas:
            self._apply(delta, label_names)
        if deltas:
            logger.info("Updated %d time bucket(s) for user %d", len(deltas), context.user_id)
        return deltas

    def _label_name(self, label_id: int, cache: dict[int, str]) -> str:
        if label_id not in cache:
            cache[label_id] = self._labels.get_label(label_id).name
        return cache[label_id]

    def _apply(self, delta: BucketDelta, label_names: dict[int, str]) -> None:
        bucket = self._buckets.get_bucket(delta.user_id, delta.label_id, delta.key)
        if bucket is None:
            if delta.minutes < 0:
                logger.warning(
                    "No %s bucket %d/%d for label %d to subtract %d min from; ignoring",
                    delta.key.bucket_type.value, delta.key.year, delta.key.value,
                    delta.label_id, -delta.minutes,
                )
                return
            bucket = LabelTimeBucket(
                user_id=delta.user_id,
                label_id=delta.label_id,
                label_name=self._label_name(delta.label_id, label_names),
                bucket_type=delta.key.bucket_type,
                bucket_year=delta.key.year,
                bucket_value=delta.key.value,
            )

        total = bucket.duration_minutes + delta.minutes
        if total < 0:
            logger.warning(
                "Bucket %s %d/%d for label %d would drop to %d min; clamping to 0",
                delta.key.bucket_type.value, delta.key.year, delta.key.value,
                delta.label_id, total,
            )
            total = 0
        bucket.duration_minutes = total
        self._buckets.save_bucket(bucket)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@dataclass
class TimeStats:
    """Completed minutes across a set of labels for the current periods."""

    minutes_today: int = 0
    minutes_this_week: int = 0
    minutes_this_month: int = 0
    minutes_last_week: int = 0
    minutes_last_month: int = 0
    total_minutes_all_time: int = 0


def _sum_bucket(
    buckets: BucketStore, user_id: int, label_ids: list[int], key: BucketKey,
) -> int:
    rows = buckets.find_buckets(user_id, label_ids, key.bucket_type, key.year, [key.value])
    return sum(b.duration_minutes for b in rows)


def compute_time_stats(
    buckets: BucketStore, user_id: int, label_ids: Iterable[int], today: date,
) -> TimeStats:
    """Totals for today, this/last ISO week, this/last month and all time.

    ``today`` must already be the owner's local date. All-time totals are
    summed from DAY buckets so nothing is counted three times.
    """
    ids = sorted(set(label_ids))
    if not ids:
        return TimeStats()

    last_month_day = today.replace(day=1) - timedelta(days=1)
    stats = TimeStats(
        minutes_today=_sum_bucket(buckets, user_id, ids, day_key(today)),
        minutes_this_week=_sum_bucket(buckets, user_id, ids, week_key(today)),
        minutes_this_month=_sum_bucket(buckets, user_id, ids, month_key(today)),
        minutes_last_week=_sum_bucket(buckets, user_id, ids, week_key(today - timedelta(weeks=1))),
        minutes_last_month=_sum_bucket(buckets, user_id, ids, month_key(last_month_day)),
        total_minutes_all_time=sum(
            b.duration_minutes
            for b in buckets.find_buckets(user_id, ids, TimeBucketType.DAY)
        ),
    )
    logger.debug("Computed time stats for user %d over %d label(s): %s", user_id, len(ids), stats)
    return stats
