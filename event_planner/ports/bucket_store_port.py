"""Bucket store port — persistence for per-label time buckets."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from event_planner.data.models import BucketKey, LabelTimeBucket, TimeBucketType


class BucketStore(Protocol):
    """Abstract storage for LabelTimeBucket rows."""

    def get_bucket(
        self, user_id: int, label_id: int, key: BucketKey
    ) -> LabelTimeBucket | None: ...

    def save_bucket(self, bucket: LabelTimeBucket) -> LabelTimeBucket: ...

    def find_buckets(
        self,
        user_id: int,
        label_ids: Iterable[int],
        bucket_type: TimeBucketType,
        year: int | None = None,
        values: Iterable[int] | None = None,
    ) -> list[LabelTimeBucket]: ...
