"""Shared test fixtures and configuration.

Sets up environment variables before event_planner.config is imported,
and provides temp-file SQLite stores plus a pinned clock.
"""

import os

# Patch env vars BEFORE any event_planner imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("DEFAULT_TIMEZONE", "UTC")
os.environ.setdefault("CONFLICT_HORIZON_DAYS", "730")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
from datetime import datetime, timezone


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_planner.db")


@pytest.fixture
def event_db(tmp_db_path):
    """Return an EventDB instance backed by a temp file."""
    from event_planner.data.db import EventDB
    return EventDB(db_path=tmp_db_path)


@pytest.fixture
def label_db(tmp_db_path):
    from event_planner.data.db import LabelDB
    return LabelDB(db_path=tmp_db_path)


@pytest.fixture
def bucket_db(tmp_db_path):
    from event_planner.data.db import BucketDB
    return BucketDB(db_path=tmp_db_path)


@pytest.fixture
def fixed_clock():
    """A clock pinned to 2025-01-01 12:00 UTC (a Wednesday)."""
    from event_planner.adapters.clock import FixedClock
    return FixedClock(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def work_label(label_db):
    return label_db.add_label(owner_id=1, name="Work")


@pytest.fixture
def gym_label(label_db):
    return label_db.add_label(owner_id=1, name="Gym")


@pytest.fixture
def planner(event_db, bucket_db, label_db, fixed_clock):
    """A PlannerService wired to the temp SQLite stores."""
    from event_planner.core.planner_service import PlannerService
    return PlannerService(event_db, bucket_db, label_db, fixed_clock)
