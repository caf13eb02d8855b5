"""
Event Planner — SQLite stores.

Reference implementations of the EventStore, BucketStore and LabelLookup
ports. Events and recurring events draw their ids from one shared sequence
table, so an id alone identifies either kind.

Datetimes are stored as UTC ISO-8601 strings with second precision, which
keeps lexicographic order equal to chronological order.
"""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
from collections.abc import Iterable
from datetime import date, datetime, time, timezone
from pathlib import Path

from event_planner.core.recurrence import parse_rule_string, validate
from event_planner.data.models import (
    BucketKey,
    Event,
    Label,
    LabelTimeBucket,
    RecurrenceRule,
    RecurringEvent,
    TimeBucketType,
)

logger = logging.getLogger(__name__)


def _dt_to_db(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt_from_db(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _date_from_db(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _time_from_db(value: str | None) -> time | None:
    return time.fromisoformat(value) if value else None


def _iso(value: date | time | None) -> str | None:
    return value.isoformat() if value is not None else None


def _rule_from_db(raw: str | None, interval: int, summary: str | None) -> RecurrenceRule | None:
    if not raw:
        return None
    rule = validate(parse_rule_string(raw, interval=interval))
    return dataclasses.replace(rule, summary=summary or "")


class EventDB:
    """SQLite-backed storage for events and recurring events."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from event_planner.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the event tables if they don't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS entity_seq (
                    id   INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id                 INTEGER PRIMARY KEY,
                    owner_id           INTEGER NOT NULL,
                    name               TEXT,
                    start_time         TEXT,
                    end_time           TEXT,
                    label_id           INTEGER,
                    timezone           TEXT    NOT NULL DEFAULT 'UTC',
                    start_timezone     TEXT,
                    end_timezone       TEXT,
                    description        TEXT,
                    completed          INTEGER NOT NULL DEFAULT 0,
                    unconfirmed        INTEGER NOT NULL DEFAULT 0,
                    recurring_event_id INTEGER
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recurring_events (
                    id                  INTEGER PRIMARY KEY,
                    owner_id            INTEGER NOT NULL,
                    name                TEXT,
                    label_id            INTEGER,
                    start_time          TEXT,
                    end_time            TEXT,
                    start_date          TEXT,
                    end_date            TEXT,
                    recurrence_rule     TEXT,
                    recurrence_interval INTEGER NOT NULL DEFAULT 1,
                    recurrence_summary  TEXT,
                    unconfirmed         INTEGER NOT NULL DEFAULT 0,
                    timezone            TEXT    NOT NULL DEFAULT 'UTC',
                    description         TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recurring_event_skip_days (
                    recurring_event_id INTEGER NOT NULL,
                    skip_day           TEXT    NOT NULL,
                    PRIMARY KEY (recurring_event_id, skip_day)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_owner_start ON events (owner_id, start_time)"
            )
        logger.debug("Event tables initialized at %s", self._db_path)

    @staticmethod
    def _next_id(conn: sqlite3.Connection, kind: str) -> int:
        cursor = conn.execute("INSERT INTO entity_seq (kind) VALUES (?)", (kind,))
        return cursor.lastrowid

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row["name"],
            start_time=_dt_from_db(row["start_time"]),
            end_time=_dt_from_db(row["end_time"]),
            label_id=row["label_id"],
            timezone=row["timezone"],
            start_timezone=row["start_timezone"],
            end_timezone=row["end_timezone"],
            description=row["description"],
            completed=bool(row["completed"]),
            unconfirmed=bool(row["unconfirmed"]),
            recurring_event_id=row["recurring_event_id"],
        )

    @staticmethod
    def _row_to_recurring_event(row: sqlite3.Row, skip_days: set[date]) -> RecurringEvent:
        return RecurringEvent(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row["name"],
            label_id=row["label_id"],
            start_time=_time_from_db(row["start_time"]),
            end_time=_time_from_db(row["end_time"]),
            start_date=_date_from_db(row["start_date"]),
            end_date=_date_from_db(row["end_date"]),
            recurrence_rule=_rule_from_db(
                row["recurrence_rule"], row["recurrence_interval"], row["recurrence_summary"],
            ),
            skip_days=skip_days,
            unconfirmed=bool(row["unconfirmed"]),
            timezone=row["timezone"],
            description=row["description"],
        )

    @staticmethod
    def _skip_days(conn: sqlite3.Connection, recurring_event_id: int) -> set[date]:
        rows = conn.execute(
            "SELECT skip_day FROM recurring_event_skip_days WHERE recurring_event_id = ?",
            (recurring_event_id,),
        ).fetchall()
        return {date.fromisoformat(r["skip_day"]) for r in rows}

    # -- events ---------------------------------------------------------------

    def get_event(self, event_id: int) -> Event | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    def find_events(self, owner_id: int, start: datetime, end: datetime) -> list[Event]:
        """Events of ``owner_id`` overlapping [start, end), by start time."""
        lo, hi = _dt_to_db(start), _dt_to_db(end)
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM events
                WHERE owner_id = ?
                  AND start_time IS NOT NULL
                  AND start_time < ?
                  AND (end_time > ? OR (end_time IS NULL AND start_time >= ?))
                ORDER BY start_time
                """,
                (owner_id, hi, lo, lo),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    def save_event(self, event: Event) -> Event:
        """Insert a new event (``id`` None) or overwrite an existing one."""
        values = (
            event.owner_id, event.name, _dt_to_db(event.start_time), _dt_to_db(event.end_time),
            event.label_id, event.timezone, event.start_timezone, event.end_timezone,
            event.description, int(event.completed), int(event.unconfirmed),
            event.recurring_event_id,
        )
        with self._connect() as conn:
            if event.id is None:
                event_id = self._next_id(conn, "event")
                conn.execute(
                    """
                    INSERT INTO events
                        (owner_id, name, start_time, end_time, label_id, timezone,
                         start_timezone, end_timezone, description, completed,
                         unconfirmed, recurring_event_id, id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (*values, event_id),
                )
                logger.info("Event added: #%d '%s'", event_id, event.name)
                return dataclasses.replace(event, id=event_id)

            cursor = conn.execute(
                """
                UPDATE events SET
                    owner_id = ?, name = ?, start_time = ?, end_time = ?, label_id = ?,
                    timezone = ?, start_timezone = ?, end_timezone = ?, description = ?,
                    completed = ?, unconfirmed = ?, recurring_event_id = ?
                WHERE id = ?
                """,
                (*values, event.id),
            )
            if cursor.rowcount == 0:
                raise ValueError(f"Event {event.id} not found")
        logger.debug("Event #%d saved", event.id)
        return event

    def delete_event(self, event_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM events WHERE id = ?", (event_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Event #%d deleted", event_id)
        return deleted

    # -- recurring events ----------------------------------------------------

    def get_recurring_event(self, recurring_event_id: int) -> RecurringEvent | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM recurring_events WHERE id = ?", (recurring_event_id,)
            ).fetchone()
            if row is None:
                return None
            skip_days = self._skip_days(conn, recurring_event_id)
        return self._row_to_recurring_event(row, skip_days)

    def find_recurring_events(
        self, owner_id: int, start_date: date, end_date: date | None,
    ) -> list[RecurringEvent]:
        """Recurring events of ``owner_id`` whose date range meets [start_date, end_date]."""
        query = (
            "SELECT * FROM recurring_events WHERE owner_id = ?"
            " AND (end_date IS NULL OR end_date >= ?)"
        )
        params: list = [owner_id, start_date.isoformat()]
        if end_date is not None:
            query += " AND (start_date IS NULL OR start_date <= ?)"
            params.append(end_date.isoformat())
        query += " ORDER BY id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
            return [
                self._row_to_recurring_event(r, self._skip_days(conn, r["id"]))
                for r in rows
            ]

    def save_recurring_event(self, recurring_event: RecurringEvent) -> RecurringEvent:
        """Insert or overwrite a recurring event together with its skip days."""
        re = recurring_event
        rule = re.recurrence_rule
        values = (
            re.owner_id, re.name, re.label_id, _iso(re.start_time), _iso(re.end_time),
            _iso(re.start_date), _iso(re.end_date),
            rule.to_rule_string() if rule else None,
            rule.interval if rule else 1,
            rule.summary if rule else None,
            int(re.unconfirmed), re.timezone, re.description,
        )
        with self._connect() as conn:
            if re.id is None:
                re_id = self._next_id(conn, "recurring_event")
                conn.execute(
                    """
                    INSERT INTO recurring_events
                        (owner_id, name, label_id, start_time, end_time, start_date,
                         end_date, recurrence_rule, recurrence_interval,
                         recurrence_summary, unconfirmed, timezone, description, id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (*values, re_id),
                )
                saved = dataclasses.replace(re, id=re_id, skip_days=set(re.skip_days))
                logger.info("Recurring event added: #%d '%s'", re_id, re.name)
            else:
                cursor = conn.execute(
                    """
                    UPDATE recurring_events SET
                        owner_id = ?, name = ?, label_id = ?, start_time = ?, end_time = ?,
                        start_date = ?, end_date = ?, recurrence_rule = ?,
                        recurrence_interval = ?, recurrence_summary = ?, unconfirmed = ?,
                        timezone = ?, description = ?
                    WHERE id = ?
                    """,
                    (*values, re.id),
                )
                if cursor.rowcount == 0:
                    raise ValueError(f"Recurring event {re.id} not found")
                saved = re

            conn.execute(
                "DELETE FROM recurring_event_skip_days WHERE recurring_event_id = ?",
                (saved.id,),
            )
            conn.executemany(
                "INSERT INTO recurring_event_skip_days (recurring_event_id, skip_day) VALUES (?, ?)",
                [(saved.id, d.isoformat()) for d in sorted(saved.skip_days)],
            )
        logger.debug("Recurring event #%d saved with %d skip day(s)", saved.id, len(saved.skip_days))
        return saved

    def delete_recurring_event(self, recurring_event_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM recurring_events WHERE id = ?", (recurring_event_id,)
            )
            deleted = cursor.rowcount > 0
            conn.execute(
                "DELETE FROM recurring_event_skip_days WHERE recurring_event_id = ?",
                (recurring_event_id,),
            )
        if deleted:
            logger.info("Recurring event #%d deleted", recurring_event_id)
        return deleted

    def find_by_id(self, item_id: int) -> Event | RecurringEvent | None:
        """Look up either kind by its shared id."""
        return self.get_event(item_id) or self.get_recurring_event(item_id)


class LabelDB:
    """SQLite-backed storage for user labels."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from event_planner.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS labels (
                    id       INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id INTEGER NOT NULL,
                    name     TEXT    NOT NULL
                )
            """)
        logger.debug("Labels table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_label(row: sqlite3.Row) -> Label:
        return Label(id=row["id"], owner_id=row["owner_id"], name=row["name"])

    def add_label(self, owner_id: int, name: str) -> Label:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO labels (owner_id, name) VALUES (?, ?)", (owner_id, name),
            )
            label_id = cursor.lastrowid
        logger.info("Label added: #%d '%s'", label_id, name)
        return Label(id=label_id, owner_id=owner_id, name=name)

    def get_label(self, label_id: int) -> Label:
        """Fetch a label; raises ValueError if it does not exist."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM labels WHERE id = ?", (label_id,)).fetchone()
        if row is None:
            raise ValueError(f"Label {label_id} not found")
        return self._row_to_label(row)

    def list_labels(self, owner_id: int) -> list[Label]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM labels WHERE owner_id = ? ORDER BY name", (owner_id,)
            ).fetchall()
        return [self._row_to_label(r) for r in rows]


class BucketDB:
    """SQLite-backed storage for per-label time buckets."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from event_planner.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS label_time_buckets (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id          INTEGER NOT NULL,
                    label_id         INTEGER NOT NULL,
                    label_name       TEXT    NOT NULL,
                    bucket_type      TEXT    NOT NULL,
                    bucket_year      INTEGER NOT NULL,
                    bucket_value     INTEGER NOT NULL,
                    duration_minutes INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (user_id, label_id, bucket_type, bucket_year, bucket_value)
                )
            """)
        logger.debug("Time bucket table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_bucket(row: sqlite3.Row) -> LabelTimeBucket:
        return LabelTimeBucket(
            id=row["id"],
            user_id=row["user_id"],
            label_id=row["label_id"],
            label_name=row["label_name"],
            bucket_type=TimeBucketType(row["bucket_type"]),
            bucket_year=row["bucket_year"],
            bucket_value=row["bucket_value"],
            duration_minutes=row["duration_minutes"],
        )

    def get_bucket(self, user_id: int, label_id: int, key: BucketKey) -> LabelTimeBucket | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM label_time_buckets
                WHERE user_id = ? AND label_id = ?
                  AND bucket_type = ? AND bucket_year = ? AND bucket_value = ?
                """,
                (user_id, label_id, key.bucket_type.value, key.year, key.value),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_bucket(row)

    def save_bucket(self, bucket: LabelTimeBucket) -> LabelTimeBucket:
        """Insert on first save, otherwise overwrite the stored total."""
        with self._connect() as conn:
            if bucket.id is None:
                cursor = conn.execute(
                    """
                    INSERT INTO label_time_buckets
                        (user_id, label_id, label_name, bucket_type, bucket_year,
                         bucket_value, duration_minutes)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        bucket.user_id, bucket.label_id, bucket.label_name,
                        bucket.bucket_type.value, bucket.bucket_year, bucket.bucket_value,
                        bucket.duration_minutes,
                    ),
                )
                bucket.id = cursor.lastrowid
            else:
                conn.execute(
                    "UPDATE label_time_buckets SET duration_minutes = ?, label_name = ? WHERE id = ?",
                    (bucket.duration_minutes, bucket.label_name, bucket.id),
                )
        logger.debug(
            "Bucket %s %d/%d for label %d = %d min",
            bucket.bucket_type.value, bucket.bucket_year, bucket.bucket_value,
            bucket.label_id, bucket.duration_minutes,
        )
        return bucket

    def find_buckets(
        self,
        user_id: int,
        label_ids: Iterable[int],
        bucket_type: TimeBucketType,
        year: int | None = None,
        values: Iterable[int] | None = None,
    ) -> list[LabelTimeBucket]:
        ids = list(label_ids)
        if not ids:
            return []
        query = (
            "SELECT * FROM label_time_buckets WHERE user_id = ? AND bucket_type = ?"
            f" AND label_id IN ({','.join('?' * len(ids))})"
        )
        params: list = [user_id, bucket_type.value, *ids]
        if year is not None:
            query += " AND bucket_year = ?"
            params.append(year)
        if values is not None:
            vals = list(values)
            if not vals:
                return []
            query += f" AND bucket_value IN ({','.join('?' * len(vals))})"
            params.extend(vals)
        query += " ORDER BY bucket_year, bucket_value, label_id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_bucket(r) for r in rows]
