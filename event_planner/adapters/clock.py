"""Clock adapters — implement the Clock port.

SystemClock reads the real time; FixedClock returns whatever it was set to
and is what tests use to pin "today".
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, moment: datetime) -> None:
        self.set(moment)

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("FixedClock needs an aware datetime")
        self._moment = moment.astimezone(timezone.utc)

    def advance(self, delta: timedelta) -> None:
        self._moment += delta
