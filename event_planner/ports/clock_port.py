"""Clock port — the planner's only source of "now".

Core modules depend on this protocol so tests can pin the date.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    """Returns the current instant as an aware UTC datetime."""

    def now(self) -> datetime: ...
