"""Label lookup port — used to denormalize label names into bucket rows."""

from __future__ import annotations

from typing import Protocol

from event_planner.data.models import Label


class LabelLookup(Protocol):
    """Abstract label lookup used by core modules."""

    def get_label(self, label_id: int) -> Label: ...
