"""DueEstimate dataclass for a computed due point."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

# Due date used when an interval has no time component.
FAR_FUTURE = datetime(9999, 12, 31, tzinfo=timezone.utc)


@dataclass
class DueEstimate:
    """
    Remaining distance/time until a task is next due.

    ``remaining_km`` and ``due_km`` are None when the distance side is
    unbounded (no odometer data). ``remaining_days`` is clamped at 0;
    ``days_to_due`` keeps its sign.
    """

    remaining_km: Optional[float]
    remaining_days: int
    days_to_due: int
    is_overdue: bool
    due_date: datetime
    due_km: Optional[float] = None

    @property
    def distance_bounded(self) -> bool:
        return self.remaining_km is not None

    @property
    def time_bounded(self) -> bool:
        return self.due_date < FAR_FUTURE
