"""Reminder record, its state machine, and read-only due helpers."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional

from .calculations import (
    add_months,
    days_between,
    estimate_from_due_points,
    urgency_score,
)
from .catalog import Interval
from .due_estimate import DueEstimate, FAR_FUTURE
from .errors import ConflictError, ValidationError
from .status import Priority, ReminderKind, ReminderStatus

SOON_DAYS = 7
SOON_KM = 1000

# Legal status moves. DONE and DISMISSED are terminal.
TRANSITIONS: Dict[ReminderStatus, FrozenSet[ReminderStatus]] = {
    ReminderStatus.ACTIVE: frozenset(
        {ReminderStatus.SNOOZED, ReminderStatus.DONE, ReminderStatus.DISMISSED}
    ),
    ReminderStatus.SNOOZED: frozenset(
        {ReminderStatus.ACTIVE, ReminderStatus.DONE, ReminderStatus.DISMISSED}
    ),
    ReminderStatus.DONE: frozenset(),
    ReminderStatus.DISMISSED: frozenset(),
}


class InvalidTransitionError(ConflictError):
    """Status move not allowed from the reminder's current state."""

    def __init__(self, reminder_id: str, current: ReminderStatus, target: ReminderStatus):
        super().__init__(reminder_id, expected="active or snoozed", actual=current.value)
        self.current = current
        self.target = target


@dataclass
class Reminder:
    """A persisted maintenance obligation shown to the user."""

    id: Optional[str]
    vehicle_id: str
    kind: ReminderKind
    title: str
    due_date: Optional[datetime] = None
    due_km: Optional[float] = None
    threshold: Interval = field(default_factory=Interval)
    status: ReminderStatus = ReminderStatus.ACTIVE
    notes: str = ""
    base_entry_ref: Optional[str] = None
    task_type: Optional[str] = None
    last_performed_at: Optional[datetime] = None
    previous_id: Optional[str] = None
    snoozed_until: Optional[datetime] = None
    auto_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_derived(self) -> bool:
        """Created from a maintenance event, or regenerated from such a reminder."""
        return self.base_entry_ref is not None or self.previous_id is not None

    @property
    def is_auto(self) -> bool:
        """Generated from vehicle data rather than entered or derived."""
        return self.auto_type is not None

    def copy(self, **changes) -> "Reminder":
        return replace(self, **changes)


def validate_reminder(reminder: Reminder) -> None:
    """Raise ValidationError if the reminder's fields don't fit its kind."""
    if not (reminder.title or "").strip():
        raise ValidationError("title", "must not be empty")
    if not reminder.vehicle_id:
        raise ValidationError("vehicle_id", "must not be empty")
    if reminder.kind.needs_date and reminder.due_date is None:
        raise ValidationError("due_date", f"required for {reminder.kind.value} reminders")
    if reminder.kind.needs_km and reminder.due_km is None:
        raise ValidationError("due_km", f"required for {reminder.kind.value} reminders")
    if reminder.due_km is not None and reminder.due_km < 0:
        raise ValidationError("due_km", "must not be negative")
    if not reminder.threshold.is_empty:
        reminder.threshold.validate("threshold")


def check_transition(reminder: Reminder, target: ReminderStatus) -> None:
    """Fail fast on a move the transition table doesn't allow."""
    if target not in TRANSITIONS[reminder.status]:
        raise InvalidTransitionError(reminder.id or "", reminder.status, target)


def kind_for(due_date: Optional[datetime], due_km: Optional[float]) -> Optional[ReminderKind]:
    """Reminder kind implied by which due fields are known."""
    if due_date is not None and due_km is not None:
        return ReminderKind.BOTH
    if due_date is not None:
        return ReminderKind.TIME
    if due_km is not None:
        return ReminderKind.DISTANCE
    return None


def next_due(
    interval: Interval, performed_at: datetime, performed_km: Optional[float]
):
    """Due date and due odometer one interval after a service."""
    due_date = add_months(performed_at, interval.months) if interval.months else None
    due_km = None
    if interval.km and performed_km is not None:
        due_km = performed_km + interval.km
    return due_date, due_km


# =============================================================================
# Due queries
# =============================================================================


def check_reminder_due(
    reminder: Reminder, now: datetime, current_km: Optional[float] = None
) -> bool:
    """
    True if an open reminder's due date or due odometer has been reached.

    A snoozed reminder is not due on either horizon until ``snoozed_until``.
    """
    if not reminder.status.is_open:
        return False
    if reminder.snoozed_until is not None and now < reminder.snoozed_until:
        return False
    if reminder.due_date is not None and reminder.due_date <= now:
        return True
    if (
        reminder.due_km is not None
        and current_km is not None
        and current_km >= reminder.due_km
    ):
        return True
    return False


def days_until_due(reminder: Reminder, now: datetime) -> Optional[int]:
    """Signed days until the due date, or None for distance-only reminders."""
    if reminder.due_date is None:
        return None
    return days_between(now, reminder.due_date)


def km_until_due(reminder: Reminder, current_km: Optional[float]) -> Optional[float]:
    """Distance left until due (never below 0), or None if unknown."""
    if reminder.due_km is None or current_km is None:
        return None
    return max(0, reminder.due_km - current_km)


def reminder_priority(
    reminder: Reminder, now: datetime, current_km: Optional[float] = None
) -> Priority:
    """Compact priority used for the "what's next" list."""
    days = days_until_due(reminder, now)
    km = km_until_due(reminder, current_km)

    if days is not None and days < 0:
        return Priority.CRITICAL
    if km is not None and km <= 0:
        return Priority.CRITICAL
    if days is not None and days <= SOON_DAYS:
        return Priority.SOON
    if km is not None and km <= SOON_KM:
        return Priority.SOON
    return Priority.OK


def estimate_reminder(
    reminder: Reminder,
    now: datetime,
    current_km: Optional[float] = None,
    avg_km_per_month: Optional[float] = None,
) -> DueEstimate:
    """DueEstimate from the reminder's own stored due date and odometer."""
    return estimate_from_due_points(
        reminder.due_date, reminder.due_km, now, current_km, avg_km_per_month
    )


def reminder_score(
    reminder: Reminder,
    now: datetime,
    current_km: Optional[float] = None,
    avg_km_per_month: Optional[float] = None,
) -> int:
    """Urgency against the threshold captured when the reminder was created."""
    estimate = estimate_reminder(reminder, now, current_km, avg_km_per_month)
    return urgency_score(estimate, reminder.threshold)


def rank_reminders(
    reminders: Iterable[Reminder],
    now: datetime,
    current_km: Optional[float] = None,
    limit: Optional[int] = None,
) -> List[Reminder]:
    """Open reminders by priority (highest first), then nearest due date."""
    open_reminders = [r for r in reminders if r.status.is_open]
    ranked = sorted(
        open_reminders,
        key=lambda r: (
            -reminder_priority(r, now, current_km).value,
            r.due_date or FAR_FUTURE,
        ),
    )
    if limit is not None:
        return ranked[:limit]
    return ranked
