"""Enums for suggestion tiers, confidence, and reminder state."""

from enum import Enum


class SuggestionStatus(Enum):
    """Urgency tiers for a suggestion. Lower value = more urgent."""

    CRITICAL = 1
    SOON = 2
    UPCOMING = 3
    OK = 4


class Confidence(Enum):
    """How much real data backed a due estimate."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReminderKind(Enum):
    """Which due fields a reminder tracks."""

    TIME = "time"
    DISTANCE = "distance"
    BOTH = "both"

    @property
    def needs_date(self) -> bool:
        return self in (ReminderKind.TIME, ReminderKind.BOTH)

    @property
    def needs_km(self) -> bool:
        return self in (ReminderKind.DISTANCE, ReminderKind.BOTH)


class ReminderStatus(Enum):
    """Reminder lifecycle states. DONE and DISMISSED are terminal."""

    ACTIVE = "active"
    SNOOZED = "snoozed"
    DONE = "done"
    DISMISSED = "dismissed"

    @property
    def is_open(self) -> bool:
        return self in (ReminderStatus.ACTIVE, ReminderStatus.SNOOZED)


class Priority(Enum):
    """Compact "what's next" ranking. Higher value = more urgent."""

    OK = 1
    SOON = 2
    CRITICAL = 3
