"""
Vehicle maintenance forecasting and reminder lifecycle.

This package provides:
- Catalog: trackable task types and their intervals
- VehicleSnapshot / MaintenanceRecord: inputs read from storage
- DueEstimate, urgency/status/confidence classification
- Suggestion aggregation: ranked upcoming tasks for a vehicle
- Reminder and ReminderManager: persisted reminders and their transitions
- Generated reminders: inspection, automobile tax and maintenance schedule
- Gateways: in-memory and YAML-file persistence
"""

from .status import Confidence, Priority, ReminderKind, ReminderStatus, SuggestionStatus
from .errors import (
    ConflictError,
    GatewayUnavailableError,
    NotFoundError,
    UpkeepError,
    ValidationError,
)
from .catalog import (
    DEFAULT_CATALOG,
    Catalog,
    Interval,
    MaintenanceItemConfig,
    load_catalog,
)
from .vehicle import VehicleSnapshot
from .maintenance_record import MaintenanceRecord
from .due_estimate import DueEstimate
from .calculations import (
    build_message,
    calc_due_km,
    classify_confidence,
    classify_status,
    estimate_due,
    urgency_score,
)
from .suggestions import Suggestion, find_last_record, generate_suggestions
from .reminder import (
    Reminder,
    check_reminder_due,
    days_until_due,
    estimate_reminder,
    km_until_due,
    rank_reminders,
    reminder_priority,
    reminder_score,
)
from .auto_reminders import (
    AUTO_INSPECTION,
    AUTO_SCHEDULE,
    AUTO_TAX,
    estimate_date_by_distance,
)
from .gateway import Gateway, MemoryGateway
from .loader import YamlGateway, parse_instant
from .lifecycle import ReminderManager

__all__ = [
    "Confidence",
    "Priority",
    "ReminderKind",
    "ReminderStatus",
    "SuggestionStatus",
    "ConflictError",
    "GatewayUnavailableError",
    "NotFoundError",
    "UpkeepError",
    "ValidationError",
    "DEFAULT_CATALOG",
    "Catalog",
    "Interval",
    "MaintenanceItemConfig",
    "load_catalog",
    "VehicleSnapshot",
    "MaintenanceRecord",
    "DueEstimate",
    "build_message",
    "calc_due_km",
    "classify_confidence",
    "classify_status",
    "estimate_due",
    "urgency_score",
    "Suggestion",
    "find_last_record",
    "generate_suggestions",
    "Reminder",
    "check_reminder_due",
    "days_until_due",
    "estimate_reminder",
    "km_until_due",
    "rank_reminders",
    "reminder_priority",
    "reminder_score",
    "AUTO_INSPECTION",
    "AUTO_SCHEDULE",
    "AUTO_TAX",
    "estimate_date_by_distance",
    "Gateway",
    "MemoryGateway",
    "YamlGateway",
    "parse_instant",
    "ReminderManager",
]
