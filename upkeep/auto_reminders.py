"""
Reminders generated from vehicle data rather than typed in or derived.

Three sources: the statutory inspection (shaken) expiry stored on the
vehicle, the annual automobile tax deadline, and one reminder per
catalog item scheduled from the item's interval. Generated reminders
carry an ``auto_type`` so they can be replaced or cleared without
touching the user's own reminders.
"""

from datetime import datetime, timezone
from typing import Optional

from .calculations import add_months, days_between
from .catalog import MaintenanceItemConfig
from .maintenance_record import MaintenanceRecord
from .reminder import Reminder, kind_for, next_due
from .status import ReminderKind
from .vehicle import VehicleSnapshot

AUTO_INSPECTION = "inspection"
AUTO_TAX = "auto-tax"
AUTO_SCHEDULE = "schedule"

# Automobile tax is due by 31 May every year.
AUTO_TAX_MONTH = 5
AUTO_TAX_DAY = 31


def estimate_date_by_distance(
    current_km: Optional[float],
    avg_km_per_month: Optional[float],
    target_km: float,
    now: datetime,
) -> Optional[datetime]:
    """
    Date the odometer should reach ``target_km`` at the average rate.

    None when the rate or the current reading is unknown, or when the
    target has already been reached.
    """
    if current_km is None or not avg_km_per_month or avg_km_per_month <= 0:
        return None
    remaining = target_km - current_km
    if remaining <= 0:
        return None
    return add_months(now, remaining / avg_km_per_month)


def inspection_title(days: int) -> str:
    """Countdown title for the inspection reminder."""
    if days > 30:
        return f"Vehicle inspection in {days} days"
    if days > 14:
        return f"Vehicle inspection in {days} days (start preparing)"
    if days > 7:
        return f"Vehicle inspection in {days} days (book now)"
    if days > 0:
        return f"Vehicle inspection in {days} days (urgent)"
    if days == 0:
        return "Vehicle inspection expires today"
    return f"Vehicle inspection expired {-days} days ago"


def auto_tax_title(days: int) -> str:
    if days > 30:
        return "Automobile tax payment"
    if days > 14:
        return "Automobile tax payment (prepare)"
    if days > 0:
        return "Automobile tax payment (urgent)"
    return "Automobile tax payment due today"


def auto_tax_due(now: datetime) -> datetime:
    """This year's deadline, or next year's once this year's day has passed."""
    due = datetime(now.year, AUTO_TAX_MONTH, AUTO_TAX_DAY, tzinfo=timezone.utc)
    if due.date() < now.date():
        due = due.replace(year=now.year + 1)
    return due


def inspection_reminder(
    vehicle_id: str, inspection_date: datetime, now: datetime
) -> Reminder:
    return Reminder(
        id=None,
        vehicle_id=vehicle_id,
        kind=ReminderKind.TIME,
        title=inspection_title(days_between(now, inspection_date)),
        due_date=inspection_date,
        auto_type=AUTO_INSPECTION,
    )


def auto_tax_reminder(vehicle_id: str, now: datetime) -> Reminder:
    due = auto_tax_due(now)
    return Reminder(
        id=None,
        vehicle_id=vehicle_id,
        kind=ReminderKind.TIME,
        title=auto_tax_title(days_between(now, due)),
        due_date=due,
        auto_type=AUTO_TAX,
    )


def schedule_reminder(
    item: MaintenanceItemConfig,
    snapshot: VehicleSnapshot,
    now: datetime,
    last: Optional[MaintenanceRecord] = None,
) -> Optional[Reminder]:
    """
    Reminder for one catalog item, one interval after its last service.

    Without a matching record the interval counts from ``now`` and the
    current odometer. Items with only a distance interval get a due date
    estimated from the average monthly distance. Returns None when the
    item cannot be placed on either horizon.
    """
    if last is not None:
        start, start_km = last.date, last.mileage
    else:
        start = now
        start_km = snapshot.current_km if snapshot.has_odometer else None

    due_date, due_km = next_due(item.interval, start, start_km)
    if due_date is None and due_km is not None:
        due_date = estimate_date_by_distance(
            snapshot.current_km, snapshot.avg_km_per_month, due_km, now
        )
    kind = kind_for(due_date, due_km)
    if kind is None:
        return None

    return Reminder(
        id=None,
        vehicle_id=snapshot.vehicle_id,
        kind=kind,
        title=item.title,
        due_date=due_date,
        due_km=due_km,
        threshold=item.interval,
        base_entry_ref=last.id if last else None,
        task_type=item.id,
        last_performed_at=last.date if last else None,
        auto_type=AUTO_SCHEDULE,
    )
