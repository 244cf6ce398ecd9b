"""
Reminder lifecycle manager.

Owns reminder creation (manual, from an accepted suggestion, derived
from a recorded maintenance event, or generated from vehicle data),
status transitions, regeneration of the next reminder when a derived one
is completed, and cascade deletion when a maintenance record goes away.

Every write goes through the gateway. Status changes use the gateway's
compare-and-set update so two concurrent completions cannot both
regenerate.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from .auto_reminders import (
    AUTO_INSPECTION,
    AUTO_TAX,
    auto_tax_reminder,
    inspection_reminder,
    schedule_reminder,
)
from .catalog import Catalog, Interval, MaintenanceItemConfig
from .errors import NotFoundError, ValidationError
from .gateway import Gateway, ReminderListener, Unsubscribe, utc_now
from .maintenance_record import MaintenanceRecord
from .reminder import (
    Reminder,
    check_reminder_due,
    check_transition,
    kind_for,
    next_due,
    rank_reminders,
    validate_reminder,
)
from .status import ReminderKind, ReminderStatus
from .suggestions import Suggestion, generate_suggestions
from .vehicle import VehicleSnapshot

logger = logging.getLogger(__name__)

DEFAULT_SNOOZE_DAYS = 7
OPEN_STATUSES = (ReminderStatus.ACTIVE, ReminderStatus.SNOOZED)
EDITABLE_FIELDS = ("title", "notes", "kind", "due_date", "due_km")


def _coerce_kind(kind: Union[ReminderKind, str]) -> ReminderKind:
    if isinstance(kind, ReminderKind):
        return kind
    try:
        return ReminderKind(str(kind).lower())
    except ValueError:
        raise ValidationError("kind", f"unknown reminder kind '{kind}'") from None


class ReminderManager:
    """Stateful reminder operations on top of a gateway and a catalog."""

    def __init__(
        self,
        gateway: Gateway,
        catalog: Catalog,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.gateway = gateway
        self.catalog = catalog
        self._clock = clock
        # Serializes check-then-create for derived reminders.
        self._derive_lock = threading.Lock()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _task_item(self, task_type: str) -> MaintenanceItemConfig:
        item = self.catalog.get(task_type)
        if item is None:
            raise ValidationError("task_type", f"unknown task type '{task_type}'")
        return item

    def _snapshot(self, vehicle_id: str) -> Optional[VehicleSnapshot]:
        try:
            return self.gateway.get_vehicle_snapshot(vehicle_id)
        except NotFoundError:
            return None

    def _current_km(self, vehicle_id: str) -> Optional[float]:
        snapshot = self._snapshot(vehicle_id)
        return snapshot.current_km if snapshot else None

    # =========================================================================
    # Creation
    # =========================================================================

    def create_reminder(
        self,
        vehicle_id: str,
        kind: Union[ReminderKind, str],
        title: str,
        due_date: Optional[datetime] = None,
        due_km: Optional[float] = None,
        threshold: Optional[Interval] = None,
        notes: str = "",
        task_type: Optional[str] = None,
    ) -> Reminder:
        """Create a reminder typed in by the user."""
        if task_type is not None:
            item = self._task_item(task_type)
            if threshold is None:
                threshold = item.interval
        reminder = Reminder(
            id=None,
            vehicle_id=vehicle_id,
            kind=_coerce_kind(kind),
            title=title,
            due_date=due_date,
            due_km=due_km,
            threshold=threshold or Interval(),
            notes=notes or "",
            task_type=task_type,
        )
        validate_reminder(reminder)
        created = self.gateway.create_reminder(reminder)
        logger.info("Created reminder %s '%s' for %s", created.id, created.title, vehicle_id)
        return created

    def accept_suggestion(self, vehicle_id: str, suggestion: Suggestion) -> Reminder:
        """Turn a suggestion into an active reminder for its catalog item."""
        estimate = suggestion.estimate
        due_date = estimate.due_date if estimate.time_bounded else None
        due_km = estimate.due_km
        kind = kind_for(due_date, due_km)
        if kind is None:
            raise ValidationError("suggestion", f"'{suggestion.id}' has no due point")

        last = suggestion.last_record
        reminder = Reminder(
            id=None,
            vehicle_id=vehicle_id,
            kind=kind,
            title=suggestion.title,
            due_date=due_date,
            due_km=due_km,
            threshold=suggestion.item.interval,
            base_entry_ref=last.id if last else None,
            task_type=suggestion.id,
            last_performed_at=last.date if last else None,
        )
        validate_reminder(reminder)
        created = self.gateway.create_reminder(reminder)
        logger.info("Accepted suggestion %s as reminder %s", suggestion.id, created.id)
        return created

    def create_from_maintenance(
        self,
        vehicle_id: str,
        title: str,
        performed_at: datetime,
        mileage: Optional[float],
        record_id: str,
    ) -> Optional[Reminder]:
        """
        Derive the next reminder from a recorded maintenance event.

        Returns None when the title matches no catalog item, or when a newer
        event of the same type already drives an open reminder. Calling this
        again for the same record returns the reminder created the first
        time instead of creating another one.
        """
        item = self.catalog.classify(title)
        if item is None:
            logger.debug("No task type matches '%s'; no reminder derived", title)
            return None

        due_date, due_km = next_due(item.interval, performed_at, mileage)
        kind = kind_for(due_date, due_km)
        if kind is None:
            raise ValidationError("mileage", f"required to schedule '{item.id}'")

        with self._derive_lock:
            existing = self.gateway.find_reminders_by_base_entry(record_id, vehicle_id)
            if existing:
                open_ones = [r for r in existing if r.status.is_open]
                logger.debug("Record %s already has reminder(s); skipping", record_id)
                return (open_ones or existing)[0]

            for other in self._open_derived(vehicle_id, item.id):
                if other.last_performed_at and other.last_performed_at > performed_at:
                    logger.info(
                        "Record %s is older than the one behind reminder %s; skipping",
                        record_id,
                        other.id,
                    )
                    return None
                self.gateway.update_reminder(
                    other.id,
                    {"status": ReminderStatus.DONE},
                    expected_status=OPEN_STATUSES,
                )
                logger.info("Reminder %s superseded by record %s", other.id, record_id)

            reminder = Reminder(
                id=None,
                vehicle_id=vehicle_id,
                kind=kind,
                title=f"Next: {item.title}",
                due_date=due_date,
                due_km=due_km,
                threshold=item.interval,
                base_entry_ref=record_id,
                task_type=item.id,
                last_performed_at=performed_at,
            )
            created = self.gateway.create_reminder(reminder)
        logger.info(
            "Derived reminder %s (%s) from record %s", created.id, item.id, record_id
        )
        return created

    def _open_derived(self, vehicle_id: str, task_type: str) -> List[Reminder]:
        return [
            r
            for r in self.gateway.query_reminders(vehicle_id)
            if r.task_type == task_type and r.is_derived and r.status.is_open
        ]

    def record_maintenance(
        self,
        vehicle_id: str,
        title: str,
        performed_at: datetime,
        mileage: Optional[float] = None,
        notes: Optional[str] = None,
        record_id: Optional[str] = None,
    ):
        """Save a maintenance record and derive its reminder."""
        if not (title or "").strip():
            raise ValidationError("title", "must not be empty")
        record = self.gateway.save_maintenance_record(
            MaintenanceRecord(record_id, vehicle_id, title, performed_at, mileage, notes)
        )
        reminder = self.create_from_maintenance(
            vehicle_id, title, performed_at, mileage, record.id
        )
        return record, reminder

    # =========================================================================
    # Transitions
    # =========================================================================

    def mark_done(
        self,
        reminder_id: str,
        completed_at: Optional[datetime] = None,
        completed_km: Optional[float] = None,
    ) -> Optional[Reminder]:
        """
        Complete a reminder. Returns the regenerated reminder, if any.

        Derived reminders with a task type get a new active reminder one
        interval after the completion. The successor is worked out before
        the status changes, so a reminder that cannot be rescheduled stays
        open. If storing the successor fails after the status changed,
        calling this again stores it. Once the successor exists, or when a
        concurrent completion already won, ConflictError is raised.
        """
        with self._derive_lock:
            reminder = self.gateway.get_reminder(reminder_id)
            if self._awaiting_successor(reminder):
                logger.warning(
                    "Reminder %s is done but has no successor; regenerating", reminder_id
                )
                performed_at = reminder.last_performed_at or completed_at or self._clock()
                return self._regenerate(
                    self._successor(reminder, performed_at, completed_km)
                )

            check_transition(reminder, ReminderStatus.DONE)
            performed_at = completed_at or self._clock()
            successor = None
            if reminder.task_type is not None and reminder.is_derived:
                successor = self._successor(reminder, performed_at, completed_km)

            self.gateway.update_reminder(
                reminder_id,
                {"status": ReminderStatus.DONE, "last_performed_at": performed_at},
                expected_status=OPEN_STATUSES,
            )
            logger.info("Reminder %s marked done", reminder_id)
            if successor is None:
                return None
            return self._regenerate(successor)

    def _awaiting_successor(self, reminder: Reminder) -> bool:
        """A completed derived reminder whose successor was never stored."""
        if reminder.status != ReminderStatus.DONE:
            return False
        if reminder.task_type is None or not reminder.is_derived:
            return False
        for other in self.gateway.query_reminders(reminder.vehicle_id):
            if other.previous_id == reminder.id:
                return False
            # Superseded by a newer maintenance event.
            if (
                other.task_type == reminder.task_type
                and other.is_derived
                and other.status.is_open
            ):
                return False
        return True

    def _successor(
        self, done: Reminder, performed_at: datetime, performed_km: Optional[float]
    ) -> Reminder:
        interval = done.threshold
        if interval.is_empty:
            interval = self._task_item(done.task_type).interval

        if performed_km is None and interval.km:
            performed_km = self._current_km(done.vehicle_id)
            if performed_km is None:
                performed_km = done.due_km

        due_date, due_km = next_due(interval, performed_at, performed_km)
        kind = kind_for(due_date, due_km)
        if kind is None:
            raise ValidationError("completed_km", f"required to reschedule '{done.title}'")

        return Reminder(
            id=None,
            vehicle_id=done.vehicle_id,
            kind=kind,
            title=done.title,
            due_date=due_date,
            due_km=due_km,
            threshold=interval,
            notes=done.notes,
            task_type=done.task_type,
            last_performed_at=performed_at,
            previous_id=done.id,
        )

    def _regenerate(self, successor: Reminder) -> Reminder:
        created = self.gateway.create_reminder(successor)
        logger.info("Regenerated reminder %s after %s", created.id, successor.previous_id)
        return created

    def snooze(self, reminder_id: str, days: int = DEFAULT_SNOOZE_DAYS) -> Reminder:
        """
        Push the due date ``days`` into the future and keep the reminder active.

        The new due date counts from the later of the old due date and now.
        Due queries skip the reminder on both horizons until that date, so
        one already overdue by distance stays quiet too.
        """
        if days is None or days <= 0:
            raise ValidationError("days", "must be a positive number of days")
        reminder = self.gateway.get_reminder(reminder_id)
        check_transition(reminder, ReminderStatus.SNOOZED)
        now = self._clock()
        start = max(reminder.due_date, now) if reminder.due_date else now
        until = start + timedelta(days=days)
        snoozed = self.gateway.update_reminder(
            reminder_id,
            {"status": ReminderStatus.ACTIVE, "due_date": until, "snoozed_until": until},
            expected_status=OPEN_STATUSES,
        )
        logger.info("Reminder %s snoozed until %s", reminder_id, until)
        return snoozed

    def dismiss(self, reminder_id: str) -> Reminder:
        reminder = self.gateway.get_reminder(reminder_id)
        check_transition(reminder, ReminderStatus.DISMISSED)
        dismissed = self.gateway.update_reminder(
            reminder_id,
            {"status": ReminderStatus.DISMISSED},
            expected_status=OPEN_STATUSES,
        )
        logger.info("Reminder %s dismissed", reminder_id)
        return dismissed

    def update_reminder(self, reminder_id: str, **changes) -> Reminder:
        """Edit title, notes, kind or due fields of an open reminder."""
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(sorted(unknown)[0], "cannot be edited")
        if "kind" in changes:
            changes["kind"] = _coerce_kind(changes["kind"])
        reminder = self.gateway.get_reminder(reminder_id)
        validate_reminder(reminder.copy(**changes))
        return self.gateway.update_reminder(
            reminder_id, changes, expected_status=OPEN_STATUSES
        )

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete(self, reminder_id: str) -> None:
        self.gateway.delete_reminder(reminder_id)
        logger.info("Reminder %s deleted", reminder_id)

    def delete_reminders_by_maintenance_record(
        self, record_id: str, vehicle_id: Optional[str] = None
    ) -> int:
        """Delete every reminder whose base entry is the given record."""
        deleted = 0
        for reminder in self.gateway.find_reminders_by_base_entry(record_id, vehicle_id):
            try:
                self.gateway.delete_reminder(reminder.id)
            except NotFoundError:
                logger.debug("Reminder %s already deleted", reminder.id)
                continue
            deleted += 1
        if deleted:
            logger.info("Deleted %d reminder(s) of record %s", deleted, record_id)
        return deleted

    def delete_maintenance(self, record_id: str) -> int:
        """Delete a maintenance record and cascade to its reminders."""
        record = self.gateway.get_maintenance_record(record_id)
        self.gateway.delete_maintenance_record(record_id)
        return self.delete_reminders_by_maintenance_record(record_id, record.vehicle_id)

    def clear_reminders(self, vehicle_id: str, auto_only: bool = False) -> int:
        """Delete a vehicle's reminders, or only the generated ones."""
        reminders = [
            r
            for r in self.gateway.query_reminders(vehicle_id)
            if r.is_auto or not auto_only
        ]
        for reminder in reminders:
            self.gateway.delete_reminder(reminder.id)
        logger.info("Cleared %d reminder(s) for %s", len(reminders), vehicle_id)
        return len(reminders)

    # =========================================================================
    # Generated reminders
    # =========================================================================

    def generate_initial_reminders(
        self, vehicle_id: str, now: Optional[datetime] = None
    ) -> List[Reminder]:
        """
        Create the inspection, automobile tax and maintenance-schedule
        reminders for a vehicle.

        Catalog items are scheduled from their latest matching maintenance
        record when there is one. Anything already covered by an open
        reminder is skipped, so calling this again only fills the gaps.
        """
        now = now or self._clock()
        snapshot = self.gateway.get_vehicle_snapshot(vehicle_id)
        created = []
        with self._derive_lock:
            open_reminders = self.reminders(vehicle_id)
            open_auto = {r.auto_type for r in open_reminders if r.is_auto}
            open_tasks = {r.task_type for r in open_reminders if r.task_type}

            pending = []
            if snapshot.inspection_date is not None and AUTO_INSPECTION not in open_auto:
                pending.append(inspection_reminder(vehicle_id, snapshot.inspection_date, now))
            if AUTO_TAX not in open_auto:
                pending.append(auto_tax_reminder(vehicle_id, now))
            for item in self.catalog:
                if item.id in open_tasks:
                    logger.debug("Task %s already has an open reminder", item.id)
                    continue
                last = self.gateway.find_latest_maintenance(vehicle_id, item.keywords)
                reminder = schedule_reminder(item, snapshot, now, last)
                if reminder is None:
                    logger.debug("Task %s cannot be scheduled for %s", item.id, vehicle_id)
                    continue
                pending.append(reminder)

            for reminder in pending:
                created.append(self.gateway.create_reminder(reminder))
        logger.info("Generated %d reminder(s) for %s", len(created), vehicle_id)
        return created

    def update_inspection_reminders(
        self,
        vehicle_id: str,
        inspection_date: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> Optional[Reminder]:
        """
        Store a new inspection date and replace the inspection reminder.

        Every generated inspection reminder of the vehicle is deleted first.
        With no date nothing replaces them.
        """
        snapshot = self.gateway.get_vehicle_snapshot(vehicle_id)
        snapshot.inspection_date = inspection_date
        self.gateway.save_vehicle_snapshot(snapshot)

        with self._derive_lock:
            for reminder in self.gateway.query_reminders(vehicle_id):
                if reminder.auto_type == AUTO_INSPECTION:
                    self.gateway.delete_reminder(reminder.id)
                    logger.debug("Deleted inspection reminder %s", reminder.id)
            if inspection_date is None:
                return None
            created = self.gateway.create_reminder(
                inspection_reminder(vehicle_id, inspection_date, now or self._clock())
            )
        logger.info(
            "Inspection reminder %s for %s due %s", created.id, vehicle_id, inspection_date
        )
        return created

    # =========================================================================
    # Queries
    # =========================================================================

    def reminders(self, vehicle_id: str, include_closed: bool = False) -> List[Reminder]:
        reminders = self.gateway.query_reminders(vehicle_id)
        if include_closed:
            return reminders
        return [r for r in reminders if r.status.is_open]

    def due_reminders(
        self, vehicle_id: str, now: Optional[datetime] = None
    ) -> List[Reminder]:
        """Open reminders whose due date or due odometer has been reached."""
        now = now or self._clock()
        current_km = self._current_km(vehicle_id)
        return [
            r
            for r in self.gateway.query_reminders(vehicle_id)
            if check_reminder_due(r, now, current_km)
        ]

    def next_tasks(
        self, vehicle_id: str, limit: int = 3, now: Optional[datetime] = None
    ) -> List[Reminder]:
        """Top open reminders by priority, then nearest due date."""
        return rank_reminders(
            self.gateway.query_reminders(vehicle_id),
            now or self._clock(),
            self._current_km(vehicle_id),
            limit,
        )

    def suggestions(
        self, vehicle_id: str, now: Optional[datetime] = None
    ) -> List[Suggestion]:
        snapshot = self.gateway.get_vehicle_snapshot(vehicle_id)
        return generate_suggestions(
            snapshot,
            self.gateway.query_maintenance(vehicle_id),
            self.catalog,
            now or self._clock(),
        )

    def subscribe(
        self, vehicle_id: str, listener: ReminderListener, open_only: bool = True
    ) -> Unsubscribe:
        """Stream the vehicle's reminder list; returns the unsubscribe callable."""
        if not open_only:
            return self.gateway.subscribe_reminders(vehicle_id, listener)

        def only_open(reminders: List[Reminder]) -> None:
            listener([r for r in reminders if r.status.is_open])

        return self.gateway.subscribe_reminders(vehicle_id, only_open)
