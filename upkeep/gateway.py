"""Persistence gateway interface and an in-memory implementation."""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from .due_estimate import FAR_FUTURE
from .errors import ConflictError, NotFoundError
from .maintenance_record import MaintenanceRecord
from .reminder import Reminder
from .status import ReminderStatus
from .suggestions import find_last_record
from .vehicle import VehicleSnapshot

logger = logging.getLogger(__name__)

ReminderListener = Callable[[List[Reminder]], None]
Unsubscribe = Callable[[], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Gateway(ABC):
    """
    Storage for reminders and maintenance records, plus vehicle state.

    Implementations raise NotFoundError for unknown ids, ConflictError when
    a compare-and-set update loses, and GatewayUnavailableError on I/O
    failure. Nothing here retries.
    """

    # Reminders -------------------------------------------------------------

    @abstractmethod
    def create_reminder(self, reminder: Reminder) -> Reminder:
        """Store a new reminder and return it with id and timestamps set."""

    @abstractmethod
    def get_reminder(self, reminder_id: str) -> Reminder:
        pass

    @abstractmethod
    def update_reminder(
        self,
        reminder_id: str,
        patch: Mapping[str, Any],
        expected_status: Optional[Sequence[ReminderStatus]] = None,
    ) -> Reminder:
        """
        Apply a patch of Reminder attributes.

        With ``expected_status`` the update only happens if the stored status
        is one of those values; otherwise ConflictError is raised.
        """

    @abstractmethod
    def delete_reminder(self, reminder_id: str) -> None:
        pass

    @abstractmethod
    def query_reminders(self, vehicle_id: str) -> List[Reminder]:
        """Current reminders of a vehicle, ordered by due date."""

    @abstractmethod
    def subscribe_reminders(
        self, vehicle_id: str, listener: ReminderListener
    ) -> Unsubscribe:
        """Call ``listener`` with the current list now and after every change."""

    @abstractmethod
    def find_reminders_by_base_entry(
        self, record_id: str, vehicle_id: Optional[str] = None
    ) -> List[Reminder]:
        """Reminders whose base entry is the given maintenance record."""

    # Maintenance records ---------------------------------------------------

    @abstractmethod
    def save_maintenance_record(self, record: MaintenanceRecord) -> MaintenanceRecord:
        """Insert or replace a record; assigns an id when it has none."""

    @abstractmethod
    def get_maintenance_record(self, record_id: str) -> MaintenanceRecord:
        pass

    @abstractmethod
    def delete_maintenance_record(self, record_id: str) -> None:
        pass

    @abstractmethod
    def query_maintenance(self, vehicle_id: str) -> List[MaintenanceRecord]:
        """Records of a vehicle, newest first."""

    def find_latest_maintenance(
        self, vehicle_id: str, keywords: Sequence[str]
    ) -> Optional[MaintenanceRecord]:
        """Most recent record whose title matches any keyword."""
        return find_last_record(self.query_maintenance(vehicle_id), keywords)

    # Vehicle state ---------------------------------------------------------

    @abstractmethod
    def get_vehicle_snapshot(self, vehicle_id: str) -> VehicleSnapshot:
        pass

    @abstractmethod
    def save_vehicle_snapshot(self, snapshot: VehicleSnapshot) -> None:
        pass


def _due_sort_key(reminder: Reminder):
    # Reminders without a due date sort last, like a null-last index.
    return (reminder.due_date is None, reminder.due_date or FAR_FUTURE, reminder.id or "")


class MemoryGateway(Gateway):
    """Thread-safe in-process store. Subclasses persist via ``_persist``."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = threading.RLock()
        self._reminders: Dict[str, Reminder] = {}
        self._records: Dict[str, MaintenanceRecord] = {}
        self._vehicles: Dict[str, VehicleSnapshot] = {}
        self._listeners: Dict[str, List[ReminderListener]] = {}

    # -- write plumbing ------------------------------------------------------

    def _persist(self, vehicle_id: str) -> None:
        """Hook called inside the lock after each change to a vehicle."""

    @contextmanager
    def _write(self, vehicle_id: str) -> Iterator[None]:
        """Apply a change and persist it, restoring memory if persisting fails."""
        with self._lock:
            saved = (dict(self._reminders), dict(self._records), dict(self._vehicles))
            try:
                yield
                self._persist(vehicle_id)
            except Exception:
                self._reminders, self._records, self._vehicles = saved
                raise
        self._notify(vehicle_id)

    def _notify(self, vehicle_id: str) -> None:
        with self._lock:
            listeners = list(self._listeners.get(vehicle_id, []))
        if not listeners:
            return
        current = self.query_reminders(vehicle_id)
        for listener in listeners:
            try:
                listener(list(current))
            except Exception:
                logger.exception("Reminder listener failed for vehicle %s", vehicle_id)

    # -- reminders -----------------------------------------------------------

    def create_reminder(self, reminder: Reminder) -> Reminder:
        now = self._clock()
        stored = reminder.copy(
            id=reminder.id or uuid.uuid4().hex,
            created_at=now,
            updated_at=now,
        )
        with self._write(stored.vehicle_id):
            if stored.id in self._reminders:
                raise ConflictError(stored.id, expected="new id", actual="exists")
            self._reminders[stored.id] = stored
        return stored.copy()

    def get_reminder(self, reminder_id: str) -> Reminder:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
        if reminder is None:
            raise NotFoundError("Reminder", reminder_id)
        return reminder.copy()

    def update_reminder(self, reminder_id, patch, expected_status=None):
        vehicle_id = self.get_reminder(reminder_id).vehicle_id
        with self._write(vehicle_id):
            current = self._reminders.get(reminder_id)
            if current is None:
                raise NotFoundError("Reminder", reminder_id)
            if expected_status is not None and current.status not in expected_status:
                raise ConflictError(
                    reminder_id,
                    expected="/".join(s.value for s in expected_status),
                    actual=current.status.value,
                )
            updated = current.copy(**dict(patch), updated_at=self._clock())
            self._reminders[reminder_id] = updated
        return updated.copy()

    def delete_reminder(self, reminder_id: str) -> None:
        vehicle_id = self.get_reminder(reminder_id).vehicle_id
        with self._write(vehicle_id):
            if self._reminders.pop(reminder_id, None) is None:
                raise NotFoundError("Reminder", reminder_id)

    def query_reminders(self, vehicle_id: str) -> List[Reminder]:
        with self._lock:
            matching = [r for r in self._reminders.values() if r.vehicle_id == vehicle_id]
        return [r.copy() for r in sorted(matching, key=_due_sort_key)]

    def find_reminders_by_base_entry(self, record_id, vehicle_id=None):
        with self._lock:
            matching = [
                r
                for r in self._reminders.values()
                if r.base_entry_ref == record_id
                and (vehicle_id is None or r.vehicle_id == vehicle_id)
            ]
        return [r.copy() for r in sorted(matching, key=_due_sort_key)]

    def subscribe_reminders(self, vehicle_id, listener):
        with self._lock:
            self._listeners.setdefault(vehicle_id, []).append(listener)
        logger.debug("Subscribed to reminders of vehicle %s", vehicle_id)
        listener(self.query_reminders(vehicle_id))

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(vehicle_id, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(vehicle_id, None)
            logger.debug("Unsubscribed from reminders of vehicle %s", vehicle_id)

        return unsubscribe

    def listener_count(self, vehicle_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(vehicle_id, []))

    # -- maintenance records -------------------------------------------------

    def save_maintenance_record(self, record: MaintenanceRecord) -> MaintenanceRecord:
        if not record.id:
            record.id = uuid.uuid4().hex
        with self._write(record.vehicle_id):
            self._records[record.id] = record
        return record

    def get_maintenance_record(self, record_id: str) -> MaintenanceRecord:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise NotFoundError("MaintenanceRecord", record_id)
        return record

    def delete_maintenance_record(self, record_id: str) -> None:
        vehicle_id = self.get_maintenance_record(record_id).vehicle_id
        with self._write(vehicle_id):
            if self._records.pop(record_id, None) is None:
                raise NotFoundError("MaintenanceRecord", record_id)

    def query_maintenance(self, vehicle_id: str) -> List[MaintenanceRecord]:
        with self._lock:
            matching = [r for r in self._records.values() if r.vehicle_id == vehicle_id]
        return sorted(matching, key=lambda r: r.date, reverse=True)

    # -- vehicle state -------------------------------------------------------

    def get_vehicle_snapshot(self, vehicle_id: str) -> VehicleSnapshot:
        with self._lock:
            snapshot = self._vehicles.get(vehicle_id)
        if snapshot is None:
            raise NotFoundError("Vehicle", vehicle_id)
        return copy.copy(snapshot)

    def save_vehicle_snapshot(self, snapshot: VehicleSnapshot) -> None:
        with self._write(snapshot.vehicle_id):
            self._vehicles[snapshot.vehicle_id] = snapshot

    def vehicle_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._vehicles)
