"""YAML-backed gateway and time normalization at the storage boundary."""

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Union

import yaml

from .catalog import Interval
from .errors import GatewayUnavailableError, ValidationError
from .gateway import MemoryGateway, utc_now
from .maintenance_record import MaintenanceRecord
from .reminder import Reminder
from .status import ReminderKind, ReminderStatus
from .vehicle import VehicleSnapshot

logger = logging.getLogger(__name__)


def parse_instant(value: Any, field: str = "date") -> Optional[datetime]:
    """
    Normalize a boundary time value into an aware UTC datetime.

    Accepts datetime (naive is taken as UTC), date, ISO-8601 strings
    (a trailing 'Z' is allowed) and epoch seconds. None passes through.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parse_instant(datetime.fromisoformat(text), field)
        except ValueError:
            pass
    raise ValidationError(field, f"not a recognizable date/time: {value!r}")


def format_instant(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# =============================================================================
# Serialization (camelCase keys, None values omitted)
# =============================================================================


def _vehicle_to_dict(snapshot: VehicleSnapshot) -> Dict[str, Any]:
    d: Dict[str, Any] = {}
    if snapshot.name is not None:
        d["name"] = snapshot.name
    if snapshot.current_km is not None:
        d["odoKm"] = snapshot.current_km
    if snapshot.avg_km_per_month is not None:
        d["avgKmPerMonth"] = snapshot.avg_km_per_month
    if snapshot.first_reg_ym is not None:
        d["firstRegYm"] = snapshot.first_reg_ym
    if snapshot.model_year is not None:
        d["year"] = snapshot.model_year
    if snapshot.inspection_date is not None:
        d["inspectionDate"] = format_instant(snapshot.inspection_date)
    if snapshot.created_at is not None:
        d["createdAt"] = format_instant(snapshot.created_at)
    return d


def _vehicle_from_dict(vehicle_id: str, dct: Dict[str, Any]) -> VehicleSnapshot:
    first_reg = dct.get("firstRegYm")
    return VehicleSnapshot(
        vehicle_id,
        current_km=dct.get("odoKm"),
        avg_km_per_month=dct.get("avgKmPerMonth"),
        first_reg_ym=str(first_reg) if first_reg is not None else None,
        model_year=dct.get("year"),
        created_at=parse_instant(dct.get("createdAt"), "createdAt"),
        name=dct.get("name"),
        inspection_date=parse_instant(dct.get("inspectionDate"), "inspectionDate"),
    )


def _record_to_dict(record: MaintenanceRecord) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": record.id,
        "title": record.title,
        "date": format_instant(record.date),
    }
    if record.mileage is not None:
        d["mileage"] = record.mileage
    if record.notes is not None:
        d["notes"] = record.notes
    return d


def _record_from_dict(vehicle_id: str, dct: Dict[str, Any]) -> MaintenanceRecord:
    return MaintenanceRecord(
        str(dct["id"]),
        vehicle_id,
        dct["title"],
        parse_instant(dct["date"]),
        dct.get("mileage"),
        dct.get("notes"),
    )


def reminder_to_dict(reminder: Reminder) -> Dict[str, Any]:
    """Serialize a Reminder to the stored dict format (camelCase keys)."""
    d: Dict[str, Any] = {
        "id": reminder.id,
        "kind": reminder.kind.value,
        "title": reminder.title,
        "dueDate": format_instant(reminder.due_date),
        "dueOdoKm": reminder.due_km,
        "baseEntryRef": reminder.base_entry_ref,
        "threshold": reminder.threshold.to_dict(),
        "status": reminder.status.value,
        "notes": reminder.notes,
    }
    if reminder.task_type is not None:
        d["taskType"] = reminder.task_type
    if reminder.last_performed_at is not None:
        d["lastPerformedAt"] = format_instant(reminder.last_performed_at)
    if reminder.previous_id is not None:
        d["previousId"] = reminder.previous_id
    if reminder.snoozed_until is not None:
        d["snoozedUntil"] = format_instant(reminder.snoozed_until)
    if reminder.auto_type is not None:
        d["autoType"] = reminder.auto_type
    if reminder.created_at is not None:
        d["createdAt"] = format_instant(reminder.created_at)
    if reminder.updated_at is not None:
        d["updatedAt"] = format_instant(reminder.updated_at)
    return d


def reminder_from_dict(vehicle_id: str, dct: Dict[str, Any]) -> Reminder:
    """Parse a stored reminder dict. Unknown kind/status raise ValidationError."""
    try:
        kind = ReminderKind(dct["kind"])
        status = ReminderStatus(dct.get("status", "active"))
    except ValueError as e:
        raise ValidationError("reminder", str(e)) from e
    return Reminder(
        id=str(dct["id"]),
        vehicle_id=vehicle_id,
        kind=kind,
        title=dct["title"],
        due_date=parse_instant(dct.get("dueDate"), "dueDate"),
        due_km=dct.get("dueOdoKm"),
        threshold=Interval.from_dict(dct.get("threshold")),
        status=status,
        notes=dct.get("notes") or "",
        base_entry_ref=dct.get("baseEntryRef"),
        task_type=dct.get("taskType"),
        last_performed_at=parse_instant(dct.get("lastPerformedAt"), "lastPerformedAt"),
        previous_id=dct.get("previousId"),
        snoozed_until=parse_instant(dct.get("snoozedUntil"), "snoozedUntil"),
        auto_type=dct.get("autoType"),
        created_at=parse_instant(dct.get("createdAt"), "createdAt"),
        updated_at=parse_instant(dct.get("updatedAt"), "updatedAt"),
    )


# =============================================================================
# YAML gateway
# =============================================================================


class YamlGateway(MemoryGateway):
    """
    Gateway over a directory of vehicle YAML files.

    Each ``<vehicle_id>.yaml`` holds the vehicle state, its maintenance
    records and its reminders. The whole file is rewritten on every change.
    With ``vehicle_ids`` only those files are read; otherwise every
    ``*.yaml`` in the directory is.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        clock: Callable[[], datetime] = utc_now,
        vehicle_ids: Optional[Iterable[str]] = None,
    ):
        super().__init__(clock)
        self.directory = Path(directory)
        if vehicle_ids is None:
            paths = sorted(self.directory.glob("*.yaml"))
        else:
            paths = [self.path_for(v) for v in vehicle_ids]
        for path in paths:
            if path.exists():
                self._load_file(path)

    def path_for(self, vehicle_id: str) -> Path:
        return self.directory / f"{vehicle_id}.yaml"

    def _load_file(self, path: Path) -> None:
        vehicle_id = path.stem
        try:
            with open(path, "rb") as fp:
                data = yaml.load(fp, Loader=yaml.SafeLoader) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Could not read %s: %s", path, e)
            raise GatewayUnavailableError(f"Could not read {path}: {e}") from e

        self._vehicles[vehicle_id] = _vehicle_from_dict(
            vehicle_id, data.get("vehicle") or {}
        )
        for dct in data.get("maintenance") or []:
            record = _record_from_dict(vehicle_id, dct)
            self._records[record.id] = record
        for dct in data.get("reminders") or []:
            reminder = reminder_from_dict(vehicle_id, dct)
            self._reminders[reminder.id] = reminder
        logger.debug("Loaded vehicle %s from %s", vehicle_id, path)

    def _persist(self, vehicle_id: str) -> None:
        data: Dict[str, Any] = {}
        snapshot = self._vehicles.get(vehicle_id)
        data["vehicle"] = _vehicle_to_dict(snapshot) if snapshot else {}
        data["maintenance"] = [
            _record_to_dict(r)
            for r in sorted(self._records.values(), key=lambda r: r.date)
            if r.vehicle_id == vehicle_id
        ]
        data["reminders"] = [
            reminder_to_dict(r)
            for r in self._reminders.values()
            if r.vehicle_id == vehicle_id
        ]

        path = self.path_for(vehicle_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as fp:
                yaml.dump(
                    data,
                    fp,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                    width=120,
                )
        except OSError as e:
            logger.error("Could not write %s: %s", path, e)
            raise GatewayUnavailableError(f"Could not write {path}: {e}") from e
