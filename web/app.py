"""Flask JSON API for maintenance suggestions and reminders."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from flask import Flask, jsonify, request

from upkeep import (
    ConflictError,
    GatewayUnavailableError,
    NotFoundError,
    ReminderManager,
    UpkeepError,
    ValidationError,
    VehicleSnapshot,
    YamlGateway,
    load_catalog,
    parse_instant,
    reminder_priority,
    reminder_score,
)
from upkeep.gateway import utc_now
from upkeep.loader import format_instant, reminder_to_dict

logger = logging.getLogger(__name__)

# Path to vehicles directory (relative to project root)
DEFAULT_DATA_DIR = Path(__file__).parent.parent / "vehicles"


def suggestion_to_dict(suggestion) -> Dict[str, Any]:
    est = suggestion.estimate
    return {
        "id": suggestion.id,
        "title": suggestion.title,
        "icon": suggestion.icon,
        "templateId": suggestion.template_id,
        "score": suggestion.score,
        "status": suggestion.status.name.lower(),
        "confidence": suggestion.confidence.value,
        "message": suggestion.message,
        "dueInfo": {
            "remainKm": est.remaining_km,
            "remainDays": est.remaining_days,
            "daysToDue": est.days_to_due,
            "isOverdue": est.is_overdue,
            "dueDate": format_instant(est.due_date) if est.time_bounded else None,
            "dueKm": est.due_km,
        },
    }


def reminder_json(reminder, snapshot: Optional[VehicleSnapshot] = None) -> Dict[str, Any]:
    d = reminder_to_dict(reminder)
    d["vehicleId"] = reminder.vehicle_id
    if reminder.status.is_open:
        now = utc_now()
        current_km = snapshot.current_km if snapshot else None
        avg = snapshot.avg_km_per_month if snapshot else None
        d["priority"] = reminder_priority(reminder, now, current_km).name.lower()
        d["score"] = reminder_score(reminder, now, current_km, avg)
    return d


def _number(payload: Dict[str, Any], key: str) -> Optional[float]:
    value = payload.get(key)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(key, "must be a number") from None


def create_app(
    data_dir: Union[str, Path, None] = None,
    catalog_path: Union[str, Path, None] = None,
) -> Flask:
    app = Flask(__name__)

    data_dir = data_dir or os.environ.get("UPKEEP_DATA_DIR") or DEFAULT_DATA_DIR
    catalog_path = catalog_path or os.environ.get("UPKEEP_CATALOG")
    manager = ReminderManager(YamlGateway(data_dir), load_catalog(catalog_path))
    app.config["REMINDER_MANAGER"] = manager

    def snapshot_or_none(vehicle_id: str) -> Optional[VehicleSnapshot]:
        try:
            return manager.gateway.get_vehicle_snapshot(vehicle_id)
        except NotFoundError:
            return None

    def reminder_list(vehicle_id: str, reminders):
        snapshot = snapshot_or_none(vehicle_id)
        return jsonify([reminder_json(r, snapshot) for r in reminders])

    # -- errors ---------------------------------------------------------------

    def _error(e: UpkeepError, status: int):
        return jsonify({"error": type(e).__name__, "message": str(e)}), status

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return _error(e, 400)

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return _error(e, 404)

    @app.errorhandler(ConflictError)
    def handle_conflict(e):
        return _error(e, 409)

    @app.errorhandler(GatewayUnavailableError)
    def handle_unavailable(e):
        logger.error("Storage unavailable: %s", e)
        return _error(e, 503)

    # -- read path ------------------------------------------------------------

    @app.route("/vehicles/<vehicle_id>/suggestions")
    def suggestions(vehicle_id: str):
        return jsonify([suggestion_to_dict(s) for s in manager.suggestions(vehicle_id)])

    @app.route("/vehicles/<vehicle_id>/reminders")
    def reminders(vehicle_id: str):
        include_closed = request.args.get("all", "").lower() == "true"
        return reminder_list(vehicle_id, manager.reminders(vehicle_id, include_closed))

    @app.route("/vehicles/<vehicle_id>/reminders/due")
    def due_reminders(vehicle_id: str):
        """Polled by the notification dispatcher."""
        now = parse_instant(request.args.get("now"), "now")
        return reminder_list(vehicle_id, manager.due_reminders(vehicle_id, now))

    @app.route("/vehicles/<vehicle_id>/reminders/next")
    def next_reminders(vehicle_id: str):
        limit = request.args.get("limit", default=3, type=int)
        return reminder_list(vehicle_id, manager.next_tasks(vehicle_id, limit))

    # -- write path -----------------------------------------------------------

    @app.route("/vehicles/<vehicle_id>/reminders", methods=["POST"])
    def add_reminder(vehicle_id: str):
        payload = request.get_json(silent=True) or {}
        reminder = manager.create_reminder(
            vehicle_id,
            kind=payload.get("kind", "time"),
            title=payload.get("title", ""),
            due_date=parse_instant(payload.get("dueDate"), "dueDate"),
            due_km=_number(payload, "dueOdoKm"),
            notes=payload.get("notes", ""),
            task_type=payload.get("taskType"),
        )
        return jsonify(reminder_json(reminder)), 201

    @app.route("/reminders/<reminder_id>/done", methods=["POST"])
    def mark_done(reminder_id: str):
        payload = request.get_json(silent=True) or {}
        successor = manager.mark_done(
            reminder_id,
            parse_instant(payload.get("date"), "date"),
            _number(payload, "mileage"),
        )
        return jsonify({"next": reminder_json(successor) if successor else None})

    @app.route("/reminders/<reminder_id>/snooze", methods=["POST"])
    def snooze(reminder_id: str):
        payload = request.get_json(silent=True) or {}
        days = payload.get("days", 7)
        if not isinstance(days, int) or isinstance(days, bool):
            raise ValidationError("days", "must be an integer")
        return jsonify(reminder_json(manager.snooze(reminder_id, days)))

    @app.route("/reminders/<reminder_id>/dismiss", methods=["POST"])
    def dismiss(reminder_id: str):
        return jsonify(reminder_json(manager.dismiss(reminder_id)))

    @app.route("/reminders/<reminder_id>", methods=["DELETE"])
    def delete_reminder(reminder_id: str):
        manager.delete(reminder_id)
        return "", 204

    @app.route("/vehicles/<vehicle_id>/maintenance", methods=["POST"])
    def record_maintenance(vehicle_id: str):
        """Maintenance-event hook: store the record and derive its reminder."""
        payload = request.get_json(silent=True) or {}
        performed_at = parse_instant(payload.get("date"), "date") or utc_now()
        record, reminder = manager.record_maintenance(
            vehicle_id,
            payload.get("title", ""),
            performed_at,
            _number(payload, "mileage"),
            payload.get("notes"),
            payload.get("id"),
        )
        return (
            jsonify(
                {
                    "recordId": record.id,
                    "reminder": reminder_json(reminder) if reminder else None,
                }
            ),
            201,
        )

    @app.route("/maintenance/<record_id>", methods=["DELETE"])
    def delete_maintenance(record_id: str):
        deleted = manager.delete_maintenance(record_id)
        return jsonify({"deletedReminders": deleted})

    @app.route("/vehicles/<vehicle_id>/reminders/initial", methods=["POST"])
    def generate_initial(vehicle_id: str):
        created = manager.generate_initial_reminders(vehicle_id)
        return reminder_list(vehicle_id, created), 201

    @app.route("/vehicles/<vehicle_id>/inspection", methods=["PUT"])
    def set_inspection(vehicle_id: str):
        """Replace the inspection date; a null date removes the reminder."""
        payload = request.get_json(silent=True) or {}
        reminder = manager.update_inspection_reminders(
            vehicle_id, parse_instant(payload.get("date"), "date")
        )
        return jsonify({"reminder": reminder_json(reminder) if reminder else None})

    @app.route("/vehicles/<vehicle_id>/reminders", methods=["DELETE"])
    def clear_reminders(vehicle_id: str):
        auto_only = request.args.get("auto", "").lower() == "true"
        return jsonify({"deleted": manager.clear_reminders(vehicle_id, auto_only)})

    return app


app = create_app()

if __name__ == "__main__":
    app.run(debug=True, port=5000)
