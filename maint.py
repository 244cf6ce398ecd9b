#!/usr/bin/env python3
"""
Unified CLI for vehicle maintenance forecasting and reminders.

Commands:
  suggest      - Show ranked upcoming maintenance for the vehicle
  reminders    - List reminders
  due          - List reminders whose due date/distance has been reached
  next         - Show the top few reminders to act on
  add          - Add a reminder by hand
  log          - Record a maintenance event (derives the next reminder)
  delete-entry - Delete a maintenance record and its reminders
  done         - Mark a reminder done (regenerates derived reminders)
  snooze       - Push a reminder's due date back
  dismiss      - Dismiss a reminder
  delete       - Delete a reminder
  update-km    - Update the current odometer reading
  catalog      - List the maintenance catalog
  init         - Generate inspection, tax and maintenance-schedule reminders
  inspection   - Set the inspection expiry date (regenerates its reminder)
  clear        - Delete reminders (--auto: only generated ones)
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from tabulate import tabulate

from upkeep import (
    Reminder,
    ReminderManager,
    Suggestion,
    UpkeepError,
    YamlGateway,
    load_catalog,
    parse_instant,
    reminder_priority,
    reminder_score,
)
from upkeep.gateway import utc_now

# =============================================================================
# Formatting helpers
# =============================================================================


def format_km(km: Optional[float]) -> str:
    """Format a distance for display."""
    return f"{km:,.0f}" if km is not None else "-"


def format_date(value: Optional[datetime]) -> str:
    """Format an instant as a calendar date."""
    return value.date().isoformat() if value is not None else "-"


def format_days(days: Optional[int]) -> str:
    """Format a day count for display (e.g., '3mo 15d' or '-2mo 5d')."""
    if days is None:
        return "-"

    sign = "-" if days < 0 else ""
    days = abs(days)
    months = days // 30
    remaining_days = days % 30
    if months > 0:
        return f"{sign}{months}mo {remaining_days}d"
    return f"{sign}{days}d"


def truncate(text: Optional[str], max_len: int = 40) -> str:
    """Truncate text with ellipsis if too long."""
    if not text:
        return "-"
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def make_suggestion_table(suggestions: List[Suggestion]) -> List[List[str]]:
    """Convert suggestions to table rows."""
    rows = []
    for s in suggestions:
        est = s.estimate
        rows.append(
            [
                f"{s.icon} {s.title}".strip(),
                s.status.name.lower(),
                str(s.score),
                s.confidence.value,
                format_km(est.due_km),
                format_date(est.due_date) if est.time_bounded else "-",
                format_km(est.remaining_km),
                format_days(est.days_to_due),
                s.message,
            ]
        )
    return rows


def make_reminder_table(
    reminders: List[Reminder],
    now: datetime,
    current_km: Optional[float],
    avg_km_per_month: Optional[float] = None,
) -> List[List[str]]:
    """Convert reminders to table rows. Closed reminders get no priority or score."""
    rows = []
    for r in reminders:
        row = [
            r.id,
            truncate(r.title),
            r.kind.value,
            format_date(r.due_date),
            format_km(r.due_km),
            r.status.value,
        ]
        if r.status.is_open:
            row.append(reminder_priority(r, now, current_km).name.lower())
            row.append(str(reminder_score(r, now, current_km, avg_km_per_month)))
        else:
            row.extend(["-", "-"])
        rows.append(row)
    return rows


REMINDER_HEADERS = [
    "ID", "Title", "Kind", "Due (date)", "Due (km)", "Status", "Priority", "Score"
]


def _open_store(args):
    """Build the manager for the vehicle file named on the command line."""
    vehicle_id = args.vehicle_file.stem
    gateway = YamlGateway(args.vehicle_file.parent, vehicle_ids=[vehicle_id])
    manager = ReminderManager(gateway, load_catalog(args.catalog))
    return manager, vehicle_id


def _reminder_rows(manager: ReminderManager, vehicle_id: str, reminders) -> List[List[str]]:
    snapshot = manager.gateway.get_vehicle_snapshot(vehicle_id)
    return make_reminder_table(
        reminders, utc_now(), snapshot.current_km, snapshot.avg_km_per_month
    )


def _print_header(manager: ReminderManager, vehicle_id: str) -> None:
    snapshot = manager.gateway.get_vehicle_snapshot(vehicle_id)
    print(f"Vehicle: {snapshot.display_name}")
    if snapshot.current_km is not None:
        print(f"Odometer: {snapshot.current_km:,.0f} km")
    if snapshot.avg_km_per_month:
        print(f"Average: {snapshot.avg_km_per_month:,.0f} km/month")
    print()


# =============================================================================
# Read commands
# =============================================================================


def cmd_suggest(args):
    """Show ranked upcoming maintenance."""
    manager, vehicle_id = _open_store(args)
    _print_header(manager, vehicle_id)

    suggestions = manager.suggestions(vehicle_id)
    if not suggestions:
        print("Nothing to suggest yet.")
        return 0

    headers = [
        "Task",
        "Status",
        "Score",
        "Confidence",
        "Due (km)",
        "Due (date)",
        "Remaining (km)",
        "Remaining (time)",
        "Message",
    ]
    print(tabulate(make_suggestion_table(suggestions), headers=headers, tablefmt="simple"))
    return 0


def cmd_reminders(args):
    """List reminders."""
    manager, vehicle_id = _open_store(args)
    _print_header(manager, vehicle_id)

    reminders = manager.reminders(vehicle_id, include_closed=args.all)
    if not reminders:
        print("No reminders.")
        return 0
    rows = _reminder_rows(manager, vehicle_id, reminders)
    print(tabulate(rows, headers=REMINDER_HEADERS, tablefmt="simple"))
    return 0


def cmd_due(args):
    """List reminders that are due now."""
    manager, vehicle_id = _open_store(args)
    reminders = manager.due_reminders(vehicle_id)
    if not reminders:
        print("Nothing is due.")
        return 0
    rows = _reminder_rows(manager, vehicle_id, reminders)
    print("DUE:")
    print(tabulate(rows, headers=REMINDER_HEADERS, tablefmt="simple"))
    return 0


def cmd_next(args):
    """Show the top reminders to act on."""
    manager, vehicle_id = _open_store(args)
    reminders = manager.next_tasks(vehicle_id, limit=args.count)
    if not reminders:
        print("No open reminders.")
        return 0
    rows = _reminder_rows(manager, vehicle_id, reminders)
    print(tabulate(rows, headers=REMINDER_HEADERS, tablefmt="simple"))
    return 0


def cmd_catalog(args):
    """List the maintenance catalog."""
    catalog = load_catalog(args.catalog)
    rows = [
        [item.id, f"{item.icon} {item.title}".strip(), item.interval.describe(),
         ", ".join(item.keywords)]
        for item in catalog
    ]
    print(tabulate(rows, headers=["ID", "Task", "Interval", "Keywords"], tablefmt="simple"))
    return 0


# =============================================================================
# Write commands
# =============================================================================


def cmd_add(args):
    """Add a reminder by hand."""
    manager, vehicle_id = _open_store(args)
    reminder = manager.create_reminder(
        vehicle_id,
        kind=args.kind,
        title=args.title,
        due_date=parse_instant(args.date, "date"),
        due_km=args.km,
        notes=args.notes or "",
        task_type=args.task,
    )
    print(f"Reminder added: {reminder.id}")
    return 0


def cmd_log(args):
    """Record a maintenance event and derive the next reminder."""
    manager, vehicle_id = _open_store(args)
    performed_at = parse_instant(args.date, "date") or utc_now()
    item = manager.catalog.classify(args.title)

    print(f"Adding maintenance record to {args.vehicle_file}:")
    print(f"  Title:   {args.title}")
    print(f"  Date:    {format_date(performed_at)}")
    if args.km is not None:
        print(f"  Odometer: {args.km:,.0f}")
    if args.notes:
        print(f"  Notes:   {args.notes}")
    print(f"  Task:    {item.title if item else '(not a tracked task)'}")
    print()

    if args.dry_run:
        print("(dry run - no changes made)")
        return 0

    record, reminder = manager.record_maintenance(
        vehicle_id, args.title, performed_at, args.km, args.notes
    )
    print(f"Record saved: {record.id}")
    if reminder is not None:
        print(f"Next reminder: {reminder.title} (due {format_date(reminder.due_date)}"
              f" / {format_km(reminder.due_km)} km)")
    return 0


def cmd_delete_entry(args):
    """Delete a maintenance record and the reminders derived from it."""
    manager, _ = _open_store(args)
    count = manager.delete_maintenance(args.record_id)
    print(f"Record deleted ({count} reminder(s) removed).")
    return 0


def cmd_done(args):
    """Mark a reminder done."""
    manager, _ = _open_store(args)
    successor = manager.mark_done(
        args.reminder_id, parse_instant(args.date, "date"), args.km
    )
    print("Reminder marked done.")
    if successor is not None:
        print(f"Next reminder: {successor.id} (due {format_date(successor.due_date)}"
              f" / {format_km(successor.due_km)} km)")
    return 0


def cmd_snooze(args):
    """Push a reminder's due date back."""
    manager, _ = _open_store(args)
    reminder = manager.snooze(args.reminder_id, args.days)
    print(f"Reminder snoozed until {format_date(reminder.due_date)}.")
    return 0


def cmd_dismiss(args):
    manager, _ = _open_store(args)
    manager.dismiss(args.reminder_id)
    print("Reminder dismissed.")
    return 0


def cmd_delete(args):
    manager, _ = _open_store(args)
    manager.delete(args.reminder_id)
    print("Reminder deleted.")
    return 0


def cmd_update_km(args):
    """Update the current odometer reading."""
    manager, vehicle_id = _open_store(args)
    snapshot = manager.gateway.get_vehicle_snapshot(vehicle_id)

    print(f"Vehicle: {snapshot.display_name}")
    print(f"Current odometer: {format_km(snapshot.current_km)}")
    print(f"New odometer:     {format_km(args.km)}")
    print()

    if args.dry_run:
        print("(dry run - no changes made)")
        return 0

    snapshot.current_km = args.km
    if args.avg is not None:
        snapshot.avg_km_per_month = args.avg
    manager.gateway.save_vehicle_snapshot(snapshot)
    print("Odometer updated.")
    return 0


def cmd_init(args):
    """Generate inspection, tax and maintenance-schedule reminders."""
    manager, vehicle_id = _open_store(args)
    created = manager.generate_initial_reminders(vehicle_id)
    if not created:
        print("Nothing to generate; every task already has an open reminder.")
        return 0
    print(f"Generated {len(created)} reminder(s):")
    for reminder in created:
        print(f"  {reminder.title} (due {format_date(reminder.due_date)}"
              f" / {format_km(reminder.due_km)} km)")
    return 0


def cmd_inspection(args):
    """Set the inspection expiry date and replace its reminder."""
    manager, vehicle_id = _open_store(args)
    reminder = manager.update_inspection_reminders(
        vehicle_id, parse_instant(args.date, "date")
    )
    if reminder is None:
        print("Inspection date cleared.")
    else:
        print(f"Inspection reminder: {reminder.title} (due {format_date(reminder.due_date)})")
    return 0


def cmd_clear(args):
    manager, vehicle_id = _open_store(args)
    count = manager.clear_reminders(vehicle_id, auto_only=args.auto)
    print(f"Deleted {count} reminder(s).")
    return 0


COMMANDS = {
    "suggest": cmd_suggest,
    "reminders": cmd_reminders,
    "due": cmd_due,
    "next": cmd_next,
    "catalog": cmd_catalog,
    "add": cmd_add,
    "log": cmd_log,
    "delete-entry": cmd_delete_entry,
    "done": cmd_done,
    "snooze": cmd_snooze,
    "dismiss": cmd_dismiss,
    "delete": cmd_delete,
    "update-km": cmd_update_km,
    "init": cmd_init,
    "inspection": cmd_inspection,
    "clear": cmd_clear,
}


# =============================================================================
# Main
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Vehicle maintenance forecasts and reminders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s vehicles/fit.yaml suggest
  %(prog)s vehicles/fit.yaml log "Oil change" --km 48000 --date 2024-07-20
  %(prog)s vehicles/fit.yaml next -n 5
  %(prog)s vehicles/fit.yaml snooze 3f2a... --days 14
  %(prog)s vehicles/fit.yaml update-km 48500
""",
    )
    parser.add_argument("vehicle_file", type=Path, help="Path to vehicle YAML file")
    parser.add_argument("--catalog", type=Path, help="Catalog YAML file (default: built-in)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("suggest", help="Show ranked upcoming maintenance")

    reminders_parser = subparsers.add_parser("reminders", help="List reminders")
    reminders_parser.add_argument(
        "--all", action="store_true", help="Include done and dismissed reminders"
    )

    subparsers.add_parser("due", help="List reminders that are due")

    next_parser = subparsers.add_parser("next", help="Show the top reminders")
    next_parser.add_argument("-n", "--count", type=int, default=3, help="How many (default: 3)")

    subparsers.add_parser("catalog", help="List the maintenance catalog")

    add_parser = subparsers.add_parser("add", help="Add a reminder by hand")
    add_parser.add_argument("title", type=str, help="Reminder title")
    add_parser.add_argument(
        "--kind", choices=["time", "distance", "both"], default="time", help="Reminder kind"
    )
    add_parser.add_argument("--date", type=str, help="Due date (YYYY-MM-DD)")
    add_parser.add_argument("--km", type=float, help="Due odometer reading")
    add_parser.add_argument("--task", type=str, help="Catalog task type (e.g., 'oil')")
    add_parser.add_argument("--notes", type=str, help="Notes")

    log_parser = subparsers.add_parser("log", help="Record a maintenance event")
    log_parser.add_argument("title", type=str, help="What was done (e.g., 'Oil change')")
    log_parser.add_argument("--date", type=str, help="Service date YYYY-MM-DD (default: today)")
    log_parser.add_argument("--km", type=float, help="Odometer at time of service")
    log_parser.add_argument("--notes", type=str, help="Notes about the service")
    log_parser.add_argument(
        "--dry-run", action="store_true", help="Show what would be added without saving"
    )

    delete_entry_parser = subparsers.add_parser(
        "delete-entry", help="Delete a maintenance record and its reminders"
    )
    delete_entry_parser.add_argument("record_id", type=str)

    done_parser = subparsers.add_parser("done", help="Mark a reminder done")
    done_parser.add_argument("reminder_id", type=str)
    done_parser.add_argument("--date", type=str, help="Completion date (default: now)")
    done_parser.add_argument("--km", type=float, help="Odometer at completion")

    snooze_parser = subparsers.add_parser("snooze", help="Push a reminder back")
    snooze_parser.add_argument("reminder_id", type=str)
    snooze_parser.add_argument("--days", type=int, default=7, help="Days (default: 7)")

    dismiss_parser = subparsers.add_parser("dismiss", help="Dismiss a reminder")
    dismiss_parser.add_argument("reminder_id", type=str)

    delete_parser = subparsers.add_parser("delete", help="Delete a reminder")
    delete_parser.add_argument("reminder_id", type=str)

    update_km_parser = subparsers.add_parser("update-km", help="Update the odometer")
    update_km_parser.add_argument("km", type=float, help="Current odometer reading")
    update_km_parser.add_argument("--avg", type=float, help="Average km per month")
    update_km_parser.add_argument(
        "--dry-run", action="store_true", help="Show what would be updated without saving"
    )

    subparsers.add_parser("init", help="Generate reminders from vehicle data")

    inspection_parser = subparsers.add_parser(
        "inspection", help="Set the inspection expiry date"
    )
    inspection_parser.add_argument(
        "date", nargs="?", help="Expiry date YYYY-MM-DD (omit to clear)"
    )

    clear_parser = subparsers.add_parser("clear", help="Delete reminders")
    clear_parser.add_argument(
        "--auto", action="store_true", help="Only delete generated reminders"
    )

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Validate vehicle file exists
    if not args.vehicle_file.exists():
        print(f"Error: File not found: {args.vehicle_file}")
        return 1

    try:
        return COMMANDS[args.command](args)
    except UpkeepError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
