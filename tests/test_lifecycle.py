#!/usr/bin/env python3
"""Tests for ReminderManager: creation, transitions, regeneration, cascade."""

import threading
from datetime import timedelta

import pytest

from upkeep import (
    AUTO_INSPECTION,
    AUTO_SCHEDULE,
    AUTO_TAX,
    DEFAULT_CATALOG,
    Catalog,
    ConflictError,
    GatewayUnavailableError,
    Interval,
    MaintenanceRecord,
    MemoryGateway,
    NotFoundError,
    Reminder,
    ReminderKind,
    ReminderManager,
    ReminderStatus,
    ValidationError,
)
from upkeep.reminder import InvalidTransitionError

from conftest import NOW, utc


def derive_oil(manager, record_id="m1", when=None, km=40000):
    return manager.create_from_maintenance(
        "fit", "Oil change", when or utc(2024, 1, 15), km, record_id
    )


def run_concurrently(target, count=8):
    results, errors = [], []

    def worker():
        try:
            results.append(target())
        except ConflictError as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


class FlakyGateway(MemoryGateway):
    """MemoryGateway that fails the next ``failures`` reminder creations."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = 0

    def create_reminder(self, reminder):
        if self.failures:
            self.failures -= 1
            raise GatewayUnavailableError("disk full")
        return super().create_reminder(reminder)


@pytest.fixture
def flaky_manager(snapshot):
    gateway = FlakyGateway(clock=lambda: NOW)
    gateway.save_vehicle_snapshot(snapshot)
    return ReminderManager(gateway, DEFAULT_CATALOG, clock=lambda: NOW)


class TestCreateReminder:
    """Tests for manual reminder creation."""

    def test_time_reminder(self, manager):
        """A manual time reminder is stored active and not derived."""
        reminder = manager.create_reminder(
            "fit", ReminderKind.TIME, "Shaken inspection", due_date=utc(2025, 4, 1)
        )
        assert reminder.id
        assert reminder.status == ReminderStatus.ACTIVE
        assert reminder.is_derived is False
        assert manager.reminders("fit") == [reminder]

    def test_kind_as_string(self, manager):
        """Kind names are accepted case-insensitively."""
        reminder = manager.create_reminder("fit", "Distance", "Tires", due_km=60000)
        assert reminder.kind == ReminderKind.DISTANCE

    def test_unknown_kind(self, manager):
        """An unknown kind is a validation error on 'kind'."""
        with pytest.raises(ValidationError) as exc_info:
            manager.create_reminder("fit", "weekly", "Wash", due_date=NOW)
        assert exc_info.value.field == "kind"

    def test_missing_due_field_writes_nothing(self, manager):
        """A time reminder without a date fails before anything is stored."""
        with pytest.raises(ValidationError) as exc_info:
            manager.create_reminder("fit", ReminderKind.TIME, "Inspection")
        assert exc_info.value.field == "due_date"
        assert manager.reminders("fit", include_closed=True) == []

    def test_task_type_threshold(self, manager):
        """A task type fills the threshold from the catalog."""
        reminder = manager.create_reminder(
            "fit", ReminderKind.DISTANCE, "Oil", due_km=50000, task_type="oil"
        )
        assert reminder.threshold == Interval(5000, 6)

    def test_unknown_task_type(self, manager):
        """A task type missing from the catalog is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            manager.create_reminder(
                "fit", ReminderKind.TIME, "Coolant", due_date=NOW, task_type="coolant"
            )
        assert exc_info.value.field == "task_type"


class TestCreateFromMaintenance:
    """Tests for deriving reminders from maintenance events."""

    def test_derived_fields(self, manager):
        """Due point is one catalog interval after the event."""
        reminder = derive_oil(manager)
        assert reminder.title == "Next: Engine oil change"
        assert reminder.kind == ReminderKind.BOTH
        assert reminder.due_date == utc(2024, 7, 15)
        assert reminder.due_km == 45000
        assert reminder.base_entry_ref == "m1"
        assert reminder.task_type == "oil"
        assert reminder.threshold == Interval(5000, 6)
        assert reminder.last_performed_at == utc(2024, 1, 15)

    def test_idempotent_per_record(self, manager):
        """A second call for the same record returns the first reminder."""
        first = derive_oil(manager)
        second = derive_oil(manager)
        assert second.id == first.id
        assert len(manager.gateway.find_reminders_by_base_entry("m1")) == 1

    def test_concurrent_calls_create_one(self, manager):
        """Racing calls for one record still create a single reminder."""
        results, errors = run_concurrently(lambda: derive_oil(manager))
        assert errors == []
        assert len({r.id for r in results}) == 1
        assert len(manager.reminders("fit")) == 1

    def test_unmatched_title(self, manager):
        """Titles outside the catalog derive nothing."""
        result = manager.create_from_maintenance("fit", "Car wash", NOW, 48000, "m9")
        assert result is None
        assert manager.reminders("fit") == []

    def test_time_only_item(self, manager):
        """Time-only items give a time reminder even without mileage."""
        reminder = manager.create_from_maintenance(
            "fit", "Brake fluid flush", utc(2024, 1, 15), None, "m2"
        )
        assert reminder.kind == ReminderKind.TIME
        assert reminder.due_date == utc(2026, 1, 15)
        assert reminder.due_km is None

    def test_missing_mileage_for_distance_only_item(self, gateway):
        """Distance-only items need the event's mileage."""
        catalog = Catalog.from_dicts(
            [{"id": "chain", "title": "Chain lube", "intervalKm": 1000, "keywords": ["chain"]}]
        )
        manager = ReminderManager(gateway, catalog, clock=lambda: NOW)
        with pytest.raises(ValidationError) as exc_info:
            manager.create_from_maintenance("fit", "Chain lube", NOW, None, "m1")
        assert exc_info.value.field == "mileage"

    def test_newer_event_supersedes(self, manager):
        """A newer event closes the older open reminder of the same type."""
        old = derive_oil(manager, "m1")
        new = derive_oil(manager, "m2", utc(2024, 7, 1), 46000)

        assert manager.gateway.get_reminder(old.id).status == ReminderStatus.DONE
        assert new.due_km == 51000
        assert [r.id for r in manager.reminders("fit")] == [new.id]

    def test_older_event_is_skipped(self, manager):
        """An event older than the one behind the open reminder is ignored."""
        newer = derive_oil(manager, "m2", utc(2024, 7, 1), 46000)
        assert derive_oil(manager, "m1") is None
        assert [r.id for r in manager.reminders("fit", include_closed=True)] == [newer.id]

    def test_other_task_types_untouched(self, manager):
        """Superseding only applies within one task type."""
        oil = derive_oil(manager)
        manager.create_from_maintenance(
            "fit", "Oil filter replacement", utc(2024, 7, 1), 46000, "m2"
        )
        assert manager.gateway.get_reminder(oil.id).status == ReminderStatus.ACTIVE

    def test_record_maintenance(self, manager):
        """Recording an event stores it and derives from its id."""
        record, reminder = manager.record_maintenance(
            "fit", "Oil change", utc(2024, 1, 15), 40000, notes="5W-30"
        )
        assert manager.gateway.get_maintenance_record(record.id).notes == "5W-30"
        assert reminder.base_entry_ref == record.id

    def test_record_maintenance_needs_title(self, manager):
        """A blank title is rejected."""
        with pytest.raises(ValidationError):
            manager.record_maintenance("fit", " ", NOW)


class TestAcceptSuggestion:
    def test_creates_derived_reminder(self, manager):
        """The accepted suggestion's due point and last record carry over."""
        manager.gateway.save_maintenance_record(
            MaintenanceRecord("m1", "fit", "Oil change", utc(2024, 1, 15), 40000)
        )
        suggestion = manager.suggestions("fit")[0]
        assert suggestion.id == "oil"

        reminder = manager.accept_suggestion("fit", suggestion)
        assert reminder.kind == ReminderKind.BOTH
        assert reminder.title == "Engine oil change"
        assert reminder.due_date == utc(2024, 7, 15)
        assert reminder.due_km == 45000
        assert reminder.base_entry_ref == "m1"
        assert reminder.task_type == "oil"


class TestMarkDone:
    """Tests for completion and regeneration."""

    def test_regenerates_next(self, manager):
        """Completion closes the reminder and schedules one interval later."""
        first = derive_oil(manager)
        successor = manager.mark_done(first.id, NOW, 48000)

        done = manager.gateway.get_reminder(first.id)
        assert done.status == ReminderStatus.DONE
        assert done.last_performed_at == NOW

        assert successor.status == ReminderStatus.ACTIVE
        assert successor.previous_id == first.id
        assert successor.base_entry_ref is None
        assert successor.task_type == "oil"
        assert successor.title == first.title
        assert successor.due_date == utc(2025, 1, 20)
        assert successor.due_km == 53000
        assert successor.due_date > first.due_date

    def test_uses_current_odometer(self, manager):
        """Without a completion reading the vehicle's odometer is used."""
        first = derive_oil(manager)
        successor = manager.mark_done(first.id)
        assert successor.due_km == 53000
        assert successor.last_performed_at == NOW

    def test_successor_regenerates_again(self, manager):
        """Regenerated reminders regenerate in turn."""
        first = derive_oil(manager)
        second = manager.mark_done(first.id, NOW, 48000)
        third = manager.mark_done(second.id, utc(2025, 1, 20), 53000)
        assert third.previous_id == second.id
        assert third.due_km == 58000

    def test_manual_reminder_not_regenerated(self, manager):
        """Manual reminders just close, even with a task type."""
        reminder = manager.create_reminder(
            "fit", ReminderKind.TIME, "Oil", due_date=NOW, task_type="oil"
        )
        assert manager.mark_done(reminder.id) is None
        assert manager.gateway.get_reminder(reminder.id).status == ReminderStatus.DONE
        assert manager.reminders("fit") == []

    def test_twice_raises(self, manager):
        """Completing again after a successful regeneration conflicts."""
        first = derive_oil(manager)
        manager.mark_done(first.id)
        with pytest.raises(InvalidTransitionError):
            manager.mark_done(first.id)
        successors = [
            r for r in manager.reminders("fit", True) if r.previous_id == first.id
        ]
        assert len(successors) == 1

    def test_stale_read_loses_compare_and_set(self, manager, monkeypatch):
        """A caller holding an outdated copy loses the status update."""
        first = derive_oil(manager)
        stale = manager.gateway.get_reminder(first.id)
        manager.mark_done(first.id)

        monkeypatch.setattr(manager.gateway, "get_reminder", lambda rid: stale)
        with pytest.raises(ConflictError):
            manager.mark_done(first.id)
        monkeypatch.undo()

        successors = [
            r for r in manager.reminders("fit", True) if r.previous_id == first.id
        ]
        assert len(successors) == 1

    def test_concurrent_completion_regenerates_once(self, manager):
        """Only one of several racing completions regenerates."""
        first = derive_oil(manager)
        results, errors = run_concurrently(lambda: manager.mark_done(first.id))
        assert len(results) == 1
        assert len(errors) == 7
        assert [r.id for r in manager.reminders("fit")] == [results[0].id]

    def test_failed_successor_write_can_be_retried(self, flaky_manager):
        """A successor lost to a storage failure is created on retry."""
        first = derive_oil(flaky_manager)
        flaky_manager.gateway.failures = 1
        with pytest.raises(GatewayUnavailableError):
            flaky_manager.mark_done(first.id, NOW, 48000)
        assert flaky_manager.gateway.get_reminder(first.id).status == ReminderStatus.DONE
        assert flaky_manager.reminders("fit") == []

        successor = flaky_manager.mark_done(first.id)
        assert successor.previous_id == first.id
        assert successor.due_date == utc(2025, 1, 20)
        assert successor.due_km == 53000
        assert [r.id for r in flaky_manager.reminders("fit")] == [successor.id]

        with pytest.raises(InvalidTransitionError):
            flaky_manager.mark_done(first.id)

    def test_unschedulable_successor_leaves_reminder_open(self, manager):
        """If no next due point can be worked out, the status is unchanged."""
        stored = manager.gateway.create_reminder(
            Reminder(
                id=None,
                vehicle_id="bike",
                kind=ReminderKind.TIME,
                title="Chain lube",
                due_date=utc(2024, 7, 1),
                threshold=Interval(km=1000),
                base_entry_ref="m1",
                task_type="oil",
            )
        )
        with pytest.raises(ValidationError) as exc_info:
            manager.mark_done(stored.id)
        assert exc_info.value.field == "completed_km"
        assert manager.gateway.get_reminder(stored.id).status == ReminderStatus.ACTIVE

    def test_superseded_reminder_does_not_regenerate(self, manager):
        """A reminder closed by a newer event is not revived by completing it."""
        old = derive_oil(manager, "m1")
        new = derive_oil(manager, "m2", utc(2024, 7, 1), 46000)
        with pytest.raises(InvalidTransitionError):
            manager.mark_done(old.id)
        assert [r.id for r in manager.reminders("fit")] == [new.id]

    def test_unknown_id(self, manager):
        """Unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            manager.mark_done("nope")


class TestSnoozeAndDismiss:
    """Tests for snooze and dismiss."""

    def test_snooze_overdue_counts_from_now(self, manager):
        """An overdue reminder is pushed to now + days."""
        reminder = derive_oil(manager)
        snoozed = manager.snooze(reminder.id)
        assert snoozed.due_date == NOW + timedelta(days=7)
        assert snoozed.snoozed_until == NOW + timedelta(days=7)
        assert snoozed.status == ReminderStatus.ACTIVE

    def test_snooze_future_counts_from_due(self, manager):
        """A reminder not yet due is pushed from its own due date."""
        reminder = manager.create_reminder(
            "fit", ReminderKind.TIME, "Inspection", due_date=utc(2024, 8, 1)
        )
        assert manager.snooze(reminder.id, 14).due_date == utc(2024, 8, 15)

    def test_snooze_distance_only_sets_date(self, manager):
        """Distance-only reminders get a date to wake up on."""
        reminder = manager.create_reminder("fit", "distance", "Tires", due_km=60000)
        assert manager.snooze(reminder.id).due_date == NOW + timedelta(days=7)

    def test_snooze_hides_reminder_overdue_by_distance(self, manager):
        """A reminder past its due odometer leaves the due list until the snooze ends."""
        reminder = derive_oil(manager)
        assert [r.id for r in manager.due_reminders("fit")] == [reminder.id]

        manager.snooze(reminder.id)
        assert manager.due_reminders("fit") == []
        assert manager.due_reminders("fit", now=NOW + timedelta(days=6)) == []

        later = manager.due_reminders("fit", now=NOW + timedelta(days=7))
        assert [r.id for r in later] == [reminder.id]

    @pytest.mark.parametrize("days", [0, -3])
    def test_snooze_needs_positive_days(self, manager, days):
        """Zero or negative days are rejected."""
        reminder = derive_oil(manager)
        with pytest.raises(ValidationError):
            manager.snooze(reminder.id, days)

    def test_snooze_done_reminder(self, manager):
        """Closed reminders cannot be snoozed."""
        reminder = derive_oil(manager)
        manager.mark_done(reminder.id)
        with pytest.raises(InvalidTransitionError):
            manager.snooze(reminder.id)

    def test_dismiss(self, manager):
        """Dismissed reminders drop out of the open list."""
        reminder = derive_oil(manager)
        dismissed = manager.dismiss(reminder.id)
        assert dismissed.status == ReminderStatus.DISMISSED
        assert manager.reminders("fit") == []

    def test_dismissed_cannot_complete(self, manager):
        """A dismissed reminder neither completes nor regenerates."""
        reminder = derive_oil(manager)
        manager.dismiss(reminder.id)
        with pytest.raises(ConflictError):
            manager.mark_done(reminder.id)
        assert len(manager.reminders("fit", include_closed=True)) == 1


class TestUpdateReminder:
    def test_edit_title(self, manager):
        """Title edits are applied."""
        reminder = derive_oil(manager)
        assert manager.update_reminder(reminder.id, title="Oil + filter").title == "Oil + filter"

    def test_kind_change_validated(self, manager):
        """Changing the kind requires the matching due field."""
        reminder = manager.create_reminder(
            "fit", ReminderKind.TIME, "Inspection", due_date=utc(2024, 8, 1)
        )
        with pytest.raises(ValidationError):
            manager.update_reminder(reminder.id, kind="distance")
        updated = manager.update_reminder(reminder.id, kind="both", due_km=60000)
        assert updated.kind == ReminderKind.BOTH

    def test_status_not_editable(self, manager):
        """Status only changes through transitions."""
        reminder = derive_oil(manager)
        with pytest.raises(ValidationError):
            manager.update_reminder(reminder.id, status=ReminderStatus.DONE)

    def test_closed_reminder_not_editable(self, manager):
        """Closed reminders reject edits."""
        reminder = derive_oil(manager)
        manager.dismiss(reminder.id)
        with pytest.raises(ConflictError):
            manager.update_reminder(reminder.id, title="Again")


class TestDeletion:
    """Tests for deletion and the maintenance-record cascade."""

    def test_delete(self, manager):
        """Deleted reminders are gone from the gateway."""
        reminder = derive_oil(manager)
        manager.delete(reminder.id)
        with pytest.raises(NotFoundError):
            manager.gateway.get_reminder(reminder.id)

    def test_delete_maintenance_cascades(self, manager):
        """Deleting a record deletes the reminders derived from it."""
        record, reminder = manager.record_maintenance(
            "fit", "Oil change", utc(2024, 1, 15), 40000
        )
        assert manager.delete_maintenance(record.id) == 1
        with pytest.raises(NotFoundError):
            manager.gateway.get_maintenance_record(record.id)
        assert manager.reminders("fit", include_closed=True) == []
        assert manager.due_reminders("fit") == []

    def test_successor_survives_cascade(self, manager):
        """Regenerated reminders are not tied to the original record."""
        record, reminder = manager.record_maintenance(
            "fit", "Oil change", utc(2024, 1, 15), 40000
        )
        successor = manager.mark_done(reminder.id, NOW, 48000)
        assert manager.delete_maintenance(record.id) == 1
        assert [r.id for r in manager.reminders("fit")] == [successor.id]

    def test_cascade_without_reminders(self, manager):
        """A record with no reminders deletes nothing."""
        assert manager.delete_reminders_by_maintenance_record("nothing") == 0

    def test_clear_reminders(self, manager):
        """Clearing deletes every reminder of the vehicle."""
        derive_oil(manager)
        manager.create_reminder("fit", "time", "Inspection", due_date=NOW)
        assert manager.clear_reminders("fit") == 2
        assert manager.reminders("fit", include_closed=True) == []

    def test_clear_auto_only(self, manager):
        """auto_only keeps manual and derived reminders."""
        derived = derive_oil(manager)
        manual = manager.create_reminder("fit", "time", "Wash", due_date=NOW)
        generated = manager.generate_initial_reminders("fit")

        assert manager.clear_reminders("fit", auto_only=True) == len(generated)
        remaining = {r.id for r in manager.reminders("fit", include_closed=True)}
        assert remaining == {derived.id, manual.id}


class TestGeneratedReminders:
    """Tests for reminders generated from vehicle data."""

    @pytest.fixture
    def inspected(self, manager):
        snapshot = manager.gateway.get_vehicle_snapshot("fit")
        snapshot.inspection_date = utc(2024, 8, 9)
        manager.gateway.save_vehicle_snapshot(snapshot)
        return manager

    def test_initial_reminders(self, inspected):
        """Inspection, tax and one reminder per catalog item are created."""
        created = inspected.generate_initial_reminders("fit")
        by_auto = {}
        for reminder in created:
            by_auto.setdefault(reminder.auto_type, []).append(reminder)

        [inspection] = by_auto[AUTO_INSPECTION]
        assert inspection.due_date == utc(2024, 8, 9)
        assert inspection.title == "Vehicle inspection in 20 days (start preparing)"

        [tax] = by_auto[AUTO_TAX]
        assert tax.due_date == utc(2025, 5, 31)
        assert tax.kind == ReminderKind.TIME

        schedule = {r.task_type: r for r in by_auto[AUTO_SCHEDULE]}
        assert set(schedule) == {item.id for item in DEFAULT_CATALOG}
        assert schedule["oil"].kind == ReminderKind.BOTH
        assert schedule["oil"].due_date == utc(2025, 1, 20)
        assert schedule["oil"].due_km == 53000
        assert schedule["brake-fluid"].kind == ReminderKind.TIME
        assert schedule["brake-fluid"].due_date == utc(2026, 7, 20)
        assert all(r.is_auto for r in created)
        assert len(inspected.reminders("fit")) == len(created)

    def test_schedule_counts_from_latest_record(self, manager):
        """A matching maintenance record anchors the schedule reminder."""
        manager.gateway.save_maintenance_record(
            MaintenanceRecord("m1", "fit", "Oil change", utc(2023, 7, 1), 35000)
        )
        manager.gateway.save_maintenance_record(
            MaintenanceRecord("m2", "fit", "Oil change", utc(2024, 1, 15), 40000)
        )
        created = manager.generate_initial_reminders("fit")
        [oil] = [r for r in created if r.task_type == "oil"]
        assert oil.due_date == utc(2024, 7, 15)
        assert oil.due_km == 45000
        assert oil.base_entry_ref == "m2"
        assert oil.last_performed_at == utc(2024, 1, 15)

    def test_without_inspection_date(self, manager):
        """No inspection reminder without an inspection date."""
        created = manager.generate_initial_reminders("fit")
        assert AUTO_INSPECTION not in {r.auto_type for r in created}

    def test_second_call_fills_gaps_only(self, inspected):
        """Running generation again creates nothing new."""
        first = inspected.generate_initial_reminders("fit")
        assert inspected.generate_initial_reminders("fit") == []
        assert len(inspected.reminders("fit")) == len(first)

    def test_existing_open_task_is_skipped(self, manager):
        """A task that already has an open reminder is not scheduled again."""
        derived = derive_oil(manager)
        created = manager.generate_initial_reminders("fit")
        assert "oil" not in {r.task_type for r in created}
        assert manager.gateway.get_reminder(derived.id).status == ReminderStatus.ACTIVE

    def test_unknown_vehicle(self, manager):
        """Generation needs the vehicle's snapshot."""
        with pytest.raises(NotFoundError):
            manager.generate_initial_reminders("nope")

    def test_update_inspection_replaces_reminder(self, inspected):
        """A new inspection date replaces the generated inspection reminder."""
        inspected.generate_initial_reminders("fit")
        manual = inspected.create_reminder("fit", "time", "Inspection booking", due_date=NOW)

        new = inspected.update_inspection_reminders("fit", utc(2026, 8, 9))
        assert new.due_date == utc(2026, 8, 9)
        assert new.auto_type == AUTO_INSPECTION

        inspections = [
            r for r in inspected.reminders("fit", True) if r.auto_type == AUTO_INSPECTION
        ]
        assert [r.id for r in inspections] == [new.id]
        assert inspected.gateway.get_reminder(manual.id).title == "Inspection booking"
        snapshot = inspected.gateway.get_vehicle_snapshot("fit")
        assert snapshot.inspection_date == utc(2026, 8, 9)

    def test_update_inspection_to_none_removes_reminder(self, inspected):
        """Clearing the inspection date leaves no inspection reminder."""
        inspected.generate_initial_reminders("fit")
        assert inspected.update_inspection_reminders("fit", None) is None
        assert AUTO_INSPECTION not in {r.auto_type for r in inspected.reminders("fit", True)}
        assert inspected.gateway.get_vehicle_snapshot("fit").inspection_date is None


class TestQueries:
    """Tests for due and next-task queries."""

    @pytest.fixture
    def reminders(self, manager):
        return {
            "past": manager.create_reminder(
                "fit", "time", "Past", due_date=utc(2024, 7, 15)
            ),
            "km": manager.create_reminder("fit", "distance", "Km", due_km=47000),
            "future": manager.create_reminder(
                "fit", "time", "Future", due_date=utc(2024, 8, 30)
            ),
            "soon": manager.create_reminder(
                "fit", "time", "Soon", due_date=utc(2024, 7, 25)
            ),
        }

    def test_due_reminders(self, manager, reminders):
        """Due by date or by odometer."""
        due = manager.due_reminders("fit")
        assert {r.title for r in due} == {"Past", "Km"}

    def test_due_excludes_closed(self, manager, reminders):
        """Closed reminders are never due."""
        manager.mark_done(reminders["past"].id)
        assert [r.title for r in manager.due_reminders("fit")] == ["Km"]

    def test_due_at_later_time(self, manager, reminders):
        """An explicit 'now' moves the date horizon."""
        due = manager.due_reminders("fit", now=utc(2024, 9, 1))
        assert {r.title for r in due} == {"Past", "Km", "Future", "Soon"}

    def test_next_tasks(self, manager, reminders):
        """Ranked by priority, then due date."""
        top = manager.next_tasks("fit", limit=3)
        assert [r.title for r in top] == ["Past", "Km", "Soon"]

    def test_subscribe_open_only(self, manager, reminders):
        """Subscribers see only open reminders, until they unsubscribe."""
        received = []
        unsubscribe = manager.subscribe("fit", received.append)
        assert len(received[-1]) == 4

        manager.dismiss(reminders["future"].id)
        assert "Future" not in {r.title for r in received[-1]}
        unsubscribe()
        assert manager.gateway.listener_count("fit") == 0

    def test_subscribe_all(self, manager, reminders):
        """open_only=False streams closed reminders too."""
        received = []
        manager.subscribe("fit", received.append, open_only=False)
        manager.dismiss(reminders["future"].id)
        assert len(received[-1]) == 4
