"""
SpaceOps - Escalation Job Tests
================================
Tests: overdue-check, SLA-warning, schedule-trigger
"""

import datetime

from app.escalation import engine
from app.escalation.engine import (
    check_overdue_tasks, check_sla_warnings, trigger_scheduled_inspections,
)
from app.notifications.models import list_notifications
from app.schedules.models import get_schedule
from app.storage import eq
from tests.conftest import (
    NOW, assign_to_building, seed_building, seed_schedule, seed_site,
    seed_task, seed_user,
)


def hours(n):
    return datetime.timedelta(hours=n)


# ============================================================================
# OVERDUE CHECK
# ============================================================================

class TestOverdueCheck:

    def test_creator_in_app_assignee_all_channels(self, storage, dispatcher, fake_provider):
        _, (space_id,) = seed_site(storage)
        creator = seed_user(storage, name="Sup", role="supervisor", phone="5550000001")
        assignee = seed_user(storage, name="Tech", phone="5550000002")
        seed_task(storage, space_id, creator, assigned_to=assignee,
                  due_date=NOW - datetime.timedelta(days=2), description="Fix leaking tap")

        summary = check_overdue_tasks(storage, dispatcher, NOW)

        assert summary == {"checked": 1, "overdue": 1, "notified": 2}
        assert [p.to for p in fake_provider.sms] == ["5550000002"]
        [creator_note] = list_notifications(storage, creator)
        assert creator_note.message == 'SpaceOps: Task in Room 100 is 2d overdue - "Fix leaking tap"'
        assert creator_note.link.startswith("/tasks#")
        assert len(list_notifications(storage, assignee)) == 1

    def test_run_twice_in_window_one_row_one_sms(self, storage, dispatcher, fake_provider):
        _, (space_id,) = seed_site(storage)
        owner = seed_user(storage, phone="5550000003")
        seed_task(storage, space_id, owner, assigned_to=owner, due_date=NOW - hours(3))

        first = check_overdue_tasks(storage, dispatcher, NOW)
        second = check_overdue_tasks(storage, dispatcher, NOW + datetime.timedelta(minutes=45))

        assert first["notified"] == 1
        assert second == {"checked": 1, "overdue": 1, "notified": 0}
        assert storage.count("notifications", [eq("user_id", owner)]) == 1
        assert len(fake_provider.sms) == 1

    def test_under_a_day_label(self, storage, dispatcher):
        _, (space_id,) = seed_site(storage)
        creator = seed_user(storage)
        seed_task(storage, space_id, creator, due_date=NOW - hours(5), description="x" * 100)

        check_overdue_tasks(storage, dispatcher, NOW)

        [note] = list_notifications(storage, creator)
        assert "is <1d overdue" in note.message
        assert note.message.endswith('"' + "x" * 60 + '"')

    def test_closed_and_future_tasks_ignored(self, storage, dispatcher):
        _, (space_id,) = seed_site(storage)
        creator = seed_user(storage)
        seed_task(storage, space_id, creator, due_date=NOW - hours(5), status="closed")
        seed_task(storage, space_id, creator, due_date=NOW + hours(5))
        seed_task(storage, space_id, creator, due_date=None)

        summary = check_overdue_tasks(storage, dispatcher, NOW)

        assert summary == {"checked": 0, "overdue": 0, "notified": 0}

    def test_missing_creator_still_notifies_assignee(self, storage, dispatcher):
        _, (space_id,) = seed_site(storage)
        assignee = seed_user(storage)
        seed_task(storage, space_id, "ghost-user", assigned_to=assignee, due_date=NOW - hours(2))

        summary = check_overdue_tasks(storage, dispatcher, NOW)

        assert summary["notified"] == 1
        assert len(list_notifications(storage, assignee)) == 1

    def test_failing_task_does_not_stop_the_rest(self, storage, dispatcher, monkeypatch):
        _, (space_id,) = seed_site(storage)
        owner = seed_user(storage)
        seed_task(storage, space_id, owner, assigned_to=owner, due_date=NOW - hours(6))
        seed_task(storage, space_id, owner, assigned_to=owner, due_date=NOW - hours(2))

        real_space_name = engine.get_space_name
        lookups = []

        def flaky_space_name(storage, space_id):
            lookups.append(space_id)
            if len(lookups) == 1:
                raise RuntimeError("space lookup failed")
            return real_space_name(storage, space_id)

        reported = []
        monkeypatch.setattr(engine, "get_space_name", flaky_space_name)
        monkeypatch.setattr(engine, "capture_exception", lambda e, ctx=None: reported.append(ctx))

        summary = check_overdue_tasks(storage, dispatcher, NOW)

        assert summary == {"checked": 2, "overdue": 2, "notified": 1}
        assert len(list_notifications(storage, owner)) == 1
        assert [ctx["job"] for ctx in reported] == ["overdue-check"]

    def test_provider_outage_does_not_stop_other_tasks(self, storage, dispatcher, fake_provider):
        fake_provider.raise_error = True
        _, (space_id,) = seed_site(storage)
        creator = seed_user(storage, role="supervisor")
        first = seed_user(storage, name="Tech A", phone="5550000031")
        second = seed_user(storage, name="Tech B", phone="5550000032")
        seed_task(storage, space_id, creator, assigned_to=first, due_date=NOW - hours(4))
        seed_task(storage, space_id, creator, assigned_to=second, due_date=NOW - hours(1))

        summary = check_overdue_tasks(storage, dispatcher, NOW)

        assert summary == {"checked": 2, "overdue": 2, "notified": 4}
        assert [p.to for p in fake_provider.sms] == ["5550000031", "5550000032"]
        assert len(list_notifications(storage, first)) == 1
        assert len(list_notifications(storage, second)) == 1


# ============================================================================
# SLA WARNING
# ============================================================================

class TestSlaWarning:

    def test_warns_assignee_within_four_hours(self, storage, dispatcher, fake_provider):
        _, (space_id,) = seed_site(storage)
        creator = seed_user(storage)
        assignee = seed_user(storage, phone="5550000004")
        seed_task(storage, space_id, creator, assigned_to=assignee,
                  due_date=NOW + datetime.timedelta(hours=2, minutes=20), description="Clean vents")

        summary = check_sla_warnings(storage, dispatcher, NOW)

        assert summary == {"checked": 1, "notified": 1, "sms_sent": 1}
        assert fake_provider.sms[0].body == 'SpaceOps SLA Warning: Task in Room 100 is due in 2h - "Clean vents"'
        assert list_notifications(storage, creator) == []

    def test_minimum_one_hour(self, storage, dispatcher, fake_provider):
        _, (space_id,) = seed_site(storage)
        assignee = seed_user(storage, phone="5550000005")
        seed_task(storage, space_id, assignee, assigned_to=assignee,
                  due_date=NOW + datetime.timedelta(minutes=10))

        check_sla_warnings(storage, dispatcher, NOW)

        assert "is due in 1h" in fake_provider.sms[0].body

    def test_outside_horizon_or_unassigned_ignored(self, storage, dispatcher):
        _, (space_id,) = seed_site(storage)
        user = seed_user(storage)
        seed_task(storage, space_id, user, assigned_to=user, due_date=NOW + hours(5))
        seed_task(storage, space_id, user, assigned_to=user, due_date=NOW - hours(1))
        seed_task(storage, space_id, user, assigned_to=None, due_date=NOW + hours(1))

        assert check_sla_warnings(storage, dispatcher, NOW) == {"checked": 0, "notified": 0, "sms_sent": 0}

    def test_boundary_exactly_four_hours_included(self, storage, dispatcher):
        _, (space_id,) = seed_site(storage)
        user = seed_user(storage)
        seed_task(storage, space_id, user, assigned_to=user, due_date=NOW + hours(4))

        assert check_sla_warnings(storage, dispatcher, NOW)["checked"] == 1

    def test_rerun_is_suppressed(self, storage, dispatcher, fake_provider):
        _, (space_id,) = seed_site(storage)
        user = seed_user(storage, phone="5550000006")
        seed_task(storage, space_id, user, assigned_to=user, due_date=NOW + hours(3))

        check_sla_warnings(storage, dispatcher, NOW)
        second = check_sla_warnings(storage, dispatcher, NOW + hours(1))

        assert second["notified"] == 0
        assert len(fake_provider.sms) == 1


# ============================================================================
# SCHEDULE TRIGGER
# ============================================================================

class TestScheduleTrigger:

    def test_advances_with_no_recipients(self, storage, dispatcher):
        building_id, _ = seed_site(storage)
        schedule_id = seed_schedule(storage, building_id, frequency="weekly", day_of_week=1,
                                    next_due_at=NOW - hours(1))

        summary = trigger_scheduled_inspections(storage, dispatcher, NOW)

        assert summary == {"checked": 1, "notified": 0, "advanced": 1, "skipped_archived": 0}
        schedule = get_schedule(storage, schedule_id)
        assert schedule.next_due_at == datetime.datetime(2026, 3, 16, 9, 0)
        assert schedule.next_due_at > NOW
        assert schedule.last_triggered_at == NOW

    def test_notifies_explicit_assignee(self, storage, dispatcher):
        building_id, _ = seed_site(storage, spaces=2)
        inspector = seed_user(storage, name="Inspector")
        supervisor = seed_user(storage, role="supervisor")
        assign_to_building(storage, building_id, supervisor)
        seed_schedule(storage, building_id, assigned_to=inspector, next_due_at=NOW)

        summary = trigger_scheduled_inspections(storage, dispatcher, NOW)

        assert summary["notified"] == 1
        [note] = list_notifications(storage, inspector)
        assert note.message == ("SpaceOps: Inspection scheduled for North Tower (2 spaces). "
                                "Please begin inspections.")
        assert note.link.startswith(f"/buildings/{building_id}")
        assert list_notifications(storage, supervisor) == []

    def test_falls_back_to_building_admins_and_supervisors(self, storage, dispatcher):
        building_id, _ = seed_site(storage)
        admin = seed_user(storage, role="admin")
        supervisor = seed_user(storage, role="supervisor")
        staff = seed_user(storage, role="staff")
        for user_id in (admin, supervisor, staff):
            assign_to_building(storage, building_id, user_id)
        seed_schedule(storage, building_id, next_due_at=NOW - hours(2))

        summary = trigger_scheduled_inspections(storage, dispatcher, NOW)

        assert summary["notified"] == 2
        assert len(list_notifications(storage, admin)) == 1
        assert len(list_notifications(storage, supervisor)) == 1
        assert list_notifications(storage, staff) == []

    def test_archived_building_advances_silently(self, storage, dispatcher):
        building_id = seed_building(storage, archived=True)
        admin = seed_user(storage, role="admin")
        assign_to_building(storage, building_id, admin)
        schedule_id = seed_schedule(storage, building_id, frequency="daily", next_due_at=NOW - hours(1))

        summary = trigger_scheduled_inspections(storage, dispatcher, NOW)

        assert summary == {"checked": 1, "notified": 0, "advanced": 1, "skipped_archived": 1}
        assert get_schedule(storage, schedule_id).next_due_at == datetime.datetime(2026, 3, 12, 9, 0)
        assert list_notifications(storage, admin) == []

    def test_missing_building_is_advanced(self, storage, dispatcher):
        schedule_id = seed_schedule(storage, "no-such-building", next_due_at=NOW - hours(1))

        summary = trigger_scheduled_inspections(storage, dispatcher, NOW)

        assert summary["advanced"] == 1
        assert get_schedule(storage, schedule_id).next_due_at > NOW

    def test_notify_failure_still_advances(self, storage, dispatcher, monkeypatch):
        building_id, _ = seed_site(storage)
        failing_id = seed_schedule(storage, building_id, frequency="daily", next_due_at=NOW - hours(2))
        healthy_id = seed_schedule(storage, building_id, frequency="daily", next_due_at=NOW - hours(1))

        def broken_notify(storage, dispatcher, schedule, building, now):
            if schedule.id == failing_id:
                raise RuntimeError("recipient lookup failed")
            return 1

        monkeypatch.setattr(engine, "_notify_schedule", broken_notify)
        monkeypatch.setattr(engine, "capture_exception", lambda e, ctx=None: None)

        summary = trigger_scheduled_inspections(storage, dispatcher, NOW)

        assert summary == {"checked": 2, "notified": 1, "advanced": 2, "skipped_archived": 0}
        for schedule_id in (failing_id, healthy_id):
            schedule = get_schedule(storage, schedule_id)
            assert schedule.next_due_at == datetime.datetime(2026, 3, 12, 9, 0)
            assert schedule.last_triggered_at == NOW

    def test_disabled_and_future_schedules_not_selected(self, storage, dispatcher):
        building_id, _ = seed_site(storage)
        seed_schedule(storage, building_id, enabled=False, next_due_at=NOW - hours(1))
        seed_schedule(storage, building_id, next_due_at=NOW + hours(1))

        assert trigger_scheduled_inspections(storage, dispatcher, NOW)["checked"] == 0

    def test_second_run_finds_nothing_due(self, storage, dispatcher):
        building_id, _ = seed_site(storage)
        seed_schedule(storage, building_id, next_due_at=NOW - hours(1))

        trigger_scheduled_inspections(storage, dispatcher, NOW)
        assert trigger_scheduled_inspections(storage, dispatcher, NOW + hours(1))["checked"] == 0
