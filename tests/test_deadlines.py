"""Tests for the deadline monitor and the daily scheduler."""

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from contracts import Task, TaskStatus
from notifications import (
    AuditLog,
    DailyScheduler,
    DeadlineMonitor,
    EffectDispatcher,
    NotificationService,
    SmsNotifier,
    reminder_kind,
    seconds_until_midnight,
)
from store import Collections, to_document


TODAY = date(2025, 1, 15)


@pytest.fixture
def notifications(store, users, clock):
    return NotificationService(store, clock=clock)


@pytest.fixture
def monitor(store, notifications, gateway, clock):
    dispatcher = EffectDispatcher(
        notifications,
        SmsNotifier(store, gateway=gateway, clock=clock),
        AuditLog(store, clock=clock),
    )
    return DeadlineMonitor(store, notifications, dispatcher, clock=clock)


def add_task(store, **fields):
    task = Task(created_by="u-super", **fields)
    store.insert(Collections.TASKS, to_document(task))
    return task


class TestReminders:
    """Test upcoming deadline reminders."""

    def test_reminder_kinds(self):
        assert reminder_kind(0) == "deadline_today"
        assert reminder_kind(1) == "deadline_1_day"
        assert reminder_kind(2) == "deadline_2_days"

    def test_assignees_and_admins_are_reminded(self, monitor, store):
        task = add_task(
            store, title="Déposer le recours",
            assigned_to=["u-avocat"], due_date=datetime(2025, 1, 16, 18, 0),
        )
        result = monitor.check_task_deadlines(TODAY)
        assert result == {"success": True, "notifications_sent": 3}
        notices = store.find(Collections.NOTIFICATIONS, {"metadata.task_id": task.id})
        assert sorted(n["recipient"] for n in notices) == ["u-admin", "u-avocat", "u-super"]
        assert notices[0]["title"] == "Échéance demain"
        assert notices[0]["metadata"]["deadline_notification_type"] == "deadline_1_day"

    def test_same_day_rerun_sends_nothing(self, monitor, store):
        add_task(store, title="Relance", assigned_to=["u-avocat"], due_date=datetime(2025, 1, 15, 9, 0))
        assert monitor.check_task_deadlines(TODAY)["notifications_sent"] == 3
        assert monitor.check_task_deadlines(TODAY)["notifications_sent"] == 0

    def test_assignee_who_is_admin_is_notified_once(self, monitor, store):
        add_task(store, title="Audience", assigned_to=["u-admin"], due_date=datetime(2025, 1, 17))
        assert monitor.check_task_deadlines(TODAY)["notifications_sent"] == 2

    def test_ignores_far_closed_and_undated_tasks(self, monitor, store):
        add_task(store, title="Loin", due_date=datetime(2025, 2, 1))
        add_task(store, title="Fini", due_date=datetime(2025, 1, 16), status=TaskStatus.TERMINE)
        add_task(store, title="Sans date")
        assert monitor.check_task_deadlines(TODAY)["notifications_sent"] == 0


class TestOverdue:
    """Test overdue task alerts."""

    def test_admins_alerted_in_app_and_by_sms(self, monitor, store, gateway):
        add_task(
            store, title="Pièces préfecture",
            assigned_to=["u-avocat"], due_date=datetime(2025, 1, 12, 9, 0),
        )
        result = monitor.check_overdue_tasks(TODAY)
        assert result == {"success": True, "count": 1, "notifications_sent": 2, "sms_sent": 1}
        (text,) = gateway.sent
        assert text.to == "+33611111111"
        assert "Claire Roux" in text.body
        assert "3 jour(s)" in text.body
        notice = store.find_one(Collections.NOTIFICATIONS, {"recipient": "u-super"})
        assert notice["type"] == "task_overdue"
        assert "en retard de 3 jours" in notice["message"]

    def test_overdue_alert_once_per_day(self, monitor, store):
        add_task(store, title="Retard", due_date=datetime(2025, 1, 10))
        monitor.check_overdue_tasks(TODAY)
        result = monitor.check_overdue_tasks(TODAY)
        assert result["count"] == 1
        assert result["notifications_sent"] == 0
        assert result["sms_sent"] == 0

    def test_done_tasks_are_not_overdue(self, monitor, store):
        add_task(store, title="Fait", due_date=datetime(2025, 1, 10), done=True)
        add_task(store, title="Annulée", due_date=datetime(2025, 1, 10), status=TaskStatus.ANNULE)
        assert monitor.check_overdue_tasks(TODAY) == {
            "success": True, "count": 0, "notifications_sent": 0, "sms_sent": 0,
        }

    def test_unassigned_label(self, monitor, store):
        add_task(store, title="Orpheline", due_date=datetime(2025, 1, 14))
        monitor.check_overdue_tasks(TODAY)
        notice = store.find_one(Collections.NOTIFICATIONS, {"recipient": "u-admin"})
        assert "Non assignée" in notice["message"]
        assert "1 jour " in notice["message"]

    def test_run_daily(self, monitor, store):
        add_task(store, title="Demain", due_date=datetime(2025, 1, 16))
        add_task(store, title="Hier", due_date=datetime(2025, 1, 14))
        result = monitor.run_daily()
        assert result["deadlines"]["notifications_sent"] == 2
        assert result["overdue"]["count"] == 1


class TestDailyScheduler:
    """Test the midnight scheduler loop."""

    def test_seconds_until_midnight(self):
        assert seconds_until_midnight(datetime(2025, 1, 15, 23, 0)) == 3600
        assert seconds_until_midnight(datetime(2025, 1, 15, 0, 0)) == 86400

    def test_runs_immediately_then_waits(self):
        job = MagicMock(return_value={"success": True})
        sleep = MagicMock()
        scheduler = DailyScheduler([job], clock=lambda: datetime(2025, 1, 15, 22, 0), sleep=sleep)
        scheduler.run_forever(max_runs=3)
        assert job.call_count == 3
        assert scheduler.runs == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(7200)

    def test_failing_job_does_not_stop_others(self):
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock(return_value="ok")
        scheduler = DailyScheduler([broken, healthy], sleep=MagicMock())
        assert scheduler.run_once() == [None, "ok"]
        assert healthy.called
