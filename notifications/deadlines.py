"""Daily task deadline reminders and overdue alerts."""

import logging
import time
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from config import settings
from contracts import (
    CLOSED_TASK_STATUSES,
    NotificationType,
    NotifyUser,
    SendSms,
    SmsContext,
    Task,
)
from store import Collections, RecordStore

from .dispatcher import EffectDispatcher
from .fanout import NotificationService

logger = logging.getLogger(__name__)


TASKS_LINK = "/admin/taches"

REMINDER_TITLES = {
    2: "Échéance dans 2 jours",
    1: "Échéance demain",
    0: "Échéance aujourd'hui",
}


def reminder_kind(days: int) -> str:
    if days == 0:
        return "deadline_today"
    if days == 1:
        return "deadline_1_day"
    return f"deadline_{days}_days"


def reminder_text(title: str, days: int, due_label: str) -> str:
    if days == 0:
        when = "aujourd'hui"
    elif days == 1:
        when = "demain"
    else:
        when = f"dans {days} jours"
    return f"La tâche \"{title}\" arrive à échéance {when} ({due_label})."


class DeadlineMonitor:
    """Finds tasks nearing or past their due date and notifies people about them.

    Both checks are idempotent within a calendar day: a recipient gets a
    given reminder for a given task at most once per day.
    """

    def __init__(
        self,
        store: RecordStore,
        notifications: NotificationService,
        dispatcher: EffectDispatcher,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.notifications = notifications
        self.dispatcher = dispatcher
        self.clock = clock

    def _open_tasks(self, due_before: Optional[datetime] = None) -> List[Task]:
        due: Dict[str, Any] = {"$exists": True, "$ne": None}
        filter: Dict[str, Any] = {
            "due_date": due,
            "status": {"$nin": [s.value for s in CLOSED_TASK_STATUSES]},
        }
        if due_before is not None:
            due["$lt"] = due_before
            filter["done"] = {"$ne": True}
        return [Task.model_validate(d) for d in self.store.find(Collections.TASKS, filter)]

    def _day_bounds(self, today: date):
        start = datetime.combine(today, datetime.min.time())
        return start, start + timedelta(days=1)

    def _already_sent(self, today: date, filter: Dict[str, Any]) -> bool:
        start, end = self._day_bounds(today)
        return self.store.count(Collections.NOTIFICATIONS, {
            **filter,
            "created_at": {"$gte": start, "$lt": end},
        }) > 0

    def _user_name(self, user_id: str) -> Optional[str]:
        user = self.notifications.get_user(user_id)
        return user.display_name if user else None

    def check_task_deadlines(self, today: Optional[date] = None) -> Dict[str, Any]:
        """Send reminders for tasks due in one of `settings.deadline_reminder_days` days."""
        today = today or self.clock().date()
        admins = self.notifications.active_admins()
        sent = 0

        for task in self._open_tasks():
            days = (task.due_date.date() - today).days
            if days not in settings.deadline_reminder_days:
                continue

            kind = reminder_kind(days)
            due_label = task.due_date.strftime(settings.date_label_format)
            recipients = list(dict.fromkeys(task.assigned_to + [a.id for a in admins]))
            effects = []
            for recipient in recipients:
                if self._already_sent(today, {
                    "recipient": recipient,
                    "metadata.task_id": task.id,
                    "metadata.deadline_notification_type": kind,
                }):
                    continue
                effects.append(NotifyUser(
                    recipient=recipient,
                    type=NotificationType.TASK_DEADLINE.value,
                    title=REMINDER_TITLES.get(days, f"Échéance dans {days} jours"),
                    message=reminder_text(task.title, days, due_label),
                    link=TASKS_LINK,
                    metadata={
                        "task_id": task.id,
                        "deadline_notification_type": kind,
                        "deadline_date": task.due_date.isoformat(),
                        "days_until_deadline": days,
                    },
                ))
            sent += self.dispatcher.dispatch(effects).delivered

        logger.info("Deadline check done: %d notification(s) sent", sent)
        return {"success": True, "notifications_sent": sent}

    def check_overdue_tasks(self, today: Optional[date] = None) -> Dict[str, Any]:
        """Alert every administrator, in-app and by SMS, about overdue tasks."""
        today = today or self.clock().date()
        start, _ = self._day_bounds(today)
        overdue = self._open_tasks(due_before=start)
        if not overdue:
            return {"success": True, "count": 0, "notifications_sent": 0, "sms_sent": 0}

        admins = self.notifications.active_admins()
        notifications_sent = 0
        sms_sent = 0

        for task in overdue:
            if self._already_sent(today, {"metadata.task_id": task.id, "metadata.overdue_notification": True}):
                continue

            names = [n for n in (self._user_name(uid) for uid in task.assigned_to) if n]
            assigned = ", ".join(names) or "Non assignée"
            days_overdue = (today - task.due_date.date()).days
            title = task.title or "Sans titre"
            due_label = task.due_date.strftime(settings.date_label_format)
            plural = "s" if days_overdue > 1 else ""

            notices = [
                NotifyUser(
                    recipient=admin.id,
                    type=NotificationType.TASK_OVERDUE.value,
                    title="Tâche en retard",
                    message=(
                        f"La tâche \"{title}\" assignée à {assigned} est en retard de "
                        f"{days_overdue} jour{plural} (échéance: {due_label})."
                    ),
                    link=TASKS_LINK,
                    metadata={
                        "task_id": task.id,
                        "assigned_to": task.assigned_to,
                        "days_overdue": days_overdue,
                        "deadline_date": task.due_date.isoformat(),
                        "overdue_notification": True,
                    },
                )
                for admin in admins
            ]
            texts = [
                SendSms(
                    to=admin.phone,
                    template_code="task_overdue",
                    variables={
                        "taskTitle": title,
                        "assignedTo": assigned,
                        "daysOverdue": str(days_overdue),
                        "deadlineDate": due_label,
                    },
                    user_id=admin.id,
                    context=SmsContext.TASK,
                    context_id=task.id,
                    skip_preferences=True,
                )
                for admin in admins if admin.phone
            ]
            notifications_sent += self.dispatcher.dispatch(notices).delivered
            sms_sent += self.dispatcher.dispatch(texts).delivered

        logger.info(
            "Overdue check done: %d notification(s), %d SMS sent",
            notifications_sent, sms_sent,
        )
        return {
            "success": True,
            "count": len(overdue),
            "notifications_sent": notifications_sent,
            "sms_sent": sms_sent,
        }

    def run_daily(self) -> Dict[str, Any]:
        """Both checks, as run once a day by the scheduler."""
        return {
            "deadlines": self.check_task_deadlines(),
            "overdue": self.check_overdue_tasks(),
        }


def seconds_until_midnight(now: datetime) -> float:
    tomorrow = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    return (tomorrow - now).total_seconds()


class DailyScheduler:
    """Runs jobs once at start, then at every midnight.

    Runs are sequential; a run always finishes before the next wait starts.
    """

    def __init__(
        self,
        jobs: Sequence[Callable[[], Any]],
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.jobs = list(jobs)
        self.clock = clock
        self.sleep = sleep
        self.runs = 0

    def run_once(self) -> List[Any]:
        results = []
        for job in self.jobs:
            try:
                results.append(job())
            except Exception:
                logger.exception("Scheduled job %s failed", getattr(job, "__name__", job))
                results.append(None)
        self.runs += 1
        return results

    def run_forever(self, max_runs: Optional[int] = None) -> None:
        """Loop until `max_runs` runs have completed (forever if None)."""
        while True:
            self.run_once()
            if max_runs is not None and self.runs >= max_runs:
                return
            wait = seconds_until_midnight(self.clock())
            logger.info("Next scheduled run in %.0f seconds", wait)
            self.sleep(wait)
