"""Best-effort notification fan-out, SMS, audit log and scheduled checks."""

from .fanout import NotificationService, accepts_notification
from .sms import (
    DEFAULT_MESSAGES,
    SmsNotifier,
    can_receive_sms,
    fill_template,
    format_phone_number,
)
from .audit import AuditLog
from .dispatcher import EffectDispatcher
from .deadlines import (
    DailyScheduler,
    DeadlineMonitor,
    reminder_kind,
    reminder_text,
    seconds_until_midnight,
)

__all__ = [
    "NotificationService",
    "accepts_notification",
    "DEFAULT_MESSAGES",
    "SmsNotifier",
    "can_receive_sms",
    "fill_template",
    "format_phone_number",
    "AuditLog",
    "EffectDispatcher",
    "DailyScheduler",
    "DeadlineMonitor",
    "reminder_kind",
    "reminder_text",
    "seconds_until_midnight",
]
