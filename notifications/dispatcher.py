"""Delivers lifecycle side effects after the primary mutation.

Each effect, and each recipient of a fan-out, is delivered in isolation: a
failure is logged and counted, never raised to the caller.
"""

import logging
from typing import Iterable

from contracts import (
    DispatchReport,
    GatewayError,
    NotifyAdmins,
    NotifyUser,
    RecordAudit,
    SendSms,
)

from .audit import AuditLog
from .fanout import NotificationService
from .sms import SmsNotifier

logger = logging.getLogger(__name__)


class EffectDispatcher:
    """Routes each side effect to its channel."""

    def __init__(
        self,
        notifications: NotificationService,
        sms: SmsNotifier,
        audit: AuditLog,
    ):
        self.notifications = notifications
        self.sms = sms
        self.audit = audit

    def dispatch(self, effects: Iterable) -> DispatchReport:
        """Deliver every effect and report what happened."""
        report = DispatchReport()
        for effect in effects:
            report = report.merge(self.dispatch_one(effect))
        if report.failed:
            logger.warning("%d side effect(s) failed: %s", report.failed, "; ".join(report.errors))
        return report

    def dispatch_one(self, effect) -> DispatchReport:
        handler = {
            "notify_user": self._notify_user,
            "notify_admins": self._notify_admins,
            "send_sms": self._send_sms,
            "record_audit": self._record_audit,
        }.get(getattr(effect, "kind", None))
        if handler is None:
            logger.error("Unknown side effect: %r", effect)
            return DispatchReport(failed=1, errors=[f"unknown effect {effect!r}"])
        try:
            return handler(effect)
        except GatewayError as e:
            logger.warning("%s failed: %s", effect.kind, e.message)
            return DispatchReport(failed=1, errors=[f"{effect.kind}: {e.message}"])
        except Exception as e:
            logger.exception("%s failed", effect.kind)
            return DispatchReport(failed=1, errors=[f"{effect.kind}: {e}"])

    def _deliver(self, recipient: str, effect) -> DispatchReport:
        stored = self.notifications.notify(
            recipient,
            effect.type,
            effect.title,
            effect.message,
            link=effect.link,
            metadata=effect.metadata,
        )
        return DispatchReport(delivered=1) if stored else DispatchReport(skipped=1)

    def _notify_user(self, effect: NotifyUser) -> DispatchReport:
        return self._deliver(effect.recipient, effect)

    def _notify_admins(self, effect: NotifyAdmins) -> DispatchReport:
        report = DispatchReport()
        for admin in self.notifications.active_admins(effect.exclude_ids):
            try:
                report = report.merge(self._deliver(admin.id, effect))
            except Exception as e:
                logger.exception("Notification to admin %s failed", admin.id)
                report = report.merge(DispatchReport(failed=1, errors=[f"notify_admins[{admin.id}]: {e}"]))
        return report

    def _send_sms(self, effect: SendSms) -> DispatchReport:
        result = self.sms.send(
            effect.to,
            effect.template_code,
            effect.variables,
            user_id=effect.user_id,
            sent_by=effect.sent_by,
            context=effect.context,
            context_id=effect.context_id,
            skip_preferences=effect.skip_preferences,
        )
        return DispatchReport(skipped=1) if result.skipped else DispatchReport(delivered=1)

    def _record_audit(self, effect: RecordAudit) -> DispatchReport:
        self.audit.record_effect(effect)
        return DispatchReport(delivered=1)
