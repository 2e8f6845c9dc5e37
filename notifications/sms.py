"""Template-based outbound SMS with preferences and delivery history."""

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import settings
from contracts import (
    GatewayError,
    SmsContext,
    SmsHistoryEntry,
    SmsResult,
    SmsStatus,
    SmsTemplate,
    UserAccount,
)
from providers import SmsGateway, get_gateway
from store import Collections, RecordStore, to_document

logger = logging.getLogger(__name__)


# Built-in texts used when no active template exists for a code
DEFAULT_MESSAGES: Dict[str, str] = {
    "dossier_created": 'Votre dossier "{{dossierTitle}}" a été créé. Référence: {{dossierId}}. {{brand}}.',
    "dossier_updated": 'Votre dossier "{{dossierTitle}}" a été mis à jour. Statut: {{statut}}. {{brand}}.',
    "dossier_status_changed": 'Votre dossier "{{dossierTitle}}" a changé de statut: {{statut}}. {{brand}}.',
    "message_received": "Vous avez reçu un nouveau message de {{senderName}}. Connectez-vous pour le consulter. {{brand}}.",
    "task_assigned": "Une nouvelle tâche vous a été assignée: {{taskTitle}}. {{brand}}.",
    "task_reminder": 'Rappel: La tâche "{{taskTitle}}" est due le {{dateEcheance}}. {{brand}}.',
    "task_overdue": (
        'ALERTE: La tâche "{{taskTitle}}" assignée à {{assignedTo}} est en retard de '
        "{{daysOverdue}} jour(s). Échéance: {{deadlineDate}}. {{brand}}."
    ),
    "otp": "Votre code de vérification est {{code}}. {{brand}}.",
}

GENERIC_MESSAGE = "Vous avez reçu une notification de {{brand}}."

_SEPARATORS = re.compile(r"[\s\-.()]")


def format_phone_number(phone: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """Normalize a phone number to E.164.

    National numbers (leading 0) get the default country code; other
    numbers without a leading + get one.
    """
    if not phone:
        return None
    country_code = country_code or settings.default_country_code
    cleaned = _SEPARATORS.sub("", phone)
    if not cleaned:
        return None
    if cleaned.startswith("0"):
        return country_code + cleaned[1:]
    if cleaned.startswith("+"):
        return cleaned
    return "+" + cleaned


def fill_template(template: str, variables: Optional[Dict[str, Any]] = None) -> str:
    """Replace {{name}} placeholders; missing or None values become empty strings."""
    message = template
    for key, value in (variables or {}).items():
        message = message.replace("{{" + key + "}}", "" if value is None else str(value))
    return message


def can_receive_sms(user: Optional[UserAccount], sms_type: str) -> bool:
    """Per-user SMS preference gate. Critical types are never suppressed."""
    if user is None or user.sms_preferences is None:
        return True
    if sms_type in settings.critical_notification_types:
        return True
    if not user.sms_preferences.enabled:
        return False
    return user.sms_preferences.types.get(sms_type, True) is not False


class SmsNotifier:
    """Sends template SMS through a gateway and records every attempt."""

    def __init__(
        self,
        store: RecordStore,
        gateway: Optional[SmsGateway] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.gateway = gateway or get_gateway()
        self.clock = clock

    def find_template(self, code: str) -> Optional[SmsTemplate]:
        doc = self.store.find_one(Collections.SMS_TEMPLATES, {"code": code, "is_active": True})
        return SmsTemplate.model_validate(doc) if doc else None

    def render(self, code: str, variables: Optional[Dict[str, Any]] = None) -> Tuple[str, str, str]:
        """Resolve a code to (template_code, template_name, message).

        Stored active templates win over built-in texts; unknown codes fall
        back to `variables["message"]` or a generic text.
        """
        data = {"brand": settings.brand_name, **(variables or {})}
        template = self.find_template(code)
        if template:
            return template.code, template.name, fill_template(template.message, data)
        text = DEFAULT_MESSAGES.get(code) or data.get("message") or GENERIC_MESSAGE
        return code, code, fill_template(text, data)

    def _record(self, **fields: Any) -> Optional[str]:
        """Append a history entry; history failures never affect delivery."""
        try:
            entry = SmsHistoryEntry(sent_at=self.clock(), **fields)
            self.store.insert(Collections.SMS_HISTORY, to_document(entry))
            return entry.id
        except Exception:
            logger.exception("Failed to record SMS history for %s", fields.get("to"))
            return None

    def send(
        self,
        to: str,
        template_code: str,
        variables: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        sent_by: Optional[str] = None,
        context: SmsContext = SmsContext.OTHER,
        context_id: Optional[str] = None,
        skip_preferences: bool = False,
    ) -> SmsResult:
        """Render and send one SMS.

        Returns:
            SmsResult; `skipped` is set when the recipient's preferences
            suppress this type

        Raises:
            GatewayError: delivery failed (a failed history entry is recorded first)
        """
        variables = variables or {}
        if user_id and not skip_preferences:
            doc = self.store.get(Collections.USERS, user_id)
            user = UserAccount.model_validate(doc) if doc else None
            if user and not can_receive_sms(user, template_code):
                logger.info("SMS %s not sent: user %s opted out", template_code, user_id)
                return SmsResult(
                    success=False,
                    skipped=True,
                    reason="user_preferences",
                    template_code=template_code,
                )

        code, name, message = self.render(template_code, variables)
        formatted = format_phone_number(to)
        history = {
            "message": message,
            "template_code": code,
            "template_name": name,
            "variables": variables,
            "sent_by": sent_by,
            "sent_to_user": user_id,
            "context": context,
            "context_id": context_id,
        }

        try:
            if not formatted:
                raise GatewayError(f"Invalid phone number: {to}")
            delivery = self.gateway.send(formatted, message)
        except Exception as e:
            error = e if isinstance(e, GatewayError) else GatewayError(str(e))
            logger.warning("SMS %s to %s failed: %s", code, formatted or to, error.message)
            self._record(to=formatted or to or "", status=SmsStatus.FAILED, error=error.message, **history)
            if error is e:
                raise
            raise error from e

        status = SmsStatus.SENT if delivery.status in ("sent", "queued") else SmsStatus.PENDING
        history_id = self._record(
            to=delivery.to,
            status=status,
            provider_sid=delivery.sid,
            provider_status=delivery.status,
            **{**history, "message": delivery.body},
        )
        return SmsResult(
            success=True,
            to=delivery.to,
            message=delivery.body,
            template_code=code,
            sid=delivery.sid,
            history_id=history_id,
        )

    def history(self, filter: Optional[Dict[str, Any]] = None) -> List[SmsHistoryEntry]:
        docs = self.store.find(Collections.SMS_HISTORY, filter, sort=[("sent_at", -1)])
        return [SmsHistoryEntry.model_validate(d) for d in docs]
