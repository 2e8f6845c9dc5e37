"""Tests for in-app notifications, SMS delivery, the audit log and effect dispatch."""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from contracts import (
    GatewayError,
    NotifyAdmins,
    NotifyUser,
    RecordAudit,
    SendSms,
    SmsContext,
    SmsPreferences,
    SmsStatus,
    SmsTemplate,
    UserAccount,
)
from notifications import (
    AuditLog,
    EffectDispatcher,
    NotificationService,
    SmsNotifier,
    accepts_notification,
    can_receive_sms,
    fill_template,
    format_phone_number,
)
from providers import SmsGateway
from store import Collections, to_document


@pytest.fixture
def notifications(store, users, clock):
    return NotificationService(store, clock=clock)


@pytest.fixture
def sms(store, users, gateway, clock):
    return SmsNotifier(store, gateway=gateway, clock=clock)


@pytest.fixture
def audit(store, clock):
    return AuditLog(store, clock=clock)


@pytest.fixture
def dispatcher(notifications, sms, audit):
    return EffectDispatcher(notifications, sms, audit)


class TestHelpers:
    """Test template and phone helpers."""

    def test_fill_template(self):
        text = fill_template("Bonjour {{name}}, dossier {{ref}}{{missing}}", {"name": "Chloé", "ref": None})
        assert text == "Bonjour Chloé, dossier {{missing}}"

    @pytest.mark.parametrize("raw,expected", [
        ("06 12 34 56 78", "+33612345678"),
        ("06.12.34.56.78", "+33612345678"),
        ("+44 20 7946 0958", "+442079460958"),
        ("33612345678", "+33612345678"),
        ("", None),
        (None, None),
    ])
    def test_format_phone_number(self, raw, expected):
        assert format_phone_number(raw) == expected

    def test_format_phone_number_country_code(self):
        assert format_phone_number("0612345678", "+32") == "+32612345678"

    def test_sms_preferences(self):
        opted_out = UserAccount(sms_preferences=SmsPreferences(enabled=False))
        selective = UserAccount(sms_preferences=SmsPreferences(types={"message_received": False}))
        assert can_receive_sms(None, "dossier_created") is True
        assert can_receive_sms(UserAccount(), "dossier_created") is True
        assert can_receive_sms(opted_out, "dossier_created") is False
        assert can_receive_sms(opted_out, "otp") is True
        assert can_receive_sms(selective, "message_received") is False
        assert can_receive_sms(selective, "dossier_created") is True

    def test_notification_preferences(self):
        user = UserAccount(notification_preferences={"dossier_updated": False, "otp": False})
        assert accepts_notification(user, "dossier_updated") is False
        assert accepts_notification(user, "dossier_created") is True
        assert accepts_notification(user, "otp") is True
        assert accepts_notification(None, "dossier_updated") is True


class TestNotificationService:
    """Test in-app notification storage."""

    def test_notify_stores_notification(self, notifications, store):
        stored = notifications.notify("u-client", "dossier_created", "Titre", "Message", link="/client/dossiers")
        assert stored.created_at == datetime(2025, 1, 15, 10, 30)
        assert store.count(Collections.NOTIFICATIONS, {"recipient": "u-client"}) == 1

    def test_opted_out_recipient(self, notifications, store):
        store.update(Collections.USERS, "u-client", {"notification_preferences": {"dossier_updated": False}})
        assert notifications.notify("u-client", "dossier_updated", "t", "m") is None
        assert store.count(Collections.NOTIFICATIONS) == 0

    def test_active_admins(self, notifications, store):
        assert sorted(u.id for u in notifications.active_admins()) == ["u-admin", "u-super"]
        assert [u.id for u in notifications.active_admins(["u-super"])] == ["u-admin"]
        store.update(Collections.USERS, "u-admin", {"is_active": False})
        assert [u.id for u in notifications.active_admins()] == ["u-super"]

    def test_for_recipient_and_mark_read(self, notifications):
        first = notifications.notify("u-avocat", "other", "t1", "m1")
        notifications.notify("u-avocat", "other", "t2", "m2")
        assert notifications.mark_read(first.id) is True
        assert len(notifications.for_recipient("u-avocat")) == 2
        assert [n.title for n in notifications.for_recipient("u-avocat", unread_only=True)] == ["t2"]


class TestSmsNotifier:
    """Test template rendering and SMS delivery."""

    def test_render_builtin_text(self, sms):
        code, name, message = sms.render("dossier_created", {"dossierTitle": "Asile", "dossierId": "DOS-1"})
        assert code == name == "dossier_created"
        assert message == 'Votre dossier "Asile" a été créé. Référence: DOS-1. Paw Legal.'

    def test_stored_template_wins(self, sms, store):
        template = SmsTemplate(code="dossier_created", name="Création", message="Dossier {{dossierId}} ouvert")
        store.insert(Collections.SMS_TEMPLATES, to_document(template))
        assert sms.render("dossier_created", {"dossierId": "DOS-1"}) == ("dossier_created", "Création", "Dossier DOS-1 ouvert")

    def test_inactive_template_ignored(self, sms, store):
        template = SmsTemplate(code="otp", name="OTP", message="Code {{code}}", is_active=False)
        store.insert(Collections.SMS_TEMPLATES, to_document(template))
        assert sms.render("otp", {"code": "1234"})[2].startswith("Votre code de vérification est 1234")

    def test_unknown_code_uses_message_variable(self, sms):
        assert sms.render("custom", {"message": "Rappel RDV"})[2] == "Rappel RDV"
        assert sms.render("custom")[2] == "Vous avez reçu une notification de Paw Legal."

    def test_send_records_history(self, sms, gateway):
        result = sms.send(
            "06 12 34 56 78", "otp", {"code": "9876"},
            user_id="u-client", context=SmsContext.OTP,
        )
        assert result.success is True
        assert result.to == "+33612345678"
        assert gateway.sent[0].body.startswith("Votre code de vérification est 9876")
        (entry,) = sms.history()
        assert entry.status == SmsStatus.SENT
        assert entry.provider_sid == result.sid
        assert entry.sent_to_user == "u-client"
        assert entry.id == result.history_id

    def test_preferences_skip_send(self, sms, store, gateway):
        store.update(Collections.USERS, "u-client", {"sms_preferences": {"enabled": False, "types": {}}})
        result = sms.send("0612345678", "dossier_created", user_id="u-client")
        assert result.skipped is True
        assert result.reason == "user_preferences"
        assert gateway.sent == []
        assert sms.history() == []

    def test_skip_preferences_flag(self, sms, store, gateway):
        store.update(Collections.USERS, "u-client", {"sms_preferences": {"enabled": False, "types": {}}})
        result = sms.send("0612345678", "task_overdue", user_id="u-client", skip_preferences=True)
        assert result.success is True
        assert len(gateway.sent) == 1

    def test_gateway_failure_records_failed_entry(self, store, users, clock):
        failing = MagicMock(spec=SmsGateway)
        failing.send.side_effect = GatewayError("Twilio error: unreachable")
        notifier = SmsNotifier(store, gateway=failing, clock=clock)
        with pytest.raises(GatewayError):
            notifier.send("0612345678", "dossier_created", {"dossierTitle": "Asile"})
        (entry,) = notifier.history()
        assert entry.status == SmsStatus.FAILED
        assert entry.error == "Twilio error: unreachable"
        assert entry.to == "+33612345678"

    def test_unexpected_gateway_error_is_wrapped(self, store, users, clock):
        failing = MagicMock(spec=SmsGateway)
        failing.send.side_effect = ConnectionError("reset by peer")
        notifier = SmsNotifier(store, gateway=failing, clock=clock)
        with pytest.raises(GatewayError, match="reset by peer"):
            notifier.send("0612345678", "otp", {"code": "1"})

    def test_invalid_number(self, sms, gateway):
        with pytest.raises(GatewayError, match="Invalid phone number"):
            sms.send(" - ", "otp")
        assert gateway.sent == []
        assert sms.history()[0].status == SmsStatus.FAILED

    def test_history_failure_does_not_block_delivery(self, sms, store, gateway):
        real_insert = store.insert

        def insert(collection, document):
            if collection == Collections.SMS_HISTORY:
                raise RuntimeError("disk full")
            return real_insert(collection, document)

        with patch.object(store, "insert", side_effect=insert):
            result = sms.send("0612345678", "otp", {"code": "1"})
        assert result.success is True
        assert result.history_id is None
        assert len(gateway.sent) == 1


class TestAuditLog:
    """Test the append-only audit log."""

    def test_entries_newest_first(self, store):
        times = iter([datetime(2025, 1, 1), datetime(2025, 1, 3), datetime(2025, 1, 2)])
        log = AuditLog(store, clock=lambda: next(times))
        for action in ("a", "b", "c"):
            log.record(action, f"{action} done", actor="u-admin")
        assert [e.action for e in log.entries()] == ["b", "c", "a"]
        assert [e.action for e in log.entries(limit=1)] == ["b"]
        assert [e.action for e in log.entries({"action": "a"})] == ["a"]

    def test_record_effect(self, audit):
        entry = audit.record_effect(RecordAudit(
            action="impersonation_dossier_updated",
            actor="u-super",
            target_user="u-client",
            description="[IMPERSONATION] ...",
            ip="10.0.0.1",
        ))
        assert entry.is_impersonated is True
        assert entry.target_user == "u-client"
        assert audit.entries()[0].ip == "10.0.0.1"


class TestEffectDispatcher:
    """Test isolated delivery of side effects."""

    def test_delivers_each_kind(self, dispatcher, store, gateway):
        report = dispatcher.dispatch([
            NotifyUser(recipient="u-client", type="other", title="t", message="m"),
            NotifyAdmins(type="other", title="t", message="m", exclude_ids=["u-super"]),
            SendSms(to="0612345678", template_code="otp", variables={"code": "1"}),
            RecordAudit(action="other", description="d"),
        ])
        assert report.delivered == 4
        assert report.failed == 0
        assert store.count(Collections.NOTIFICATIONS, {"recipient": "u-admin"}) == 1
        assert store.count(Collections.NOTIFICATIONS, {"recipient": "u-super"}) == 0
        assert len(gateway.sent) == 1
        assert store.count(Collections.AUDIT_LOG) == 1

    def test_admin_fanout_isolates_recipients(self, dispatcher, notifications, store):
        real_notify = notifications.notify

        def flaky(recipient, *args, **kwargs):
            if recipient == "u-super":
                raise RuntimeError("store down")
            return real_notify(recipient, *args, **kwargs)

        with patch.object(notifications, "notify", side_effect=flaky):
            report = dispatcher.dispatch([
                NotifyAdmins(type="other", title="t", message="m"),
                RecordAudit(action="other", description="d"),
            ])
        assert report.failed == 1
        assert report.delivered == 2
        assert store.count(Collections.NOTIFICATIONS, {"recipient": "u-admin"}) == 1

    def test_gateway_failure_is_contained(self, store, notifications, audit, clock):
        failing = MagicMock(spec=SmsGateway)
        failing.send.side_effect = GatewayError("down")
        dispatcher = EffectDispatcher(notifications, SmsNotifier(store, gateway=failing, clock=clock), audit)
        report = dispatcher.dispatch([
            SendSms(to="0612345678", template_code="otp"),
            RecordAudit(action="other", description="d"),
        ])
        assert report.failed == 1
        assert report.delivered == 1
        assert "send_sms: down" in report.errors

    def test_skips_are_counted(self, dispatcher, store):
        store.update(Collections.USERS, "u-client", {
            "notification_preferences": {"other": False},
            "sms_preferences": {"enabled": False, "types": {}},
        })
        report = dispatcher.dispatch([
            NotifyUser(recipient="u-client", type="other", title="t", message="m"),
            SendSms(to="0612345678", template_code="dossier_created", user_id="u-client"),
        ])
        assert report.skipped == 2
        assert report.delivered == 0

    def test_unknown_effect(self, dispatcher):
        report = dispatcher.dispatch([object()])
        assert report.failed == 1
