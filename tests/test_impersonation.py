"""Tests for impersonation resolution and effect rewriting."""

import pytest

from contracts import (
    Actor,
    ForbiddenError,
    NotFoundError,
    NotifyAdmins,
    NotifyUser,
    RecordAudit,
    RequestContext,
    SendSms,
)
from permissions import ImpersonationContext


@pytest.fixture
def context(store, users):
    return ImpersonationContext(store)


def impersonating(admin, target_id, declared=None):
    return RequestContext(
        actor=Actor(id=admin.id, role=admin.role, email=admin.email),
        impersonate_admin_id=declared or admin.id,
        impersonate_user_id=target_id,
        route="/api/dossiers/d-1",
        method="PUT",
        ip_address="10.0.0.1",
    )


class TestResolve:
    """Test effective actor resolution."""

    def test_requires_actor(self, context):
        with pytest.raises(ForbiddenError):
            context.resolve(RequestContext())

    def test_plain_request(self, context, users, as_user):
        effective = context.resolve(as_user(users["avocat"]))
        assert effective.is_impersonating is False
        assert effective.effective_user_id == "u-avocat"
        assert effective.supervisor_id is None
        assert effective.actor_account.email == "claire@cabinet.fr"

    def test_single_header_is_plain_request(self, context, users, as_user):
        request = as_user(users["superadmin"], impersonate_user_id="u-client")
        effective = context.resolve(request)
        assert effective.is_impersonating is False
        assert effective.effective_user_id == "u-super"

    def test_supervisor_mismatch(self, context, users):
        with pytest.raises(ForbiddenError, match="not authorized"):
            context.resolve(impersonating(users["superadmin"], "u-client", declared="u-admin"))

    def test_non_admin_cannot_impersonate(self, context, users):
        with pytest.raises(ForbiddenError, match="Only administrators"):
            context.resolve(impersonating(users["avocat"], "u-client"))

    def test_missing_target(self, context, users):
        with pytest.raises(NotFoundError):
            context.resolve(impersonating(users["admin"], "u-ghost"))

    def test_successful_impersonation(self, context, users):
        effective = context.resolve(impersonating(users["admin"], "u-client"))
        assert effective.is_impersonating is True
        assert effective.actor.id == "u-admin"
        assert effective.effective_user_id == "u-client"
        assert effective.supervisor_id == "u-admin"
        assert effective.effective_user.email == "chloe@example.com"


class TestImpersonationEffects:
    """Test the audit and notice effects built for impersonated actions."""

    @pytest.fixture
    def request_context(self, users):
        return impersonating(users["superadmin"], "u-client")

    @pytest.fixture
    def effective(self, context, request_context):
        return context.resolve(request_context)

    def test_start_effects(self, context, effective, request_context):
        (audit,) = context.start_effects(effective, request_context)
        assert audit.action == "impersonation_start"
        assert audit.actor == "u-super"
        assert audit.target_user == "u-client"
        assert audit.metadata["route"] == "/api/dossiers/d-1"
        assert audit.ip == "10.0.0.1"

    def test_no_start_effects_for_plain_request(self, context, users, as_user):
        request = as_user(users["admin"])
        assert context.start_effects(context.resolve(request), request) == []

    def test_impersonated_audit_description(self, context, effective, request_context):
        audit = context.impersonated_audit(effective, request_context, "dossier_updated", "a modifié le dossier")
        assert audit.action == "impersonation_dossier_updated"
        assert audit.description == "[IMPERSONATION] alice@cabinet.fr (superadmin) - a modifié le dossier"

    def test_wrap_effects(self, context, effective, request_context):
        effects = [
            NotifyUser(recipient="u-client", type="dossier_status_changed", title="t", message="m"),
            NotifyUser(recipient="u-avocat", type="dossier_team_changed", title="t", message="m"),
            NotifyAdmins(type="dossier_created", title="t", message="m", exclude_ids=["u-admin"]),
            SendSms(to="+33612345678", template_code="dossier_status_changed"),
            RecordAudit(action="dossier_updated", description="a modifié le dossier"),
        ]
        wrapped = context.wrap_effects(
            effective, request_context, effects, "dossier_updated", metadata={"dossier_id": "d-1"},
        )

        to_client = [e for e in wrapped if isinstance(e, NotifyUser) and e.recipient == "u-client"]
        assert len(to_client) == 1
        assert to_client[0].metadata["impersonation"] is True
        assert any(isinstance(e, NotifyUser) and e.recipient == "u-avocat" for e in wrapped)
        assert any(isinstance(e, SendSms) for e in wrapped)

        fanouts = [e for e in wrapped if isinstance(e, NotifyAdmins)]
        assert len(fanouts) == 2
        assert all("u-super" in e.exclude_ids for e in fanouts)
        assert "u-admin" in fanouts[0].exclude_ids

        audits = [e for e in wrapped if isinstance(e, RecordAudit)]
        assert len(audits) == 1
        assert audits[0].action == "impersonation_dossier_updated"
        assert audits[0].metadata["dossier_id"] == "d-1"

    def test_wrap_adds_audit_when_none_given(self, context, effective, request_context):
        wrapped = context.wrap_effects(effective, request_context, [], "dossier_created")
        audits = [e for e in wrapped if isinstance(e, RecordAudit)]
        assert [a.action for a in audits] == ["impersonation_dossier_created"]

    def test_wrap_is_identity_without_impersonation(self, context, users, as_user):
        request = as_user(users["admin"])
        effects = [RecordAudit(action="dossier_updated", description="d")]
        assert context.wrap_effects(context.resolve(request), request, effects, "dossier_updated") == effects
