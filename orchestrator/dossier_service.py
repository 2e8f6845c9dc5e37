"""Dossier Service - Central orchestrator for the dossier core.

The Dossier Service is the entry point the transport layer calls. For each
request it:
1. Resolves the effective actor (impersonation)
2. Loads the dossier and authorizes the action against it
3. Applies the lifecycle mutation
4. Dispatches the resulting notices, texts and audit entries
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError

from config import settings
from contracts import (
    Action,
    Capabilities,
    DispatchReport,
    Dossier,
    DossierCoreError,
    DossierCreate,
    DossierStatus,
    DossierUpdate,
    EffectiveActor,
    InternalError,
    LifecycleOutcome,
    RequestContext,
    ValidationFailedError,
)
from lifecycle import CaseLifecycle, PresenceTracker, SequenceAllocator, required_action
from notifications import AuditLog, EffectDispatcher, NotificationService, SmsNotifier
from permissions import ImpersonationContext, PermissionResolver
from providers import SmsGateway
from store import RecordStore, get_store

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)


class ServiceResult(BaseModel):
    """What a dossier action returns to the transport layer."""
    success: bool = True
    message: str = ""
    dossier: Optional[Dossier] = None
    permissions: Optional[Capabilities] = None
    report: DispatchReport = Field(default_factory=DispatchReport)
    data: Dict[str, Any] = Field(default_factory=dict)


def _parse(model: Type[P], params: Union[P, Dict[str, Any], None]) -> P:
    """Validate action parameters, mapping pydantic errors to ValidationFailedError."""
    if isinstance(params, model):
        return params
    try:
        return model.model_validate(params or {})
    except ValidationError as e:
        raise ValidationFailedError(
            "Invalid parameters",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


class DossierService:
    """Runs dossier actions end to end.

    Responsibilities:
    - Resolve impersonation and record its start
    - Authorize every gated action through the permission resolver
    - Apply lifecycle mutations
    - Deliver side effects without letting them affect the result
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        gateway: Optional[SmsGateway] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the Dossier Service.

        Args:
            store: Record store (defaults to settings.store_backend)
            gateway: SMS gateway (defaults to settings.sms_provider)
            clock: Time source for timestamps and numbering
        """
        self.store = store or get_store()
        self.clock = clock
        self.resolver = PermissionResolver()
        self.impersonation = ImpersonationContext(self.store)
        self.allocator = SequenceAllocator(self.store, clock=clock)
        self.lifecycle = CaseLifecycle(self.store, allocator=self.allocator, clock=clock)
        self.presence = PresenceTracker(self.store, clock=clock)
        self.notifications = NotificationService(self.store, clock=clock)
        self.sms = SmsNotifier(self.store, gateway=gateway, clock=clock)
        self.audit = AuditLog(self.store, clock=clock)
        self.dispatcher = EffectDispatcher(self.notifications, self.sms, self.audit)

    # ------------------------------------------------------------------ plumbing

    def _begin(self, request: RequestContext) -> Tuple[EffectiveActor, DispatchReport]:
        """Resolve the effective actor and record the impersonation start, if any."""
        effective = self.impersonation.resolve(request)
        report = self.dispatcher.dispatch(self.impersonation.start_effects(effective, request))
        return effective, report

    def _wrap(
        self,
        effective: Optional[EffectiveActor],
        request: RequestContext,
        dossier: Optional[Dossier],
        effects: List[Any],
        action_type: str,
        title: str,
        description: str,
    ) -> List[Any]:
        """Add the impersonation notices and audit marking to an action's effects."""
        effects = list(effects)
        if effective is None or not effective.is_impersonating or dossier is None:
            return effects
        return self.impersonation.wrap_effects(
            effective,
            request,
            effects,
            action_type,
            title=title,
            message=description,
            link=f"/client/dossiers/{dossier.id}",
            metadata={"dossier_id": dossier.id, "title": dossier.title},
        )

    def _finish(
        self,
        effective: Optional[EffectiveActor],
        request: RequestContext,
        outcome: LifecycleOutcome,
        report: DispatchReport,
        action_type: str,
        title: str,
        description: str,
        capabilities: Optional[Capabilities] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        effects = self._wrap(effective, request, outcome.dossier, outcome.effects, action_type, title, description)
        report = report.merge(self.dispatcher.dispatch(effects))
        return ServiceResult(
            message=outcome.message,
            dossier=outcome.dossier,
            permissions=capabilities,
            report=report,
            data=data or {},
        )

    # ------------------------------------------------------------------ reads

    def check_permissions(self, request: RequestContext, dossier_id: str) -> ServiceResult:
        """Capability map of the authenticated actor on a dossier."""
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        capabilities = self.resolver.resolve_capabilities(effective.actor, dossier)
        return ServiceResult(permissions=capabilities, report=report)

    def get_dossier(self, request: RequestContext, dossier_id: str) -> ServiceResult:
        """Read a dossier: the owning client, or anyone holding `view`."""
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        if self.lifecycle.is_owner(dossier, effective):
            capabilities = self.resolver.resolve_capabilities(effective.actor, dossier)
        else:
            capabilities = self.resolver.authorize(effective.actor, dossier, Action.VIEW).capabilities
        return ServiceResult(dossier=dossier, permissions=capabilities, report=report)

    def list_collaborators(self, request: RequestContext, dossier_id: str) -> ServiceResult:
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        access = self.resolver.authorize(effective.actor, dossier, Action.VIEW)
        listing = self.presence.list_collaborators(dossier)
        return ServiceResult(
            message=listing["message"] or "",
            permissions=access.capabilities,
            report=report,
            data={**listing, "collaborators": [c.model_dump() for c in listing["collaborators"]]},
        )

    # ------------------------------------------------------------------ mutations

    def create_dossier(
        self,
        request: RequestContext,
        params: Union[DossierCreate, Dict[str, Any]],
        for_date: Optional[datetime] = None,
    ) -> ServiceResult:
        """Create a dossier. A request without an actor is anonymous intake."""
        params = _parse(DossierCreate, params)
        if request.actor is None:
            effective, report = None, DispatchReport()
        else:
            effective, report = self._begin(request)
        outcome = self.lifecycle.create(params, effective, for_date=for_date)
        return self._finish(
            effective, request, outcome, report,
            "dossier_created", "Création de dossier",
            f"a créé le dossier \"{outcome.dossier.display_title}\"",
        )

    def update_dossier(
        self,
        request: RequestContext,
        dossier_id: str,
        changes: Union[DossierUpdate, Dict[str, Any]],
    ) -> ServiceResult:
        """Edit a dossier.

        Administrators may set any status. Other staff need the capability
        `required_action(status)` names, which only team leaders hold.
        """
        changes = _parse(DossierUpdate, changes)
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        old_status = dossier.status

        status_changed = changes.status is not None and DossierStatus(changes.status) != old_status
        if status_changed and not settings.is_admin_role(effective.actor.role):
            capabilities = self.resolver.authorize(
                effective.actor, dossier, required_action(changes.status),
            ).capabilities
        else:
            capabilities = self.resolver.resolve_capabilities(effective.actor, dossier)

        outcome = self.lifecycle.update(dossier, changes, effective)
        updated = outcome.dossier
        if updated.status != old_status:
            description = (
                f"a modifié le statut du dossier \"{updated.display_title}\" "
                f"de \"{old_status.value}\" à \"{updated.status.value}\""
            )
        else:
            description = f"a modifié le dossier \"{updated.display_title}\""
        return self._finish(
            effective, request, outcome, report,
            "dossier_updated", "Modification de dossier", description,
            capabilities=capabilities,
        )

    def change_status(
        self,
        request: RequestContext,
        dossier_id: str,
        status: Union[DossierStatus, str],
        notification_message: Optional[str] = None,
    ) -> ServiceResult:
        return self.update_dossier(
            request,
            dossier_id,
            {"status": status, "notification_message": notification_message},
        )

    def cancel_dossier(self, request: RequestContext, dossier_id: str) -> ServiceResult:
        """Client-side cancellation of an owned, non-terminal dossier."""
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        outcome = self.lifecycle.cancel(dossier, effective)
        return self._finish(
            effective, request, outcome, report,
            "dossier_cancelled", "Annulation de dossier",
            f"a annulé le dossier \"{dossier.display_title}\"",
        )

    def delete_dossier(self, request: RequestContext, dossier_id: str) -> ServiceResult:
        """Delete a dossier. The audit entry and owner notice go out before removal."""
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        effects = self._wrap(
            effective, request, dossier,
            self.lifecycle.delete_effects(dossier, effective),
            "dossier_deleted", "Suppression de dossier",
            f"a supprimé le dossier \"{dossier.display_title}\"",
        )
        report = report.merge(self.dispatcher.dispatch(effects))
        outcome = self.lifecycle.remove(dossier, effective)
        return ServiceResult(message=outcome.message, dossier=outcome.dossier, report=report)

    def manage_team(
        self,
        request: RequestContext,
        dossier_id: str,
        add: Optional[List[str]] = None,
        remove: Optional[List[str]] = None,
    ) -> ServiceResult:
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        access = self.resolver.authorize(effective.actor, dossier, Action.MANAGE_TEAM)
        outcome = self.lifecycle.manage_team(access.dossier, effective, add=add, remove=remove)
        return self._finish(
            effective, request, outcome, report,
            "dossier_team_changed", "Modification de l'équipe",
            f"a modifié l'équipe du dossier \"{dossier.display_title}\"",
            capabilities=access.capabilities,
        )

    def change_leader(
        self,
        request: RequestContext,
        dossier_id: str,
        leader_id: Optional[str],
    ) -> ServiceResult:
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        access = self.resolver.authorize(effective.actor, dossier, Action.CHANGE_LEADER)
        outcome = self.lifecycle.change_leader(access.dossier, effective, leader_id)
        return self._finish(
            effective, request, outcome, report,
            "dossier_team_changed", "Changement de chef d'équipe",
            f"a changé le chef d'équipe du dossier \"{dossier.display_title}\"",
            capabilities=access.capabilities,
        )

    def send_message(self, request: RequestContext, dossier_id: str, message: str) -> ServiceResult:
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        access = self.resolver.authorize(effective.actor, dossier, Action.SEND_MESSAGE)
        outcome = self.lifecycle.send_message(access.dossier, effective, message)
        return self._finish(
            effective, request, outcome, report,
            "message_received", "Envoi de message",
            f"a envoyé un message sur le dossier \"{dossier.display_title}\"",
            capabilities=access.capabilities,
        )

    def open_collaboration(self, request: RequestContext, dossier_id: str) -> ServiceResult:
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        outcome = self.presence.open(dossier, effective)
        report = report.merge(self.dispatcher.dispatch(outcome.effects))
        return ServiceResult(message=outcome.message, dossier=outcome.dossier, report=report)

    def close_collaboration(self, request: RequestContext, dossier_id: str) -> ServiceResult:
        effective, report = self._begin(request)
        dossier = self.lifecycle.get_dossier(dossier_id)
        outcome = self.presence.close(dossier, effective)
        return ServiceResult(message=outcome.message, dossier=outcome.dossier, report=report)

    # ------------------------------------------------------------------ transport helper

    def run_action(self, action: str, *args: Any, **kwargs: Any) -> Dict[str, Any]:
        """Run a service method and render its result or error as a dict.

        Core errors keep their discriminated reason; anything else becomes
        an internal error.
        """
        method = getattr(self, action, None)
        if not callable(method) or action.startswith("_") or action == "run_action":
            return ValidationFailedError(f"Unknown action: {action}").to_dict()
        try:
            result = method(*args, **kwargs)
        except DossierCoreError as e:
            return self._handle_error(e)
        except Exception as e:
            logger.exception("Action %s failed", action)
            return self._handle_error(InternalError(str(e)))
        return result.model_dump(mode="json")

    def _handle_error(self, error: DossierCoreError) -> Dict[str, Any]:
        """Render a core error; denials carry only the reason and capability map."""
        logger.info("Action refused: %s (%s)", error.code, error.message)
        return error.to_dict()


# Global service for CLI and scripts
_current_service: Optional[DossierService] = None


def get_dossier_service() -> DossierService:
    """Get the current dossier service, creating one if needed."""
    global _current_service
    if _current_service is None:
        _current_service = DossierService()
    return _current_service


def reset_dossier_service(
    store: Optional[RecordStore] = None,
    gateway: Optional[SmsGateway] = None,
) -> DossierService:
    """Replace the current dossier service (e.g. to point it at another store)."""
    global _current_service
    _current_service = DossierService(store=store, gateway=gateway)
    return _current_service
