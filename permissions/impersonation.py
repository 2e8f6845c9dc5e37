"""Impersonation: resolve the effective actor of a request.

A supervisor (administrative tier) may act on behalf of another account.
Business data is recorded under the target's id; permissions are still
checked against the authenticated supervisor. Every action taken while
impersonating is audited and announced to the target and to the other
administrators.
"""

import logging
from typing import Any, Dict, List, Optional

from config import settings
from contracts import (
    IMPERSONATION_MARKER,
    IMPERSONATION_PREFIX,
    AuditAction,
    EffectiveActor,
    ForbiddenError,
    NotFoundError,
    NotifyAdmins,
    NotifyUser,
    RecordAudit,
    RequestContext,
    UserAccount,
)
from store import Collections, RecordStore

logger = logging.getLogger(__name__)


class ImpersonationContext:
    """Resolves effective actors and builds the impersonation side effects."""

    def __init__(self, store: RecordStore):
        self.store = store

    def _load_user(self, user_id: str) -> Optional[UserAccount]:
        doc = self.store.get(Collections.USERS, user_id)
        return UserAccount.model_validate(doc) if doc else None

    def resolve(self, request: RequestContext) -> EffectiveActor:
        """Compute the effective actor for a request.

        Both impersonation ids must be present to start impersonating; a
        request carrying only one of them is treated as a plain request.

        Raises:
            ForbiddenError: no authenticated actor, supervisor id mismatch,
                or the actor is not in the administrative tier
            NotFoundError: the target account does not exist
        """
        actor = request.actor
        if actor is None:
            raise ForbiddenError("Authentication required")

        actor_account = self._load_user(actor.id)
        if not (request.impersonate_admin_id and request.impersonate_user_id):
            return EffectiveActor(
                actor=actor,
                actor_account=actor_account,
                effective_user_id=actor.id,
                effective_user=actor_account,
            )

        if request.impersonate_admin_id != actor.id:
            logger.warning(
                "Impersonation refused: %s declared supervisor %s",
                actor.id, request.impersonate_admin_id,
            )
            raise ForbiddenError("Impersonation not authorized")

        if not settings.is_admin_role(actor.role):
            logger.warning("Impersonation refused for non-admin %s (%s)", actor.id, actor.role)
            raise ForbiddenError("Only administrators may impersonate users")

        target = self._load_user(request.impersonate_user_id)
        if target is None:
            logger.warning("Impersonation target not found: %s", request.impersonate_user_id)
            raise NotFoundError("User to impersonate not found")

        logger.info("Impersonation active: %s as %s (%s)", actor.id, target.id, request.route)
        return EffectiveActor(
            actor=actor,
            actor_account=actor_account,
            effective_user_id=target.id,
            effective_user=target,
            is_impersonating=True,
        )

    def _base_metadata(self, effective: EffectiveActor, request: RequestContext) -> Dict[str, Any]:
        return {
            "admin_id": effective.actor.id,
            "target_user_id": effective.effective_user_id,
            "route": request.route,
            "method": request.method,
        }

    def start_effects(self, effective: EffectiveActor, request: RequestContext) -> List[RecordAudit]:
        """The impersonation_start audit entry (empty when not impersonating)."""
        if not effective.is_impersonating:
            return []
        target_email = effective.effective_user.email if effective.effective_user else None
        return [RecordAudit(
            action=AuditAction.IMPERSONATION_START.value,
            actor=effective.actor.id,
            actor_email=effective.actor_email,
            target_user=effective.effective_user_id,
            target_user_email=target_email,
            description=(
                f"{effective.actor_email} ({effective.actor.role}) started impersonating {target_email}"
            ),
            metadata=self._base_metadata(effective, request),
            ip=request.ip_address,
            user_agent=request.user_agent,
        )]

    def impersonated_audit(
        self,
        effective: EffectiveActor,
        request: RequestContext,
        action_type: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RecordAudit:
        """Audit entry for one action taken while impersonating."""
        return RecordAudit(
            action=f"{IMPERSONATION_PREFIX}{action_type}",
            actor=effective.actor.id,
            actor_email=effective.actor_email,
            target_user=effective.effective_user_id,
            target_user_email=effective.effective_user.email if effective.effective_user else None,
            description=(
                f"{IMPERSONATION_MARKER} {effective.actor_email} ({effective.actor.role}) - {description}"
            ),
            metadata={**self._base_metadata(effective, request), **(metadata or {})},
            ip=request.ip_address,
            user_agent=request.user_agent,
        )

    def action_effects(
        self,
        effective: EffectiveActor,
        request: RequestContext,
        action_type: str,
        title: Optional[str] = None,
        message: Optional[str] = None,
        link: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """Notices and audit entry for one action taken while impersonating.

        Returns the target notice, the fan-out to every other active
        administrator and the impersonated audit entry, each delivered
        independently by the dispatcher.
        """
        if not effective.is_impersonating:
            return []

        admin_name = effective.actor_name
        target = effective.effective_user
        target_name = target.display_name if target else "Utilisateur"
        target_email = target.email if target else None
        text = message or "Action effectuée"
        notice_metadata = {
            **(metadata or {}),
            "impersonation": True,
            "admin_id": effective.actor.id,
            "admin_email": effective.actor_email,
            "admin_name": admin_name,
        }

        return [
            NotifyUser(
                recipient=effective.effective_user_id,
                type=action_type,
                title=title or "Action effectuée sur votre compte",
                message=message or (
                    f"L'administrateur {admin_name} a effectué une action sur votre compte "
                    f"en mode impersonation."
                ),
                link=link,
                metadata=notice_metadata,
            ),
            NotifyAdmins(
                type=action_type,
                title=title or f"Action impersonation - {target_name}",
                message=(
                    f"L'administrateur {admin_name} ({effective.actor_email}) a effectué l'action "
                    f"suivante sur le compte de {target_name} ({target_email}) en mode "
                    f"impersonation : {text}"
                ),
                link=link,
                metadata={
                    **notice_metadata,
                    "target_user_id": effective.effective_user_id,
                    "target_user_email": target_email,
                    "target_user_name": target_name,
                },
                exclude_ids=[effective.actor.id],
            ),
            self.impersonated_audit(effective, request, action_type, text, metadata),
        ]

    def wrap_effects(
        self,
        effective: EffectiveActor,
        request: RequestContext,
        effects: List[Any],
        action_type: str,
        title: Optional[str] = None,
        message: Optional[str] = None,
        link: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """Rewrite a lifecycle effect list for an impersonated request.

        Notices addressed to the impersonated user are folded into the
        impersonation notice, plain audit entries become impersonated ones
        and the supervisor is excluded from administrator fan-outs.
        """
        if not effective.is_impersonating:
            return list(effects)

        wrapped: List[Any] = []
        audited = False
        for effect in effects:
            if isinstance(effect, NotifyUser) and effect.recipient == effective.effective_user_id:
                continue
            if isinstance(effect, NotifyAdmins):
                effect = effect.model_copy(update={
                    "exclude_ids": sorted(set(effect.exclude_ids) | {effective.actor.id}),
                })
            if isinstance(effect, RecordAudit):
                audited = True
                effect = self.impersonated_audit(
                    effective, request, effect.action, effect.description,
                    {**effect.metadata, **(metadata or {})},
                )
            wrapped.append(effect)

        notices = self.action_effects(effective, request, action_type, title, message, link, metadata)
        if audited:
            notices = [e for e in notices if not isinstance(e, RecordAudit)]
        return wrapped + notices
