"""Dossier lifecycle: creation, edits, status changes, cancellation, deletion
and team management.

Every operation persists its primary mutation and returns a
LifecycleOutcome listing the notices, texts and audit entries the
mutation calls for. Nothing here talks to a notification channel.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from config import settings
from contracts import (
    AuditAction,
    ConflictError,
    Dossier,
    DossierCreate,
    DossierStatus,
    DossierUpdate,
    EffectiveActor,
    ForbiddenError,
    LifecycleOutcome,
    NotFoundError,
    NotificationType,
    NotifyAdmins,
    NotifyUser,
    RecordAudit,
    SendSms,
    SmsContext,
    UserAccount,
    ValidationFailedError,
)
from store import Collections, RecordStore, to_document

from .sequence import SequenceAllocator
from .statuses import status_label

logger = logging.getLogger(__name__)


CLIENT_LINK = "/client/dossiers"


def admin_link(dossier: Dossier) -> str:
    return f"/admin/dossiers/{dossier.id}"


class CaseLifecycle:
    """Applies dossier mutations and describes their side effects."""

    def __init__(
        self,
        store: RecordStore,
        allocator: Optional[SequenceAllocator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.clock = clock
        self.allocator = allocator or SequenceAllocator(store, clock=clock)

    # ------------------------------------------------------------------ lookups

    def get_dossier(self, dossier_id: str) -> Dossier:
        doc = self.store.get(Collections.DOSSIERS, dossier_id)
        if doc is None:
            raise NotFoundError("Dossier not found")
        return Dossier.model_validate(doc)

    def get_user(self, user_id: str) -> UserAccount:
        doc = self.store.get(Collections.USERS, user_id)
        if doc is None:
            raise NotFoundError(f"User not found: {user_id}")
        return UserAccount.model_validate(doc)

    def find_owner(self, dossier: Dossier) -> Optional[UserAccount]:
        """Owning client account: the linked user, else an account matching the contact email."""
        if dossier.user_id:
            doc = self.store.get(Collections.USERS, dossier.user_id)
        elif dossier.client_email:
            doc = self.store.find_one(Collections.USERS, {"email": dossier.client_email.lower()})
        else:
            doc = None
        return UserAccount.model_validate(doc) if doc else None

    def owner_phone(self, dossier: Dossier, owner: Optional[UserAccount]) -> Optional[str]:
        if owner and owner.phone:
            return owner.phone
        return dossier.client_phone

    def _save(self, dossier: Dossier) -> Dossier:
        dossier.updated_at = self.clock()
        if self.store.replace(Collections.DOSSIERS, dossier) is None:
            raise NotFoundError("Dossier not found")
        return dossier

    def _audit(
        self,
        effective: Optional[EffectiveActor],
        action: AuditAction,
        description: str,
        dossier: Dossier,
        **metadata: Any,
    ) -> RecordAudit:
        return RecordAudit(
            action=action.value,
            actor=effective.effective_user_id if effective else None,
            actor_email=effective.actor_email if effective else dossier.client_email,
            description=description,
            metadata={"dossier_id": dossier.id, "title": dossier.title, "number": dossier.number, **metadata},
        )

    def _who(self, effective: Optional[EffectiveActor], dossier: Dossier) -> str:
        if effective is None:
            return dossier.client_email or "intake"
        return effective.actor_email or effective.actor.id

    # ------------------------------------------------------------------ create

    def create(
        self,
        params: DossierCreate,
        effective: Optional[EffectiveActor] = None,
        for_date: Optional[datetime] = None,
    ) -> LifecycleOutcome:
        """Create and number a dossier.

        Anonymous intake (no effective actor) must carry inline contact
        fields. An authenticated creator links an explicit `user_id`, else
        keeps the inline contact, else links the effective user.

        Raises:
            ValidationFailedError: anonymous intake without contact details
            NotFoundError: explicit user_id does not exist
            ConflictError: no number could be allocated
        """
        inline = {
            "client_first_name": params.client_first_name,
            "client_last_name": params.client_last_name,
            "client_email": params.client_email,
            "client_phone": params.client_phone,
        }
        has_inline = any(inline.values())
        fields = params.model_dump(exclude={"user_id", *inline.keys()})

        if effective is None:
            if not (params.client_email or params.client_phone):
                raise ValidationFailedError("Anonymous intake requires an email or a phone number")
            if params.user_id:
                raise ValidationFailedError("Anonymous intake cannot link an account")
            dossier = Dossier(**fields, **inline, created_by=None)
        elif params.user_id:
            self.get_user(params.user_id)
            dossier = Dossier(**fields, user_id=params.user_id, created_by=effective.effective_user_id)
        elif has_inline:
            dossier = Dossier(**fields, **inline, created_by=effective.effective_user_id)
        else:
            dossier = Dossier(
                **fields,
                user_id=effective.effective_user_id,
                created_by=effective.effective_user_id,
            )

        now = self.clock()
        dossier = dossier.model_copy(update={"created_at": now, "updated_at": now})
        dossier = self.allocator.insert_with_number(dossier, for_date or now)
        logger.info("Dossier %s created (%s)", dossier.number, dossier.id)

        owner = self.find_owner(dossier)
        creator_id = effective.effective_user_id if effective else None
        effects: List[Any] = [
            NotifyAdmins(
                type=NotificationType.DOSSIER_CREATED.value,
                title="Nouveau dossier",
                message=f"Le dossier \"{dossier.display_title}\" ({dossier.number}) a été créé.",
                link=admin_link(dossier),
                metadata={"dossier_id": dossier.id, "number": dossier.number},
                exclude_ids=[creator_id] if creator_id else [],
            ),
        ]
        if owner and owner.id != creator_id:
            effects.append(NotifyUser(
                recipient=owner.id,
                type=NotificationType.DOSSIER_CREATED.value,
                title="Dossier créé",
                message=f"Votre dossier \"{dossier.display_title}\" a été créé. Référence : {dossier.number}.",
                link=CLIENT_LINK,
                metadata={"dossier_id": dossier.id, "number": dossier.number},
            ))
        phone = self.owner_phone(dossier, owner)
        if phone:
            effects.append(SendSms(
                to=phone,
                template_code="dossier_created",
                variables={"dossierTitle": dossier.display_title, "dossierId": dossier.number},
                user_id=owner.id if owner else None,
                sent_by=creator_id,
                context=SmsContext.DOSSIER,
                context_id=dossier.id,
            ))
        effects.append(self._audit(
            effective, AuditAction.DOSSIER_CREATED,
            f"{self._who(effective, dossier)} a créé le dossier \"{dossier.display_title}\"",
            dossier,
        ))
        return LifecycleOutcome(dossier=dossier, effects=effects, message="Dossier créé avec succès")

    # ------------------------------------------------------------------ edits

    def _status_effects(
        self,
        dossier: Dossier,
        old_status: DossierStatus,
        effective: EffectiveActor,
        owner: Optional[UserAccount],
        notification_message: Optional[str] = None,
    ) -> List[Any]:
        new_status = dossier.status
        old_label, new_label = status_label(old_status), status_label(new_status)
        effects: List[Any] = []
        if owner:
            custom = (notification_message or "").strip()
            effects.append(NotifyUser(
                recipient=owner.id,
                type=NotificationType.DOSSIER_STATUS_CHANGED.value,
                title=f"Statut du dossier modifié : {new_label}",
                message=custom or (
                    f"Le statut de votre dossier \"{dossier.display_title}\" a été modifié "
                    f"de \"{old_label}\" à \"{new_label}\"."
                ),
                link=CLIENT_LINK,
                metadata={
                    "dossier_id": dossier.id,
                    "old_status": old_status.value,
                    "new_status": new_status.value,
                },
            ))
        else:
            logger.warning("No client account to notify for dossier %s", dossier.id)

        phone = self.owner_phone(dossier, owner)
        if phone and new_status.value in settings.sms_status_triggers:
            effects.append(SendSms(
                to=phone,
                template_code=NotificationType.DOSSIER_STATUS_CHANGED.value,
                variables={
                    "dossierTitle": dossier.display_title,
                    "dossierNumero": dossier.number,
                    "statut": new_label,
                },
                user_id=owner.id if owner else None,
                sent_by=effective.effective_user_id,
                context=SmsContext.DOSSIER,
                context_id=dossier.id,
            ))
        return effects

    def update(
        self,
        dossier: Dossier,
        changes: DossierUpdate,
        effective: EffectiveActor,
    ) -> LifecycleOutcome:
        """Apply a partial edit.

        Status-neutral fields may be edited by the owning client or an
        administrator. A status change must already have been authorized by
        the caller for the capability `required_action(status)` names.

        Raises:
            ForbiddenError: neutral edit by someone who is neither owner nor admin
            ValidationFailedError: nothing to change
        """
        field_changes = changes.field_changes()
        status_changed = changes.status is not None and DossierStatus(changes.status) != dossier.status
        if not field_changes and changes.status is None:
            raise ValidationFailedError("No changes supplied")

        is_admin = settings.is_admin_role(effective.actor.role)
        if field_changes and not (is_admin or self.is_owner(dossier, effective)):
            raise ForbiddenError("Access to this dossier is not authorized")

        old_status = dossier.status
        if field_changes:
            dossier = Dossier.model_validate({**dossier.model_dump(), **field_changes})
        if status_changed:
            dossier.set_status(changes.status)
        if not field_changes and not status_changed:
            return LifecycleOutcome(dossier=dossier, effects=[], message="Aucune modification")

        dossier = self._save(dossier)
        owner = self.find_owner(dossier)
        effects: List[Any] = []
        if status_changed:
            logger.info("Dossier %s status %s -> %s", dossier.id, old_status.value, dossier.status.value)
            effects.extend(self._status_effects(dossier, old_status, effective, owner, changes.notification_message))
            description = (
                f"{self._who(effective, dossier)} a modifié le statut du dossier \"{dossier.display_title}\" "
                f"de \"{old_status.value}\" à \"{dossier.status.value}\""
            )
        else:
            if is_admin and owner and owner.id != effective.effective_user_id:
                effects.append(NotifyUser(
                    recipient=owner.id,
                    type=NotificationType.DOSSIER_UPDATED.value,
                    title="Dossier modifié",
                    message=f"Votre dossier \"{dossier.display_title}\" a été modifié par l'administrateur.",
                    link=CLIENT_LINK,
                    metadata={"dossier_id": dossier.id},
                ))
            description = f"{self._who(effective, dossier)} a modifié le dossier \"{dossier.display_title}\""

        effects.append(self._audit(
            effective, AuditAction.DOSSIER_UPDATED, description, dossier,
            old_status=old_status.value, new_status=dossier.status.value,
            fields=sorted(field_changes.keys()),
        ))
        return LifecycleOutcome(dossier=dossier, effects=effects, message="Dossier mis à jour avec succès")

    def change_status(
        self,
        dossier: Dossier,
        status: DossierStatus,
        effective: EffectiveActor,
        notification_message: Optional[str] = None,
    ) -> LifecycleOutcome:
        """Move a dossier to `status`. Entering a terminal status clears presence."""
        return self.update(
            dossier,
            DossierUpdate(status=status, notification_message=notification_message),
            effective,
        )

    # ------------------------------------------------------------------ cancel / delete

    def is_owner(self, dossier: Dossier, effective: EffectiveActor) -> bool:
        """Owner by linked account, or by contact email when no account is linked."""
        if dossier.user_id:
            return dossier.user_id == effective.effective_user_id
        email = effective.effective_user.email if effective.effective_user else effective.actor.email
        return bool(dossier.client_email and email and email.lower() == dossier.client_email)

    def cancel(self, dossier: Dossier, effective: EffectiveActor) -> LifecycleOutcome:
        """Client-side cancellation.

        Raises:
            ForbiddenError: the effective user does not own the dossier
            ConflictError: the dossier is already in a terminal status
        """
        if not self.is_owner(dossier, effective):
            raise ForbiddenError("You do not have permission to cancel this dossier")
        if dossier.is_closed:
            raise ConflictError(
                "This dossier cannot be cancelled because it is already in a final status",
                details={"status": dossier.status.value},
            )

        today = self.clock().strftime(settings.date_label_format)
        annotation = f"[Dossier annulé par le client le {today}]"
        dossier.set_status(DossierStatus.ANNULE)
        dossier.notes = f"{dossier.notes}\n\n{annotation}" if dossier.notes else annotation
        dossier = self._save(dossier)
        logger.info("Dossier %s cancelled by client %s", dossier.id, effective.effective_user_id)

        client = effective.effective_user
        client_name = client.display_name if client else effective.effective_user_id
        client_email = client.email if client else effective.actor.email
        effects = [
            NotifyAdmins(
                type=NotificationType.DOSSIER_CANCELLED.value,
                title="Dossier annulé par le client",
                message=f"{client_name} ({client_email}) a annulé le dossier \"{dossier.display_title}\".",
                link=admin_link(dossier),
                metadata={
                    "dossier_id": dossier.id,
                    "title": dossier.title,
                    "client_id": effective.effective_user_id,
                    "client_email": client_email,
                },
            ),
            self._audit(
                effective, AuditAction.DOSSIER_CANCELLED,
                f"{client_email} a annulé le dossier \"{dossier.display_title}\"",
                dossier,
            ),
        ]
        return LifecycleOutcome(dossier=dossier, effects=effects, message="Dossier annulé avec succès")

    def delete_effects(self, dossier: Dossier, effective: EffectiveActor) -> List[Any]:
        """Audit entry and owner notice for a deletion, built from the dossier as it stands.

        Raises:
            ForbiddenError: the actor is not an administrator
        """
        if not settings.is_admin_role(effective.actor.role):
            raise ForbiddenError("Only administrators may delete dossiers")

        owner = self.find_owner(dossier)
        effects: List[Any] = [self._audit(
            effective, AuditAction.DOSSIER_DELETED,
            f"{self._who(effective, dossier)} a supprimé le dossier \"{dossier.display_title}\"",
            dossier,
            snapshot=to_document(dossier),
        )]
        if owner:
            effects.append(NotifyUser(
                recipient=owner.id,
                type=NotificationType.DOSSIER_DELETED.value,
                title="Dossier supprimé",
                message=f"Votre dossier \"{dossier.display_title}\" a été supprimé par l'administrateur.",
                link=CLIENT_LINK,
                metadata={"dossier_id": dossier.id, "title": dossier.title},
            ))
        return effects

    def remove(self, dossier: Dossier, effective: EffectiveActor) -> LifecycleOutcome:
        """Remove the stored record. Callers deliver `delete_effects` first."""
        if not self.store.delete(Collections.DOSSIERS, dossier.id):
            raise NotFoundError("Dossier not found")
        logger.info("Dossier %s deleted by %s", dossier.id, effective.actor.id)
        return LifecycleOutcome(dossier=dossier, effects=[], message="Dossier supprimé avec succès")

    def delete(self, dossier: Dossier, effective: EffectiveActor) -> LifecycleOutcome:
        """Irreversibly remove a dossier (administrators only).

        The audit entry and the owner notice describe the dossier as it was
        before removal.
        """
        effects = self.delete_effects(dossier, effective)
        outcome = self.remove(dossier, effective)
        return LifecycleOutcome(dossier=dossier, effects=effects, message=outcome.message)

    # ------------------------------------------------------------------ team

    def _staff_user(self, user_id: str) -> UserAccount:
        user = self.get_user(user_id)
        if not settings.is_staff_role(user.role):
            raise ValidationFailedError(
                f"{user.display_name} cannot join a dossier team (role {user.role})",
                details={"user_id": user_id},
            )
        return user

    def manage_team(
        self,
        dossier: Dossier,
        effective: EffectiveActor,
        add: Optional[List[str]] = None,
        remove: Optional[List[str]] = None,
    ) -> LifecycleOutcome:
        """Add and remove team members. Removing the leader clears leadership."""
        add = [uid for uid in dict.fromkeys(add or []) if uid not in dossier.team_members]
        remove = [uid for uid in dict.fromkeys(remove or []) if uid in dossier.team_members]
        if not add and not remove:
            raise ValidationFailedError("No team change requested")

        added = [self._staff_user(uid) for uid in add]
        dossier.team_members = [uid for uid in dossier.team_members if uid not in remove] + add
        if dossier.team_leader in remove:
            dossier.team_leader = None
        dossier.active_collaborators = [c for c in dossier.active_collaborators if c.staff_id not in remove]
        dossier = self._save(dossier)

        effects: List[Any] = []
        for user in added:
            effects.append(NotifyUser(
                recipient=user.id,
                type=NotificationType.DOSSIER_TEAM_CHANGED.value,
                title="Ajout à l'équipe du dossier",
                message=f"Vous avez été ajouté à l'équipe du dossier \"{dossier.display_title}\".",
                link=admin_link(dossier),
                metadata={"dossier_id": dossier.id},
            ))
        for uid in remove:
            effects.append(NotifyUser(
                recipient=uid,
                type=NotificationType.DOSSIER_TEAM_CHANGED.value,
                title="Retrait de l'équipe du dossier",
                message=f"Vous avez été retiré de l'équipe du dossier \"{dossier.display_title}\".",
                link=admin_link(dossier),
                metadata={"dossier_id": dossier.id},
            ))
        effects.append(self._audit(
            effective, AuditAction.DOSSIER_TEAM_CHANGED,
            f"{self._who(effective, dossier)} a modifié l'équipe du dossier \"{dossier.display_title}\"",
            dossier, added=add, removed=remove,
        ))
        return LifecycleOutcome(dossier=dossier, effects=effects, message="Équipe mise à jour")

    def change_leader(
        self,
        dossier: Dossier,
        effective: EffectiveActor,
        leader_id: Optional[str],
    ) -> LifecycleOutcome:
        """Set or clear the team leader; a new leader joins the team implicitly."""
        previous = dossier.team_leader
        if leader_id == previous:
            return LifecycleOutcome(dossier=dossier, effects=[], message="Aucune modification")

        effects: List[Any] = []
        if leader_id is not None:
            leader = self._staff_user(leader_id)
            if leader_id not in dossier.team_members:
                dossier.team_members.append(leader_id)
            effects.append(NotifyUser(
                recipient=leader.id,
                type=NotificationType.DOSSIER_TEAM_CHANGED.value,
                title="Chef d'équipe du dossier",
                message=f"Vous êtes désormais chef d'équipe du dossier \"{dossier.display_title}\".",
                link=admin_link(dossier),
                metadata={"dossier_id": dossier.id, "previous_leader": previous},
            ))
        dossier.team_leader = leader_id
        dossier = self._save(dossier)

        effects.append(self._audit(
            effective, AuditAction.DOSSIER_LEADER_CHANGED,
            f"{self._who(effective, dossier)} a changé le chef d'équipe du dossier \"{dossier.display_title}\"",
            dossier, previous_leader=previous, new_leader=leader_id,
        ))
        return LifecycleOutcome(dossier=dossier, effects=effects, message="Chef d'équipe mis à jour")

    # ------------------------------------------------------------------ messages

    def send_message(
        self,
        dossier: Dossier,
        effective: EffectiveActor,
        message: str,
    ) -> LifecycleOutcome:
        """Message the dossier's client in-app and by text."""
        text = (message or "").strip()
        if not text:
            raise ValidationFailedError("Message cannot be empty")

        owner = self.find_owner(dossier)
        phone = self.owner_phone(dossier, owner)
        if owner is None and not phone:
            raise ValidationFailedError("This dossier has no client to message")

        sender = effective.actor_name
        effects: List[Any] = []
        if owner:
            effects.append(NotifyUser(
                recipient=owner.id,
                type=NotificationType.MESSAGE_RECEIVED.value,
                title=f"Nouveau message - {dossier.display_title}",
                message=text,
                link=CLIENT_LINK,
                metadata={"dossier_id": dossier.id, "sender_id": effective.effective_user_id},
            ))
        if phone:
            effects.append(SendSms(
                to=phone,
                template_code=NotificationType.MESSAGE_RECEIVED.value,
                variables={"senderName": sender, "dossierTitle": dossier.display_title},
                user_id=owner.id if owner else None,
                sent_by=effective.effective_user_id,
                context=SmsContext.MESSAGE,
                context_id=dossier.id,
            ))
        effects.append(self._audit(
            effective, AuditAction.MESSAGE_SENT,
            f"{self._who(effective, dossier)} a envoyé un message sur le dossier \"{dossier.display_title}\"",
            dossier,
        ))
        return LifecycleOutcome(dossier=dossier, effects=effects, message="Message envoyé")
