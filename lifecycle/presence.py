"""Active-collaborator presence on dossiers.

Presence is advisory. Entries idle longer than
``settings.collaborator_stale_after_minutes`` are dropped on every presence
write and hidden from listings; terminal statuses clear the list outright.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from config import settings
from contracts import (
    ActiveCollaborator,
    Dossier,
    EffectiveActor,
    ForbiddenError,
    LifecycleOutcome,
    NotFoundError,
    NotificationType,
    NotifyUser,
    RoleTier,
)
from permissions import role_tier
from store import Collections, RecordStore, to_document

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Opens, closes and lists collaboration sessions on a dossier."""

    def __init__(
        self,
        store: RecordStore,
        stale_after: Optional[timedelta] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.stale_after = stale_after or timedelta(minutes=settings.collaborator_stale_after_minutes)
        self.clock = clock

    def fresh(self, collaborators: List[ActiveCollaborator]) -> List[ActiveCollaborator]:
        """Collaborators whose last activity is within the staleness window."""
        cutoff = self.clock() - self.stale_after
        return [c for c in collaborators if c.last_activity >= cutoff]

    def _write(self, dossier: Dossier) -> None:
        updated = self.store.update(
            Collections.DOSSIERS,
            dossier.id,
            {"active_collaborators": [to_document(c) for c in dossier.active_collaborators]},
        )
        if updated is None:
            raise NotFoundError("Dossier not found")

    def open(self, dossier: Dossier, effective: EffectiveActor) -> LifecycleOutcome:
        """Join a dossier as an active collaborator, or refresh activity if already joined.

        Raises:
            ForbiddenError: non-admin actor, closed dossier (except top tier),
                or the effective user is not on the team
        """
        if not settings.is_admin_role(effective.actor.role):
            raise ForbiddenError("Only administrators may collaborate on dossiers")

        is_top = role_tier(effective.actor.role) == RoleTier.TOP
        if dossier.is_closed and not is_top:
            raise ForbiddenError(
                "This dossier is closed or cancelled. Collaboration is no longer possible.",
                details={"dossier_closed": True},
            )

        user_id = effective.effective_user_id
        if not dossier.is_member(user_id) and not is_top:
            raise ForbiddenError("You must be a team member to collaborate on this dossier")

        now = self.clock()
        collaborators = self.fresh(dossier.active_collaborators)
        existing = next((c for c in collaborators if c.staff_id == user_id), None)
        effects: List[Any] = []

        if existing:
            existing.last_activity = now
        else:
            others = [c.staff_id for c in collaborators]
            collaborators.append(ActiveCollaborator(staff_id=user_id, joined_at=now, last_activity=now))
            recipients = others + [
                uid for uid in dossier.team_members
                if uid != user_id and uid not in others
            ]
            name = effective.effective_user.display_name if effective.effective_user else user_id
            for recipient in recipients:
                effects.append(NotifyUser(
                    recipient=recipient,
                    type=NotificationType.DOSSIER_COLLABORATOR_ACTIVE.value,
                    title="Collaborateur actif sur le dossier",
                    message=(
                        f"L'administrateur {name} est actuellement collaborateur actif "
                        f"sur le dossier \"{dossier.display_title}\"."
                    ),
                    link=f"/admin/dossiers/{dossier.id}",
                    metadata={
                        "dossier_id": dossier.id,
                        "active_collaborator_id": user_id,
                        "active_collaborator_name": name,
                    },
                ))
            logger.info("%s is now collaborating on dossier %s", user_id, dossier.id)

        dossier.active_collaborators = collaborators
        self._write(dossier)
        return LifecycleOutcome(
            dossier=dossier,
            effects=effects,
            message="Dossier ouvert avec succès. Vous êtes maintenant collaborateur actif.",
        )

    def close(self, dossier: Dossier, effective: EffectiveActor) -> LifecycleOutcome:
        """Leave the active collaborators of a dossier."""
        if not settings.is_admin_role(effective.actor.role):
            raise ForbiddenError("Only administrators may collaborate on dossiers")

        user_id = effective.effective_user_id
        dossier.active_collaborators = [
            c for c in self.fresh(dossier.active_collaborators) if c.staff_id != user_id
        ]
        self._write(dossier)
        return LifecycleOutcome(dossier=dossier, effects=[], message="Collaboration fermée avec succès")

    def list_collaborators(self, dossier: Dossier) -> Dict[str, Any]:
        """Current collaborators, team leader and closed flag."""
        closed = dossier.is_closed
        return {
            "collaborators": [] if closed else self.fresh(dossier.active_collaborators),
            "team_leader": dossier.team_leader,
            "is_closed": closed,
            "message": "Ce dossier est clôturé. La collaboration n'est plus active." if closed else None,
        }
