"""Team-based permission resolver for dossier actions.

Capabilities come from a table keyed by (role tier, membership kind), so a
new role only needs an entry in ``config.ROLE_TIERS``.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from config import ROLE_TIERS, settings
from contracts import (
    Action,
    Actor,
    Capabilities,
    Dossier,
    MembershipKind,
    PermissionDeniedError,
    RoleTier,
)

logger = logging.getLogger(__name__)


NOTHING = Capabilities()
VIEW_ONLY = Capabilities(can_view=True)
LEADER = Capabilities(
    can_view=True,
    can_update_status=True,
    can_close=True,
    can_cancel=True,
    can_send_message=True,
    can_manage_team=True,
    can_change_leader=True,
)
EVERYTHING = LEADER.model_copy(update={"is_super_admin": True})


CAPABILITY_TABLE: Dict[Tuple[RoleTier, MembershipKind], Capabilities] = {
    (RoleTier.TOP, MembershipKind.NONE): EVERYTHING,
    (RoleTier.TOP, MembershipKind.MEMBER): EVERYTHING,
    (RoleTier.TOP, MembershipKind.LEADER): EVERYTHING,
    (RoleTier.ADMIN, MembershipKind.NONE): VIEW_ONLY,
    (RoleTier.ADMIN, MembershipKind.MEMBER): VIEW_ONLY,
    (RoleTier.ADMIN, MembershipKind.LEADER): LEADER,
    (RoleTier.STAFF, MembershipKind.NONE): NOTHING,
    (RoleTier.STAFF, MembershipKind.MEMBER): VIEW_ONLY,
    (RoleTier.STAFF, MembershipKind.LEADER): LEADER,
    (RoleTier.CLIENT, MembershipKind.NONE): NOTHING,
    (RoleTier.CLIENT, MembershipKind.MEMBER): VIEW_ONLY,
    (RoleTier.CLIENT, MembershipKind.LEADER): LEADER,
    (RoleTier.PARTNER, MembershipKind.NONE): NOTHING,
    (RoleTier.PARTNER, MembershipKind.MEMBER): VIEW_ONLY,
    (RoleTier.PARTNER, MembershipKind.LEADER): LEADER,
    (RoleTier.VISITOR, MembershipKind.NONE): NOTHING,
    (RoleTier.VISITOR, MembershipKind.MEMBER): VIEW_ONLY,
    (RoleTier.VISITOR, MembershipKind.LEADER): LEADER,
}


@dataclass
class AuthorizedAccess:
    """A successful authorization, handed downstream so nothing is recomputed."""
    dossier: Dossier
    capabilities: Capabilities
    action: str


def role_tier(role: str) -> RoleTier:
    """Map a role string to its tier; unknown roles are visitors."""
    if role == settings.top_role:
        return RoleTier.TOP
    return RoleTier(ROLE_TIERS.get(role, RoleTier.VISITOR.value))


def membership_kind(actor_id: str, dossier: Dossier) -> MembershipKind:
    if dossier.is_leader(actor_id):
        return MembershipKind.LEADER
    if dossier.is_member(actor_id):
        return MembershipKind.MEMBER
    return MembershipKind.NONE


class PermissionResolver:
    """Computes capability maps and authorizes dossier actions."""

    def __init__(self, table: Optional[Dict[Tuple[RoleTier, MembershipKind], Capabilities]] = None):
        self.table = table or CAPABILITY_TABLE

    def resolve_capabilities(self, actor: Actor, dossier: Dossier) -> Capabilities:
        """Capability map for one actor on one dossier."""
        tier = role_tier(actor.role)
        if tier == RoleTier.TOP:
            return self.table[(tier, MembershipKind.NONE)].model_copy()

        kind = membership_kind(actor.id, dossier)
        base = self.table.get((tier, kind), NOTHING)
        return base.model_copy(update={
            "is_team_member": dossier.is_member(actor.id),
            "is_team_leader": dossier.is_leader(actor.id),
        })

    def authorize(self, actor: Actor, dossier: Dossier, action: str) -> AuthorizedAccess:
        """Authorize an action or raise.

        Raises:
            PermissionDeniedError: carrying the computed capability map only
        """
        capabilities = self.resolve_capabilities(actor, dossier)
        action_name = action.value if isinstance(action, Action) else str(action)
        if not capabilities.allows(action_name):
            logger.info(
                "Denied %s on dossier %s for %s (%s)",
                action_name, dossier.id, actor.id, actor.role,
            )
            raise PermissionDeniedError(action_name, capabilities)
        return AuthorizedAccess(dossier=dossier, capabilities=capabilities, action=action_name)
