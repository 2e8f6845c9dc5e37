"""Permission contracts: dossier actions and the capability map."""

from pydantic import BaseModel
from enum import Enum


class Action(str, Enum):
    """Dossier actions gated by the permission resolver."""
    VIEW = "view"
    UPDATE_STATUS = "update_status"
    CLOSE = "close"
    CANCEL = "cancel"
    SEND_MESSAGE = "send_message"
    MANAGE_TEAM = "manage_team"
    CHANGE_LEADER = "change_leader"


# Action -> capability flag on Capabilities
ACTION_CAPABILITIES = {
    Action.VIEW: "can_view",
    Action.UPDATE_STATUS: "can_update_status",
    Action.CLOSE: "can_close",
    Action.CANCEL: "can_cancel",
    Action.SEND_MESSAGE: "can_send_message",
    Action.MANAGE_TEAM: "can_manage_team",
    Action.CHANGE_LEADER: "can_change_leader",
}


class Capabilities(BaseModel):
    """Per-action authorization result for one actor on one dossier."""
    can_view: bool = False
    can_update_status: bool = False
    can_close: bool = False
    can_cancel: bool = False
    can_send_message: bool = False
    can_manage_team: bool = False
    can_change_leader: bool = False
    is_team_leader: bool = False
    is_team_member: bool = False
    is_super_admin: bool = False

    def allows(self, action: str) -> bool:
        """Check a single action; unknown actions are never allowed."""
        try:
            flag = ACTION_CAPABILITIES[Action(action)]
        except ValueError:
            return False
        return getattr(self, flag)

    def granted_actions(self) -> list:
        return [a.value for a, flag in ACTION_CAPABILITIES.items() if getattr(self, flag)]


class MembershipKind(str, Enum):
    """How an actor relates to a dossier team."""
    NONE = "none"
    MEMBER = "member"
    LEADER = "leader"


class RoleTier(str, Enum):
    """Coarse role grouping used as the first key of the capability table."""
    TOP = "top"
    ADMIN = "admin"
    STAFF = "staff"
    CLIENT = "client"
    PARTNER = "partner"
    VISITOR = "visitor"

