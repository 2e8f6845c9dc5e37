"""Audit log contracts."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime

from .actor_contracts import new_id


IMPERSONATION_PREFIX = "impersonation_"
IMPERSONATION_MARKER = "[IMPERSONATION]"


class AuditAction(str, Enum):
    """Sensitive actions recorded by the core."""
    DOSSIER_CREATED = "dossier_created"
    DOSSIER_UPDATED = "dossier_updated"
    DOSSIER_DELETED = "dossier_deleted"
    DOSSIER_CANCELLED = "dossier_cancelled"
    DOSSIER_TEAM_CHANGED = "dossier_team_changed"
    DOSSIER_LEADER_CHANGED = "dossier_leader_changed"
    MESSAGE_SENT = "message_sent"
    IMPERSONATION_START = "impersonation_start"
    OTHER = "other"


class AuditEntry(BaseModel):
    """Append-only record of a sensitive action."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    actor: Optional[str] = Field(None, description="Acting user id")
    actor_email: Optional[str] = None
    target_user: Optional[str] = None
    target_user_email: Optional[str] = None
    action: str
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_impersonated(self) -> bool:
        return self.action.startswith(IMPERSONATION_PREFIX) and self.action != AuditAction.IMPERSONATION_START.value
