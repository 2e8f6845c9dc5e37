"""Actor, account and request contracts."""

from pydantic import BaseModel, Field
from typing import Dict, Optional
from enum import Enum
from datetime import datetime
import uuid


def new_id() -> str:
    """Generate a record id."""
    return uuid.uuid4().hex


class Role(str, Enum):
    """Account roles known to the system."""
    CLIENT = "client"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"
    AVOCAT = "avocat"
    ASSISTANT = "assistant"
    COMPTABLE = "comptable"
    SECRETAIRE = "secretaire"
    JURISTE = "juriste"
    STAGIAIRE = "stagiaire"
    VISITEUR = "visiteur"
    PARTENAIRE = "partenaire"


class SmsPreferences(BaseModel):
    """Per-user SMS opt-outs. Missing types default to enabled."""
    enabled: bool = Field(default=True, description="Global SMS toggle")
    types: Dict[str, bool] = Field(default_factory=dict, description="Per-type toggles keyed by SMS code")


class UserAccount(BaseModel):
    """A user record from the identity store."""
    id: str = Field(default_factory=new_id)
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str = Field(default=Role.CLIENT.value)
    is_active: bool = True
    sms_preferences: Optional[SmsPreferences] = None
    notification_preferences: Dict[str, bool] = Field(
        default_factory=dict,
        description="Per-type in-app notification toggles; False opts out",
    )
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def display_name(self) -> str:
        """Full name, falling back to email."""
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email or self.id


class Actor(BaseModel):
    """Verified (user id, role) pair supplied by the authentication layer."""
    id: str
    role: str
    email: Optional[str] = None


class RequestContext(BaseModel):
    """Everything the transport layer hands to the core for one request."""
    actor: Optional[Actor] = Field(None, description="None for anonymous intake")
    impersonate_admin_id: Optional[str] = Field(None, description="Declared supervisor id")
    impersonate_user_id: Optional[str] = Field(None, description="Declared target user id")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    route: Optional[str] = None
    method: Optional[str] = None


class EffectiveActor(BaseModel):
    """Resolved identity for one request.

    `actor` is the authenticated caller and is what permissions are checked
    against. `effective_user_id` is the identity recorded on business data.
    """
    actor: Actor
    actor_account: Optional[UserAccount] = None
    effective_user_id: str
    effective_user: Optional[UserAccount] = None
    is_impersonating: bool = False

    @property
    def supervisor_id(self) -> Optional[str]:
        """Impersonating supervisor, if any."""
        return self.actor.id if self.is_impersonating else None

    @property
    def actor_email(self) -> Optional[str]:
        if self.actor_account and self.actor_account.email:
            return self.actor_account.email
        return self.actor.email

    @property
    def actor_name(self) -> str:
        if self.actor_account:
            return self.actor_account.display_name
        return self.actor.email or self.actor.id
