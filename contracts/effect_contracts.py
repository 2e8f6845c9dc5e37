"""Side-effect contracts.

Lifecycle operations return these alongside the mutated dossier. The effect
dispatcher delivers them after the primary write; a failed effect never
changes the outcome of the operation that produced it.
"""

from pydantic import BaseModel, Field
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from .dossier_contracts import Dossier
from .notification_contracts import SmsContext


class NotifyUser(BaseModel):
    """In-app notification for a single recipient."""
    kind: Literal["notify_user"] = "notify_user"
    recipient: str
    type: str
    title: str
    message: str
    link: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class NotifyAdmins(BaseModel):
    """In-app notification for every active administrative account.

    Expanded per recipient by the dispatcher; each delivery is isolated.
    """
    kind: Literal["notify_admins"] = "notify_admins"
    type: str
    title: str
    message: str
    link: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    exclude_ids: List[str] = Field(default_factory=list)


class SendSms(BaseModel):
    """Outbound text built from a template code and variables."""
    kind: Literal["send_sms"] = "send_sms"
    to: str
    template_code: str
    variables: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    sent_by: Optional[str] = None
    context: SmsContext = SmsContext.OTHER
    context_id: Optional[str] = None
    skip_preferences: bool = False


class RecordAudit(BaseModel):
    """Append one audit entry."""
    kind: Literal["record_audit"] = "record_audit"
    action: str
    actor: Optional[str] = None
    actor_email: Optional[str] = None
    target_user: Optional[str] = None
    target_user_email: Optional[str] = None
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    ip: Optional[str] = None
    user_agent: Optional[str] = None


SideEffect = Annotated[
    Union[NotifyUser, NotifyAdmins, SendSms, RecordAudit],
    Field(discriminator="kind"),
]


class LifecycleOutcome(BaseModel):
    """Primary mutation result plus the effects it asks to be delivered."""
    dossier: Optional[Dossier] = None
    effects: List[SideEffect] = Field(default_factory=list)
    message: str = ""


class DispatchReport(BaseModel):
    """What happened to a batch of effects."""
    delivered: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)

    def merge(self, other: "DispatchReport") -> "DispatchReport":
        return DispatchReport(
            delivered=self.delivered + other.delivered,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
            errors=self.errors + other.errors,
        )
