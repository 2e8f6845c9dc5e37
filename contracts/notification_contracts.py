"""Notification, SMS template and SMS history contracts."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime

from .actor_contracts import new_id


class NotificationType(str, Enum):
    """In-app notification types emitted by the core."""
    DOSSIER_CREATED = "dossier_created"
    DOSSIER_UPDATED = "dossier_updated"
    DOSSIER_DELETED = "dossier_deleted"
    DOSSIER_STATUS_CHANGED = "dossier_status_changed"
    DOSSIER_CANCELLED = "dossier_cancelled"
    DOSSIER_TEAM_CHANGED = "dossier_team_changed"
    DOSSIER_COLLABORATOR_ACTIVE = "dossier_collaborator_active"
    MESSAGE_RECEIVED = "message_received"
    TASK_DEADLINE = "task_deadline"
    TASK_OVERDUE = "task_overdue"
    ACCOUNT_SECURITY = "account_security"
    OTP = "otp"
    OTHER = "other"


class Notification(BaseModel):
    """In-app notification for one recipient."""
    id: str = Field(default_factory=new_id)
    recipient: str
    type: str = NotificationType.OTHER.value
    title: str
    message: str
    link: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class SmsTemplateVariable(BaseModel):
    name: str
    description: Optional[str] = None
    example: Optional[str] = None


class SmsTemplate(BaseModel):
    """Stored SMS text keyed by code, with {{variable}} placeholders."""
    id: str = Field(default_factory=new_id)
    code: str
    name: str
    message: str
    description: Optional[str] = None
    variables: List[SmsTemplateVariable] = Field(default_factory=list)
    category: str = "other"
    is_active: bool = True
    is_system: bool = False


class SmsStatus(str, Enum):
    """Delivery status recorded in SMS history."""
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    UNDELIVERED = "undelivered"


class SmsContext(str, Enum):
    """What an SMS relates to."""
    APPOINTMENT = "appointment"
    DOSSIER = "dossier"
    MESSAGE = "message"
    ACCOUNT = "account"
    TASK = "task"
    OTP = "otp"
    MANUAL = "manual"
    OTHER = "other"


class SmsHistoryEntry(BaseModel):
    """Immutable record of one SMS attempt."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    to: str
    message: str
    template_code: str
    template_name: str
    variables: Dict[str, Any] = Field(default_factory=dict)
    status: SmsStatus = SmsStatus.PENDING
    provider_sid: Optional[str] = None
    provider_status: Optional[str] = None
    error: Optional[str] = None
    sent_by: Optional[str] = None
    sent_to_user: Optional[str] = None
    context: SmsContext = SmsContext.OTHER
    context_id: Optional[str] = None
    sent_at: datetime = Field(default_factory=datetime.now)


class SmsResult(BaseModel):
    """Outcome of SmsNotifier.send."""
    success: bool
    skipped: bool = False
    reason: Optional[str] = None
    to: Optional[str] = None
    message: Optional[str] = None
    template_code: Optional[str] = None
    sid: Optional[str] = None
    history_id: Optional[str] = None
