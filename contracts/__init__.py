"""Pydantic contracts for the dossier core.

Every record the core reads or writes is typed through these contracts.
"""

from .errors import (
    DossierCoreError,
    NotFoundError,
    ForbiddenError,
    PermissionDeniedError,
    ValidationFailedError,
    ConflictError,
    DuplicateRecordError,
    GatewayError,
    InternalError,
)

from .actor_contracts import (
    new_id,
    Role,
    SmsPreferences,
    UserAccount,
    Actor,
    RequestContext,
    EffectiveActor,
)

from .dossier_contracts import (
    DossierStatus,
    TERMINAL_STATUSES,
    Priority,
    Category,
    ActiveCollaborator,
    Dossier,
    DossierCreate,
    DossierUpdate,
)

from .permission_contracts import (
    Action,
    ACTION_CAPABILITIES,
    Capabilities,
    MembershipKind,
    RoleTier,
)

from .notification_contracts import (
    NotificationType,
    Notification,
    SmsTemplateVariable,
    SmsTemplate,
    SmsStatus,
    SmsContext,
    SmsHistoryEntry,
    SmsResult,
)

from .audit_contracts import (
    IMPERSONATION_PREFIX,
    IMPERSONATION_MARKER,
    AuditAction,
    AuditEntry,
)

from .task_contracts import (
    TaskStatus,
    CLOSED_TASK_STATUSES,
    Task,
)

from .effect_contracts import (
    NotifyUser,
    NotifyAdmins,
    SendSms,
    RecordAudit,
    SideEffect,
    LifecycleOutcome,
    DispatchReport,
)

__all__ = [
    # Errors
    "DossierCoreError",
    "NotFoundError",
    "ForbiddenError",
    "PermissionDeniedError",
    "ValidationFailedError",
    "ConflictError",
    "DuplicateRecordError",
    "GatewayError",
    "InternalError",
    # Actors
    "new_id",
    "Role",
    "SmsPreferences",
    "UserAccount",
    "Actor",
    "RequestContext",
    "EffectiveActor",
    # Dossier
    "DossierStatus",
    "TERMINAL_STATUSES",
    "Priority",
    "Category",
    "ActiveCollaborator",
    "Dossier",
    "DossierCreate",
    "DossierUpdate",
    # Permissions
    "Action",
    "ACTION_CAPABILITIES",
    "Capabilities",
    "MembershipKind",
    "RoleTier",
    # Notifications
    "NotificationType",
    "Notification",
    "SmsTemplateVariable",
    "SmsTemplate",
    "SmsStatus",
    "SmsContext",
    "SmsHistoryEntry",
    "SmsResult",
    # Audit
    "IMPERSONATION_PREFIX",
    "IMPERSONATION_MARKER",
    "AuditAction",
    "AuditEntry",
    # Tasks
    "TaskStatus",
    "CLOSED_TASK_STATUSES",
    "Task",
    # Side effects
    "NotifyUser",
    "NotifyAdmins",
    "SendSms",
    "RecordAudit",
    "SideEffect",
    "LifecycleOutcome",
    "DispatchReport",
]
