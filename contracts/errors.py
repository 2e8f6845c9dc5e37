"""Error taxonomy for the dossier core.

NotFound, Forbidden, ValidationFailed and Conflict surface to the caller.
GatewayError is raised by outbound gateways and caught by the effect
dispatcher; it never reaches a lifecycle caller.
"""

from typing import Any, Dict, Optional


class DossierCoreError(Exception):
    """Base class carrying a discriminated reason code."""

    code = "internal"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Transport-friendly representation (never includes dossier data)."""
        payload: Dict[str, Any] = {"success": False, "reason": self.code, "message": self.message}
        if self.details:
            payload.update(self.details)
        return payload


class NotFoundError(DossierCoreError):
    """A dossier, user or template does not exist."""

    code = "not_found"


class ForbiddenError(DossierCoreError):
    """The actor may not perform the action (permission or impersonation misuse)."""

    code = "forbidden"


class PermissionDeniedError(ForbiddenError):
    """Denial from the permission resolver; carries the computed capability map."""

    def __init__(self, action: str, capabilities: Any):
        super().__init__(
            f"You do not have permission to perform this action ({action}) on this dossier",
            details={"permissions": capabilities.model_dump()},
        )
        self.action = action
        self.capabilities = capabilities


class ValidationFailedError(DossierCoreError):
    """Malformed action parameters."""

    code = "validation_failed"


class ConflictError(DossierCoreError):
    """State conflict: terminal dossier, exhausted numbering, duplicate number."""

    code = "conflict"


class DuplicateRecordError(ConflictError):
    """A store rejected a write on a unique field."""

    def __init__(self, collection: str, field: str, value: Any):
        super().__init__(
            f"Duplicate value for {collection}.{field}: {value}",
            details={"collection": collection, "field": field},
        )
        self.collection = collection
        self.field = field
        self.value = value


class GatewayError(DossierCoreError):
    """Outbound message delivery failed."""

    code = "gateway_failure"


class InternalError(DossierCoreError):
    """Unexpected store or runtime failure."""

    code = "internal"
