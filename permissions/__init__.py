"""Dossier authorization: capability table and impersonation."""

from .resolver import (
    CAPABILITY_TABLE,
    AuthorizedAccess,
    PermissionResolver,
    membership_kind,
    role_tier,
)
from .impersonation import ImpersonationContext

__all__ = [
    "CAPABILITY_TABLE",
    "AuthorizedAccess",
    "PermissionResolver",
    "membership_kind",
    "role_tier",
    "ImpersonationContext",
]
