"""Orchestrator module for dossier action execution."""

from .dossier_service import (
    DossierService,
    ServiceResult,
    get_dossier_service,
    reset_dossier_service,
)

__all__ = [
    "DossierService",
    "ServiceResult",
    "get_dossier_service",
    "reset_dossier_service",
]
