"""Dossier lifecycle: numbering, status catalogue, mutations and presence."""

from .statuses import STATUS_LABELS, required_action, status_label
from .sequence import SequenceAllocator
from .case_lifecycle import CaseLifecycle
from .presence import PresenceTracker

__all__ = [
    "STATUS_LABELS",
    "required_action",
    "status_label",
    "SequenceAllocator",
    "CaseLifecycle",
    "PresenceTracker",
]
