"""Append-only audit log."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from contracts import AuditEntry, RecordAudit
from store import Collections, RecordStore, to_document

logger = logging.getLogger(__name__)


class AuditLog:
    """Records sensitive actions. Entries are never updated or removed."""

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def record(
        self,
        action: str,
        description: str,
        actor: Optional[str] = None,
        actor_email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> AuditEntry:
        """Append one entry and return it."""
        entry = AuditEntry(
            action=action,
            description=description,
            actor=actor,
            actor_email=actor_email,
            metadata=metadata or {},
            created_at=self.clock(),
            **fields,
        )
        self.store.insert(Collections.AUDIT_LOG, to_document(entry))
        logger.debug("Audit %s by %s", entry.action, entry.actor)
        return entry

    def record_effect(self, effect: RecordAudit) -> AuditEntry:
        return self.record(**effect.model_dump(exclude={"kind"}))

    def entries(
        self,
        filter: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEntry]:
        """Entries matching a filter, newest first."""
        docs = self.store.find(Collections.AUDIT_LOG, filter, sort=[("created_at", -1)], limit=limit)
        return [AuditEntry.model_validate(d) for d in docs]
