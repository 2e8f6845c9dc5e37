"""Base record store interface."""

import re
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel


Filter = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]


class Collections:
    """Collection names used by the core."""
    USERS = "users"
    DOSSIERS = "dossiers"
    NOTIFICATIONS = "notifications"
    AUDIT_LOG = "audit_log"
    SMS_TEMPLATES = "sms_templates"
    SMS_HISTORY = "sms_history"
    TASKS = "tasks"


def to_document(record: Any) -> Dict[str, Any]:
    """Flatten a pydantic model (or dict) into a storable document.

    Enum members are stored as their values so both backends compare plain
    strings.
    """
    if isinstance(record, BaseModel):
        data = record.model_dump(mode="python")
    else:
        data = dict(record)
    return _plain(data)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return value


def get_path(document: Dict[str, Any], path: str) -> Tuple[bool, Any]:
    """Resolve a dotted path; returns (found, value)."""
    current: Any = document
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return False, None
    return True, current


def _compare(value: Any, operator: str, operand: Any, flags: int = 0) -> bool:
    if operator == "$ne":
        return value != operand
    if operator == "$in":
        if isinstance(value, list):
            return any(v in operand for v in value)
        return value in operand
    if operator == "$nin":
        if isinstance(value, list):
            return not any(v in operand for v in value)
        return value not in operand
    if operator == "$regex":
        return isinstance(value, str) and re.search(operand, value, flags) is not None
    if value is None:
        return False
    if operator == "$gte":
        return value >= operand
    if operator == "$gt":
        return value > operand
    if operator == "$lte":
        return value <= operand
    if operator == "$lt":
        return value < operand
    raise ValueError(f"Unsupported filter operator: {operator}")


def matches(document: Dict[str, Any], filter: Optional[Filter]) -> bool:
    """Evaluate the supported Mongo-style filter subset against a document."""
    for path, condition in (filter or {}).items():
        found, value = get_path(document, path)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            for operator, operand in condition.items():
                if operator == "$exists":
                    if bool(operand) != (found and value is not None):
                        return False
                    continue
                if operator == "$options":
                    continue
                if not _compare(value if found else None, operator, operand, flags):
                    return False
        else:
            if isinstance(value, list) and not isinstance(condition, list):
                if condition not in value:
                    return False
            elif value != condition:
                return False
    return True


def sort_documents(documents: Iterable[Dict[str, Any]], sort: Optional[Sort]) -> List[Dict[str, Any]]:
    """Stable multi-key sort; missing values sort first ascending."""
    result = list(documents)
    for path, direction in reversed(list(sort or [])):
        def key(doc, _path=path):
            found, value = get_path(doc, _path)
            if not found or value is None:
                return (0, "")
            if isinstance(value, datetime):
                return (1, value.timestamp())
            return (1, value)
        result.sort(key=key, reverse=direction < 0)
    return result


class RecordStore(ABC):
    """Abstract persistent record store.

    Documents are plain dicts carrying an `id` field. Unique constraints are
    sparse: None values never collide.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name (memory, mongo)."""
        pass

    @abstractmethod
    def ensure_unique(self, collection: str, field: str) -> None:
        """Declare a unique constraint on one field of a collection."""
        pass

    @abstractmethod
    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document.

        Raises:
            DuplicateRecordError: if a unique field collides
        """
        pass

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document by id."""
        pass

    @abstractmethod
    def find(
        self,
        collection: str,
        filter: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Find documents matching a filter."""
        pass

    @abstractmethod
    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Set top-level fields on a document; returns the updated document or None."""
        pass

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool:
        """Remove a document; returns True if it existed."""
        pass

    @abstractmethod
    def increment_counter(self, key: str, floor: int = 0) -> int:
        """Atomically advance a named counter and return its new value.

        The returned value is always greater than `floor`.
        """
        pass

    def find_one(
        self,
        collection: str,
        filter: Optional[Filter] = None,
        sort: Optional[Sort] = None,
    ) -> Optional[Dict[str, Any]]:
        """First document matching a filter, or None."""
        found = self.find(collection, filter, sort=sort, limit=1)
        return found[0] if found else None

    def count(self, collection: str, filter: Optional[Filter] = None) -> int:
        return len(self.find(collection, filter))

    def replace(self, collection: str, record: BaseModel) -> Optional[Dict[str, Any]]:
        """Write back every field of a model under its id."""
        document = to_document(record)
        record_id = document.pop("id")
        return self.update(collection, record_id, document)

    def is_available(self) -> bool:
        """Check whether the backend is reachable."""
        return True
