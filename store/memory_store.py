"""In-process record store used for tests and local runs."""

import copy
import threading
from typing import Any, Dict, List, Optional, Set

from contracts import DuplicateRecordError, new_id

from .base import Filter, RecordStore, Sort, matches, sort_documents


class MemoryStore(RecordStore):
    """Dict-backed store with sparse unique constraints and atomic counters."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._unique: Dict[str, Set[str]] = {}
        self._counters: Dict[str, int] = {}
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return "memory"

    def _bucket(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _check_unique(self, collection: str, document: Dict[str, Any], skip_id: Optional[str] = None) -> None:
        for field in self._unique.get(collection, ()):
            value = document.get(field)
            if value is None:
                continue
            for other_id, other in self._bucket(collection).items():
                if other_id != skip_id and other.get(field) == value:
                    raise DuplicateRecordError(collection, field, value)

    def ensure_unique(self, collection: str, field: str) -> None:
        with self._lock:
            self._unique.setdefault(collection, set()).add(field)

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            doc = copy.deepcopy(document)
            doc.setdefault("id", new_id())
            if doc["id"] in self._bucket(collection):
                raise DuplicateRecordError(collection, "id", doc["id"])
            self._check_unique(collection, doc)
            self._bucket(collection)[doc["id"]] = doc
            return copy.deepcopy(doc)

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._bucket(collection).get(record_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find(
        self,
        collection: str,
        filter: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            found = [d for d in self._bucket(collection).values() if matches(d, filter)]
            found = sort_documents(found, sort)
            if limit is not None:
                found = found[:limit]
            return copy.deepcopy(found)

    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            current = self._bucket(collection).get(record_id)
            if current is None:
                return None
            candidate = {**current, **copy.deepcopy(changes), "id": record_id}
            self._check_unique(collection, candidate, skip_id=record_id)
            self._bucket(collection)[record_id] = candidate
            return copy.deepcopy(candidate)

    def delete(self, collection: str, record_id: str) -> bool:
        with self._lock:
            return self._bucket(collection).pop(record_id, None) is not None

    def increment_counter(self, key: str, floor: int = 0) -> int:
        with self._lock:
            value = max(self._counters.get(key, 0), floor) + 1
            self._counters[key] = value
            return value
