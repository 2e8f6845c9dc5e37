"""MongoDB record store (pymongo)."""

from typing import Any, Dict, List, Optional

from pymongo import MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import settings
from contracts import DuplicateRecordError, new_id

from .base import Filter, RecordStore, Sort


COUNTERS = "counters"


def _to_mongo(document: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(document)
    doc["_id"] = doc.pop("id", None) or new_id()
    return doc


def _from_mongo(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    doc = dict(document)
    doc["id"] = str(doc.pop("_id"))
    return doc


def _filter_to_mongo(filter: Optional[Filter]) -> Dict[str, Any]:
    filt = dict(filter or {})
    if "id" in filt:
        filt["_id"] = filt.pop("id")
    return filt


class MongoStore(RecordStore):
    """Record store over a MongoDB database.

    Record ids are stored as `_id`. Unique constraints are partial indexes
    over string values.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        database: Optional[str] = None,
        client: Optional[MongoClient] = None,
    ):
        """Initialize the store.

        Args:
            uri: Connection URI. Uses settings.mongo_uri if not provided.
            database: Database name. Uses settings.mongo_database if not provided.
            client: Pre-built client (takes precedence over uri)
        """
        self._client = client or MongoClient(uri or settings.mongo_uri)
        self._db = self._client[database or settings.mongo_database]

    @property
    def name(self) -> str:
        return "mongo"

    def _duplicate(self, collection: str, error: DuplicateKeyError) -> DuplicateRecordError:
        key_value = (error.details or {}).get("keyValue") or {}
        field, value = next(iter(key_value.items()), ("unknown", None))
        if field == "_id":
            field = "id"
        return DuplicateRecordError(collection, field, value)

    def ensure_unique(self, collection: str, field: str) -> None:
        # null values never collide
        self._db[collection].create_index(
            field,
            unique=True,
            partialFilterExpression={field: {"$type": "string"}},
        )

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        doc = _to_mongo(document)
        try:
            self._db[collection].insert_one(doc)
        except DuplicateKeyError as e:
            raise self._duplicate(collection, e) from e
        return _from_mongo(doc)

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        return _from_mongo(self._db[collection].find_one({"_id": record_id}))

    def find(
        self,
        collection: str,
        filter: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self._db[collection].find(_filter_to_mongo(filter))
        if sort:
            cursor = cursor.sort([("_id" if f == "id" else f, d) for f, d in sort])
        if limit:
            cursor = cursor.limit(limit)
        return [_from_mongo(d) for d in cursor]

    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        fields = {k: v for k, v in changes.items() if k not in ("id", "_id")}
        try:
            updated = self._db[collection].find_one_and_update(
                {"_id": record_id},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise self._duplicate(collection, e) from e
        return _from_mongo(updated)

    def delete(self, collection: str, record_id: str) -> bool:
        return self._db[collection].delete_one({"_id": record_id}).deleted_count > 0

    def increment_counter(self, key: str, floor: int = 0) -> int:
        counters = self._db[COUNTERS]
        # $max and $inc cannot target the same field in one update
        if floor:
            counters.update_one({"_id": key}, {"$max": {"seq": floor}}, upsert=True)
        doc = counters.find_one_and_update(
            {"_id": key},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["seq"])

    def is_available(self) -> bool:
        try:
            self._client.admin.command("ping")
            return True
        except PyMongoError:
            return False
