"""Factory for creating record stores."""

from typing import Dict, Optional, Type

from config import settings

from .base import Collections, RecordStore
from .memory_store import MemoryStore


def _mongo_store_class() -> Type[RecordStore]:
    from .mongo_store import MongoStore
    return MongoStore


# Registry of available backends; mongo is resolved lazily
BACKENDS: Dict[str, object] = {
    "memory": MemoryStore,
    "mongo": _mongo_store_class,
    "mongodb": _mongo_store_class,
}


def prepare_store(store: RecordStore) -> RecordStore:
    """Declare the unique constraints the core relies on."""
    store.ensure_unique(Collections.DOSSIERS, "number")
    store.ensure_unique(Collections.USERS, "email")
    store.ensure_unique(Collections.SMS_TEMPLATES, "code")
    return store


def get_store(backend: Optional[str] = None) -> RecordStore:
    """Get a prepared record store instance.

    Args:
        backend: Explicit backend name (memory, mongo). Defaults to settings.store_backend.

    Returns:
        RecordStore instance with unique constraints declared
    """
    key = (backend or settings.store_backend).lower()
    if key not in BACKENDS:
        raise ValueError(
            f"Unknown store backend: {backend}. "
            f"Available: {list(BACKENDS.keys())}"
        )
    entry = BACKENDS[key]
    store_class = entry if isinstance(entry, type) else entry()
    return prepare_store(store_class())
