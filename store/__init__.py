"""Record store abstraction for the dossier core."""

from .base import Collections, RecordStore, to_document
from .memory_store import MemoryStore
from .factory import get_store, prepare_store

__all__ = [
    "Collections",
    "RecordStore",
    "to_document",
    "MemoryStore",
    "get_store",
    "prepare_store",
]
