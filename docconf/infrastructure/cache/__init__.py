"""Cache: in-memory document mirror, write-back queue and the caching store.

Key format lives in keys.py (DRY); CachingDocumentStore composes the rest.
"""

from docconf.infrastructure.cache.document_store import CachingDocumentStore
from docconf.infrastructure.cache.keys import (
    join_key,
    namespaced_key,
    root_from_namespaced,
    root_of,
    split_key,
    storage_path,
)
from docconf.infrastructure.cache.memory import MemoryStore
from docconf.infrastructure.cache.save_queue import SaveJob, SaveQueue

__all__ = [
    "CachingDocumentStore",
    "MemoryStore",
    "SaveJob",
    "SaveQueue",
    "join_key",
    "namespaced_key",
    "root_from_namespaced",
    "root_of",
    "split_key",
    "storage_path",
]
