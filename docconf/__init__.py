"""docconf: hierarchical configuration cached in memory, stored in a document database.

Keys such as "db:pool:size" address nested values; each top-level key is one
stored document. Open a store with `open_store()` or `async with
CachingDocumentStore(...)`.
"""

from docconf.core.config import AuthSettings, StoreSettings, get_settings
from docconf.core.lifespan import open_store
from docconf.domain.enums import StoreState
from docconf.domain.exceptions import (
    AuthenticationException,
    ConfigStoreException,
    InvalidKeyException,
    NonObjectPathException,
    PersistenceException,
    StoreClosedException,
    StoreConnectionException,
)
from docconf.infrastructure.cache.document_store import CachingDocumentStore

__all__ = [
    "AuthSettings",
    "StoreSettings",
    "get_settings",
    "open_store",
    "CachingDocumentStore",
    "StoreState",
    # Exceptions
    "AuthenticationException",
    "ConfigStoreException",
    "InvalidKeyException",
    "NonObjectPathException",
    "PersistenceException",
    "StoreClosedException",
    "StoreConnectionException",
]
