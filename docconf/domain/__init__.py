"""Domain layer: cache entities, enums, and exceptions.

No dependencies on infrastructure. Used by application and infrastructure
layers.
"""

from docconf.domain.entities import CacheEntry
from docconf.domain.enums import QueueOperation, StoreState
from docconf.domain.exceptions import (
    AuthenticationException,
    ConfigStoreException,
    InvalidKeyException,
    NonObjectPathException,
    PersistenceException,
    StoreClosedException,
    StoreConnectionException,
)

__all__ = [
    # Entities
    "CacheEntry",
    # Enums
    "QueueOperation",
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
