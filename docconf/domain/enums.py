"""Domain enumerations for docconf."""

from enum import Enum


class StoreState(str, Enum):
    """Connection lifecycle of a CachingDocumentStore.

    UNCONNECTED -> CONNECTING -> READY; CLOSED only after close().
    """

    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


class QueueOperation(str, Enum):
    """Kind of persistence work carried by a save-queue job."""

    SAVE = "save"
    REMOVE = "remove"
