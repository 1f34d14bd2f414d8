"""Backend factory: picks the IDocumentBackend implementation from settings."""

from docconf.application.interfaces.document_backend import IDocumentBackend
from docconf.core.config import StoreSettings
from docconf.infrastructure.firebase.client import FirestoreDocumentBackend
from docconf.infrastructure.memory.backend import InMemoryDocumentBackend


def create_backend(settings: StoreSettings) -> IDocumentBackend:
    """Return a new, unopened backend for settings.backend."""
    if settings.backend == "memory":
        return InMemoryDocumentBackend(db=settings.db)
    return FirestoreDocumentBackend(settings)
