"""Process-local document backend."""

from docconf.infrastructure.memory.backend import (
    InMemoryDocumentBackend,
    reset_memory_databases,
)

__all__ = ["InMemoryDocumentBackend", "reset_memory_databases"]
