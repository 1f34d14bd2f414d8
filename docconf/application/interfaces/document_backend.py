"""Document backend interface (port) used by CachingDocumentStore.

Protocols define the contract infrastructure implementations must fulfill
(DIP). Documents cross this boundary as plain dicts: stored fields
{key, value, app} plus "id" for the storage identity.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class IDocumentBackend(Protocol):
    """Capability surface the cache layer needs from a document store."""

    name: str

    async def open(self) -> None:
        """Open the connection to the store (connect/handshake)."""

    async def authenticate(self, username: str, password: str) -> None:
        """Authenticate the open connection. Raises AuthenticationException."""

    async def ensure_collection(self, name: str) -> Any:
        """Return an opaque reference to the named collection, creating it if needed."""

    async def find(self, collection: Any, query: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Return every document whose fields equal all values in query."""

    async def find_one(self, collection: Any, query: Mapping[str, Any]) -> dict[str, Any] | None:
        """Return one matching document or None."""

    async def save(self, collection: Any, document: Mapping[str, Any]) -> str:
        """Insert or replace a document; returns its storage id."""

    async def remove(
        self,
        collection: Any,
        query: Mapping[str, Any] | None = None,
        *,
        document_id: str | None = None,
    ) -> int:
        """Remove one document by id, or every document matching query. Returns the count."""

    async def close(self) -> None:
        """End any authenticated session and release the connection."""
