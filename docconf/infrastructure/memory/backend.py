"""In-memory document backend for tests and local development.

Databases are shared per name inside the process, so two stores configured
with backend="memory" and the same db see the same documents. Data is lost
on process exit.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from docconf.core.constants import DOC_ID
from docconf.domain.entities import stored_fields
from docconf.domain.exceptions import AuthenticationException, StoreConnectionException
from docconf.shared.utils.generators import generate_document_id

logger = logging.getLogger(__name__)

# db name -> collection name -> document id -> stored fields
_DATABASES: dict[str, dict[str, dict[str, dict[str, Any]]]] = {}


def reset_memory_databases() -> None:
    """Drop every shared in-memory database (test isolation)."""
    _DATABASES.clear()


class MemoryCollection:
    """Reference to one in-memory collection."""

    def __init__(self, name: str, documents: dict[str, dict[str, Any]]) -> None:
        self.name = name
        self.documents = documents

    def matching(self, query: Mapping[str, Any] | None) -> list[str]:
        """Ids of documents whose fields equal every value in query."""
        query = query or {}
        return [
            doc_id
            for doc_id, fields in self.documents.items()
            if all(fields.get(k) == v for k, v in query.items())
        ]


class InMemoryDocumentBackend:
    """IDocumentBackend over process-local dicts.

    Args:
        db: Database name; backends with the same name share data.
        credentials: Optional {username: password}; when given,
            authenticate() rejects anything else.
    """

    name = "memory"

    def __init__(self, db: str = "docconf", *, credentials: Mapping[str, str] | None = None) -> None:
        self._db_name = db
        self._credentials = dict(credentials) if credentials is not None else None
        self._db: dict[str, dict[str, dict[str, Any]]] | None = None
        self._user: str | None = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    @property
    def authenticated_user(self) -> str | None:
        return self._user

    async def open(self) -> None:
        self._db = _DATABASES.setdefault(self._db_name, {})
        logger.debug("In-memory database %r opened", self._db_name)

    async def authenticate(self, username: str, password: str) -> None:
        self._require_open()
        if self._credentials is not None and self._credentials.get(username) != password:
            raise AuthenticationException(f"Invalid credentials for user {username!r}")
        self._user = username

    async def ensure_collection(self, name: str) -> MemoryCollection:
        db = self._require_open()
        return MemoryCollection(name, db.setdefault(name, {}))

    async def find(self, collection: MemoryCollection, query: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._require_open()
        return [self._record(collection, doc_id) for doc_id in collection.matching(query)]

    async def find_one(self, collection: MemoryCollection, query: Mapping[str, Any]) -> dict[str, Any] | None:
        self._require_open()
        ids = collection.matching(query)
        return self._record(collection, ids[0]) if ids else None

    async def save(self, collection: MemoryCollection, document: Mapping[str, Any]) -> str:
        self._require_open()
        doc_id = document.get(DOC_ID) or generate_document_id()
        collection.documents[doc_id] = stored_fields(document)
        return doc_id

    async def remove(
        self,
        collection: MemoryCollection,
        query: Mapping[str, Any] | None = None,
        *,
        document_id: str | None = None,
    ) -> int:
        self._require_open()
        if document_id is not None:
            return 1 if collection.documents.pop(document_id, None) is not None else 0
        ids = collection.matching(query)
        for doc_id in ids:
            del collection.documents[doc_id]
        return len(ids)

    async def close(self) -> None:
        self._user = None
        self._db = None

    def _require_open(self) -> dict[str, dict[str, dict[str, Any]]]:
        if self._db is None:
            raise StoreConnectionException(
                "In-memory backend is not open", endpoint=f"memory://{self._db_name}"
            )
        return self._db

    @staticmethod
    def _record(collection: MemoryCollection, doc_id: str) -> dict[str, Any]:
        return {**copy.deepcopy(collection.documents[doc_id]), DOC_ID: doc_id}
