"""Firestore document backend (REST-based, no firebase-admin).

Implements IDocumentBackend on top of FirestoreRESTClient. Connects to
production Firestore or to the emulator (host/port/use_tls/emulator
settings). Credentials are a service account's client email (username) and
private key (password); the emulator needs none.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

import httpx
from google.auth import exceptions as google_auth_exceptions

from docconf.core.config import StoreSettings
from docconf.core.constants import DOC_ID, DOC_KEY
from docconf.domain.entities import stored_fields
from docconf.domain.exceptions import (
    AuthenticationException,
    PersistenceException,
    StoreConnectionException,
)
from docconf.infrastructure.firebase._rest_client import (
    GOOGLE_TOKEN_URI,
    CollectionReference,
    FirestoreRESTClient,
    _get_credentials,
    _Query,
)
from docconf.shared.telemetry.tracing import add_span_attributes, traced
from docconf.shared.utils.generators import generate_document_id

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(operation: str, endpoint: str, root: str | None = None) -> Iterator[None]:
    """Map httpx/google-auth errors onto docconf exceptions."""
    try:
        yield
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        if status in (401, 403):
            raise AuthenticationException(
                f"Firestore rejected the request ({status}) during {operation}"
            ) from e
        if operation in ("save", "remove"):
            raise PersistenceException(operation, root, f"HTTP {status}") from e
        raise StoreConnectionException(
            f"Firestore {operation} failed with HTTP {status}", endpoint
        ) from e
    except httpx.TransportError as e:
        raise StoreConnectionException(f"Firestore {operation} failed: {e}", endpoint) from e
    except google_auth_exceptions.GoogleAuthError as e:
        raise AuthenticationException(f"Could not obtain a Firestore access token: {e}") from e


class FirestoreDocumentBackend:
    """IDocumentBackend over the Firestore REST API.

    Args:
        settings: Store settings (endpoint, project, db, safe flags).
        http_client: Optional httpx client for testing or DI; not closed by
            this backend.
    """

    name = "firestore"

    def __init__(
        self,
        settings: StoreSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._http_client = http_client
        self._client: FirestoreRESTClient | None = None

    @property
    def endpoint(self) -> str:
        return (
            f"{self._settings.base_url}/projects/{self._settings.project}"
            f"/databases/{self._settings.db}"
        )

    @property
    def is_open(self) -> bool:
        return self._client is not None

    @traced("docconf.firestore.open")
    async def open(self) -> None:
        """Create the REST client; with safe_dbs, probe the database first."""
        if self._client is not None:
            return
        client = FirestoreRESTClient(
            self._settings.project,
            database=self._settings.db,
            base_url=self._settings.base_url,
            emulator=self._settings.emulator,
            timeout=self._settings.request_timeout,
            http_client=self._http_client,
        )
        if self._settings.safe_dbs:
            try:
                with _translate_errors("open", self.endpoint):
                    found = await client.ping()
            except Exception:
                await client.aclose()
                raise
            if not found:
                await client.aclose()
                raise StoreConnectionException(
                    f"Firestore database {self._settings.db!r} not found", self.endpoint
                )
        self._client = client
        logger.info("Firestore backend opened: %s", self.endpoint)

    @traced("docconf.firestore.authenticate")
    async def authenticate(self, username: str, password: str) -> None:
        """Build service account credentials and fetch a first access token."""
        client = self._require_client()
        key_info = {
            "type": "service_account",
            "client_email": username,
            "private_key": password,
            "token_uri": GOOGLE_TOKEN_URI,
            "project_id": self._settings.project,
        }
        try:
            credentials = _get_credentials(key_info)
        except ValueError as e:
            raise AuthenticationException(
                f"Invalid service account credentials for {username!r}"
            ) from e
        client.use_credentials(credentials)
        with _translate_errors("authenticate", self.endpoint):
            await client.get_token()
        logger.info("Authenticated to Firestore as %s", username)

    @traced("docconf.firestore.ensure_collection")
    async def ensure_collection(self, name: str) -> CollectionReference:
        """Return the collection; Firestore creates it on first write.

        With safe_collections, one page is read so permission or path
        problems fail here instead of on the first write.
        """
        collection = self._require_client().collection(name)
        if self._settings.safe_collections:
            with _translate_errors("ensure_collection", self.endpoint):
                async for _ in collection.stream(page_size=1):
                    break
        return collection

    @traced("docconf.firestore.find")
    async def find(self, collection: CollectionReference, query: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._require_client()
        documents: list[dict[str, Any]] = []
        with _translate_errors("find", self.endpoint):
            async for snapshot in self._query(collection, query).stream():
                documents.append({**snapshot.to_dict(), DOC_ID: snapshot.id})
        add_span_attributes(**{"docconf.count": len(documents)})
        return documents

    @traced("docconf.firestore.find_one")
    async def find_one(
        self, collection: CollectionReference, query: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        self._require_client()
        with _translate_errors("find_one", self.endpoint):
            async for snapshot in self._query(collection, query).limit(1).stream():
                return {**snapshot.to_dict(), DOC_ID: snapshot.id}
        return None

    @traced("docconf.firestore.save")
    async def save(self, collection: CollectionReference, document: Mapping[str, Any]) -> str:
        """Write the stored fields under the document's id (new CUID if none)."""
        self._require_client()
        doc_id = document.get(DOC_ID) or generate_document_id()
        fields = stored_fields(document)
        with _translate_errors("save", self.endpoint, root=document.get(DOC_KEY)):
            await collection.document(doc_id).set(fields)
        return doc_id

    @traced("docconf.firestore.remove")
    async def remove(
        self,
        collection: CollectionReference,
        query: Mapping[str, Any] | None = None,
        *,
        document_id: str | None = None,
    ) -> int:
        """Delete one document by id, or all matches of query in batched commits."""
        client = self._require_client()
        if document_id is not None:
            with _translate_errors("remove", self.endpoint):
                await collection.document(document_id).delete()
            return 1
        with _translate_errors("remove", self.endpoint):
            paths = [
                collection.document(snapshot.id).path
                async for snapshot in self._query(collection, query or {}).stream()
            ]
            count = await client.delete_many(paths)
        add_span_attributes(**{"docconf.count": count})
        logger.debug("Removed %d Firestore documents from %s", count, collection.id)
        return count

    async def close(self) -> None:
        """Drop credentials, then close the HTTP connection pool."""
        client, self._client = self._client, None
        if client is None:
            return
        client.clear_credentials()
        await client.aclose()
        logger.info("Firestore backend closed: %s", self.endpoint)

    def _require_client(self) -> FirestoreRESTClient:
        if self._client is None:
            raise StoreConnectionException("Firestore backend is not open", self.endpoint)
        return self._client

    @staticmethod
    def _query(collection: CollectionReference, query: Mapping[str, Any]) -> _Query:
        q = _Query(collection)
        for field, value in query.items():
            q = q.where(field, "==", value)
        return q
