"""Thin Firestore REST API client (no firebase-admin).

Uses google-auth for service account tokens and Firestore REST v1.
All HTTP calls use httpx.AsyncClient so they do not block the event loop.
Works against production Firestore or the emulator (base_url + the
emulator's admin token).
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx

from docconf.core.constants import FIRESTORE_DEFAULT_DATABASE, FIRESTORE_EMULATOR_TOKEN
from docconf.infrastructure.firebase._rest_encoding import (
    decode_document,
    encode_document,
    encode_value,
)

_FIRESTORE_SCOPE = "https://www.googleapis.com/auth/datastore"
_BASE = "https://firestore.googleapis.com/v1"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Firestore accepts at most 500 writes per commit
COMMIT_BATCH_SIZE = 500


def _get_credentials(key_dict: dict):
    """Return google.oauth2.service_account.Credentials for Firestore."""
    from google.oauth2 import service_account

    return service_account.Credentials.from_service_account_info(
        key_dict, scopes=[_FIRESTORE_SCOPE]
    )


def _get_access_token(credentials) -> str:
    from google.auth.transport.requests import Request

    if not credentials.valid:
        credentials.refresh(Request())
    return credentials.token


async def _request_async(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    body: dict | None = None,
    access_token: str | None = None,
    params: dict[str, Any] | None = None,
) -> Any:
    """Perform an async request to the Firestore REST API. 404 returns None.

    Raises:
        httpx.HTTPStatusError: For any other non-2xx response.
        httpx.TransportError: When the endpoint cannot be reached.
    """
    headers = {"Content-Type": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    resp = await client.request(method, url, headers=headers, json=body, params=params)
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    if method == "DELETE" or not resp.content:
        return {}
    return resp.json()


def _snapshot(doc: Mapping[str, Any]) -> "DocumentSnapshot":
    name = doc.get("name", "")
    return DocumentSnapshot(name.rsplit("/", 1)[-1] if name else "", decode_document(doc))


class DocumentSnapshot:
    """Snapshot of a document (id + data)."""

    def __init__(self, id_: str, data: dict):
        self.id = id_
        self._data = data

    def to_dict(self) -> dict:
        return self._data


class DocumentReference:
    """Reference to a single document; matches firestore API style."""

    def __init__(self, client: "FirestoreRESTClient", path: str):
        self._client = client
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    async def set(self, data: Mapping[str, Any]) -> None:
        """Create or overwrite the document (PATCH with full replace)."""
        body = encode_document(data)
        await self._client.request(f"{self._client.base_url}/{self._path}", "PATCH", body)

    async def delete(self) -> None:
        """Delete the document. Idempotent if the document is already missing."""
        await self._client.request(f"{self._client.base_url}/{self._path}", "DELETE")


class _Query:
    """Equality query over a collection; runs via runQuery on the server."""

    def __init__(
        self,
        collection: "CollectionReference",
        filters: tuple[tuple[str, Any], ...] = (),
        limit: int | None = None,
    ):
        self._collection = collection
        self._filters = filters
        self._limit = limit

    def where(self, field: str, op: str, value: Any) -> "_Query":
        if op != "==":
            raise ValueError(f"Only equality filters are supported, got {op!r}")
        return _Query(self._collection, self._filters + ((field, value),), self._limit)

    def limit(self, n: int) -> "_Query":
        return _Query(self._collection, self._filters, n)

    def structured_query(self) -> dict[str, Any]:
        structured: dict[str, Any] = {
            "from": [{"collectionId": self._collection.id}],
        }
        field_filters = [
            {
                "fieldFilter": {
                    "field": {"fieldPath": field},
                    "op": "EQUAL",
                    "value": encode_value(value),
                }
            }
            for field, value in self._filters
        ]
        if len(field_filters) == 1:
            structured["where"] = field_filters[0]
        elif field_filters:
            structured["where"] = {
                "compositeFilter": {"op": "AND", "filters": field_filters}
            }
        if self._limit:
            structured["limit"] = self._limit
        return structured

    async def stream(self) -> AsyncIterator[DocumentSnapshot]:
        """Execute the query and yield document snapshots."""
        client = self._collection.client
        url = f"{client.base_url}/{self._collection.parent}:runQuery"
        resp = await client.request(url, "POST", {"structuredQuery": self.structured_query()})
        items = resp if isinstance(resp, list) else ([resp] if resp else [])
        for item in items:
            if "document" in item:
                yield _snapshot(item["document"])


class CollectionReference:
    """Reference to a collection; matches firestore API style."""

    def __init__(self, client: "FirestoreRESTClient", path: str):
        self.client = client
        self.path = path.rstrip("/")
        self.parent, self.id = self.path.rsplit("/", 1)

    def document(self, document_id: str) -> DocumentReference:
        return DocumentReference(self.client, f"{self.path}/{document_id}")

    async def stream(self, page_size: int | None = None) -> AsyncIterator[DocumentSnapshot]:
        """List documents in the collection, following page tokens."""
        url = f"{self.client.base_url}/{self.path}"
        params: dict[str, Any] = {}
        if page_size:
            params["pageSize"] = page_size
        while True:
            out = await self.client.request(url, params=params)
            if not out:
                return
            for doc in out.get("documents", []):
                yield _snapshot(doc)
            token = out.get("nextPageToken")
            if not token:
                return
            params["pageToken"] = token


class FirestoreRESTClient:
    """Lightweight Firestore client using the REST API (no firebase-admin)."""

    def __init__(
        self,
        project_id: str,
        credentials=None,
        *,
        database: str = FIRESTORE_DEFAULT_DATABASE,
        base_url: str = _BASE,
        emulator: bool = False,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._project_id = project_id
        self._credentials = credentials
        self._emulator = emulator
        self.base_url = base_url.rstrip("/")
        self.database_path = f"projects/{project_id}/databases/{database}"
        self._prefix = f"{self.database_path}/documents"
        self._http = http_client if http_client is not None else httpx.AsyncClient(timeout=timeout)
        self._owns_http = http_client is None

    async def aclose(self) -> None:
        """Close the HTTP client only if we created it (do not close injected client)."""
        if self._owns_http:
            await self._http.aclose()

    def use_credentials(self, credentials) -> None:
        """Authenticate subsequent requests with google-auth credentials."""
        self._credentials = credentials

    def clear_credentials(self) -> None:
        """Forget credentials; later requests go out unauthenticated."""
        self._credentials = None

    async def get_token(self) -> str | None:
        """Return a valid access token; refreshes in a thread to avoid blocking.

        Without credentials the emulator admin token is used, or no token at all.
        """
        if self._credentials is None:
            return FIRESTORE_EMULATOR_TOKEN if self._emulator else None
        return await asyncio.to_thread(_get_access_token, self._credentials)

    async def request(
        self,
        url: str,
        method: str = "GET",
        body: dict | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        return await _request_async(
            self._http,
            url,
            method=method,
            body=body,
            access_token=await self.get_token(),
            params=params,
        )

    async def ping(self) -> bool:
        """True if the database exists and answers (listCollectionIds)."""
        url = f"{self.base_url}/{self._prefix}:listCollectionIds"
        out = await self.request(url, "POST", {"pageSize": 1})
        return out is not None

    async def delete_many(self, paths: list[str]) -> int:
        """Delete documents by path in batched commits. Returns the count."""
        url = f"{self.base_url}/{self.database_path}/documents:commit"
        for start in range(0, len(paths), COMMIT_BATCH_SIZE):
            chunk = paths[start:start + COMMIT_BATCH_SIZE]
            body = {"writes": [{"delete": path} for path in chunk]}
            await self.request(url, "POST", body)
        return len(paths)

    def collection(self, collection_id: str) -> CollectionReference:
        return CollectionReference(self, f"{self._prefix}/{collection_id}")
