"""Firestore backend tests against a fake REST server (httpx.MockTransport).

The fake implements the slice of Firestore REST v1 the backend uses: document
PATCH/GET/DELETE, collection listing, runQuery with equality filters,
listCollectionIds and commit (deletes).
"""

import json
import os

import httpx
import pytest

from docconf.core.config import AuthSettings, StoreSettings
from docconf.domain.exceptions import (
    AuthenticationException,
    PersistenceException,
    StoreConnectionException,
)
from docconf.infrastructure.cache.document_store import CachingDocumentStore
from docconf.infrastructure.firebase.client import FirestoreDocumentBackend

PROJECT = "demo-docconf"
DB_PATH = f"projects/{PROJECT}/databases/(default)"
DOCS_PATH = f"{DB_PATH}/documents"


class FakeFirestore:
    """In-process stand-in for the Firestore REST API."""

    def __init__(self, *, databases: tuple[str, ...] = ("(default)",)) -> None:
        self.documents: dict[str, dict] = {}  # full name -> {"name", "fields"}
        self.databases = databases
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": {"code": self.fail_with}})
        path = request.url.path.removeprefix("/v1/")
        database = path.split("/")[3] if path.count("/") >= 3 else ""
        if database not in self.databases:
            return httpx.Response(404, json={"error": {"code": 404}})

        if path.endswith(":listCollectionIds"):
            return httpx.Response(200, json={"collectionIds": ["config"]})
        if path.endswith(":runQuery"):
            return httpx.Response(200, json=self._run_query(json.loads(request.content)))
        if path.endswith(":commit"):
            writes = json.loads(request.content)["writes"]
            for write in writes:
                self.documents.pop(write["delete"], None)
            return httpx.Response(200, json={"writeResults": [{} for _ in writes]})

        relative = path.removeprefix(f"{DOCS_PATH}/")
        if "/" not in relative:
            return self._list(path, request)
        if request.method == "PATCH":
            body = json.loads(request.content)
            self.documents[path] = {"name": path, "fields": body["fields"]}
            return httpx.Response(200, json=self.documents[path])
        if request.method == "DELETE":
            self.documents.pop(path, None)
            return httpx.Response(200, json={})
        if path in self.documents:
            return httpx.Response(200, json=self.documents[path])
        return httpx.Response(404, json={"error": {"code": 404}})

    def stored(self) -> list[dict]:
        """Documents as {id, key, app, fields} for assertions."""
        return [
            {
                "id": name.rsplit("/", 1)[-1],
                "key": doc["fields"]["key"]["stringValue"],
                "app": doc["fields"]["app"]["stringValue"],
                "fields": doc["fields"],
            }
            for name, doc in self.documents.items()
        ]

    def _list(self, path: str, request: httpx.Request) -> httpx.Response:
        docs = [d for name, d in self.documents.items() if name.startswith(f"{path}/")]
        page_size = int(request.url.params.get("pageSize", len(docs) or 1))
        start = int(request.url.params.get("pageToken", 0))
        page = docs[start:start + page_size]
        body: dict = {"documents": page}
        if start + page_size < len(docs):
            body["nextPageToken"] = str(start + page_size)
        return httpx.Response(200, json=body)

    def _run_query(self, body: dict) -> list[dict]:
        query = body["structuredQuery"]
        collection = query["from"][0]["collectionId"]
        where = query.get("where")
        if where is None:
            filters = []
        elif "compositeFilter" in where:
            filters = [f["fieldFilter"] for f in where["compositeFilter"]["filters"]]
        else:
            filters = [where["fieldFilter"]]
        results = []
        for name, doc in self.documents.items():
            if not name.startswith(f"{DOCS_PATH}/{collection}/"):
                continue
            if all(doc["fields"].get(f["field"]["fieldPath"]) == f["value"] for f in filters):
                results.append({"document": doc, "readTime": "2024-01-01T00:00:00Z"})
        if "limit" in query:
            results = results[: query["limit"]]
        return results or [{"readTime": "2024-01-01T00:00:00Z"}]


def make_settings(**overrides) -> StoreSettings:
    options = {
        "backend": "firestore",
        "host": "localhost",
        "port": 8080,
        "use_tls": False,
        "emulator": True,
        "project": PROJECT,
        "namespace": "test",
        "app": "integration",
        "_env_file": None,
    }
    options.update(overrides)
    return StoreSettings(**options)


@pytest.fixture
def fake() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
async def http_client(fake: FakeFirestore) -> httpx.AsyncClient:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as client:
        yield client


def make_store(http_client: httpx.AsyncClient, **overrides) -> CachingDocumentStore:
    settings = make_settings(**overrides)
    backend = FirestoreDocumentBackend(settings, http_client=http_client)
    return CachingDocumentStore(settings, backend=backend)


async def test_set_save_and_load_across_instances(fake, http_client) -> None:
    """A value saved by one store is loaded by the next one."""
    first = make_store(http_client)
    first.set("a:b", 5)
    first.set("a:c", {"d": [1, "two"]})
    await first.save()
    await first.close()

    assert [d["key"] for d in fake.stored()] == ["test:a"]

    second = make_store(http_client)
    loaded = await second.load()
    assert loaded == {"a": {"b": 5, "c": {"d": [1, "two"]}}}
    assert second.get("a:c:d") == [1, "two"]
    assert second.type == "firestore"
    await second.close()


async def test_emulator_token_is_sent(fake, http_client) -> None:
    store = make_store(http_client)
    await store.load()
    await store.close()
    assert fake.requests
    assert all(r.headers["Authorization"] == "Bearer owner" for r in fake.requests)


async def test_updates_reuse_document_id(fake, http_client) -> None:
    store = make_store(http_client)
    await store.load()
    store.set("a:b", 1)
    await store.flush()
    first_id = fake.stored()[0]["id"]

    store.set("a:b", 2)
    await store.flush()

    stored = fake.stored()
    assert [d["id"] for d in stored] == [first_id]
    assert stored[0]["fields"]["value"] == {"mapValue": {"fields": {"b": {"integerValue": "2"}}}}
    await store.close()


async def test_clear_removes_document(fake, http_client) -> None:
    store = make_store(http_client)
    await store.load()
    store.set("a:b", 1)
    await store.flush()

    store.clear("a:b")
    await store.flush()

    assert fake.stored() == []
    assert any(r.method == "DELETE" for r in fake.requests)
    await store.close()


async def test_reset_deletes_app_documents_in_one_commit(fake, http_client) -> None:
    other = make_store(http_client, app="other")
    other.set("keep:me", True)
    await other.save()
    await other.close()

    store = make_store(http_client)
    store.set("a:b", 1)
    store.set("c:d", 2)
    await store.save()

    assert await store.reset() is True

    commits = [r for r in fake.requests if r.url.path.endswith(":commit")]
    assert len(commits) == 1
    assert len(json.loads(commits[0].content)["writes"]) == 2
    assert [d["app"] for d in fake.stored()] == ["other"]
    assert store.load_sync() == {}
    await store.close()


async def test_fetch_reads_document_written_elsewhere(fake, http_client) -> None:
    reader = make_store(http_client)
    await reader.load()

    writer = make_store(http_client)
    writer.set("late:value", "x")
    await writer.save()

    assert reader.get("late:value") is None
    assert await reader.fetch("late:value") == "x"
    await reader.close()
    await writer.close()


async def test_new_local_root_reuses_stored_document(fake, http_client) -> None:
    writer = make_store(http_client)
    writer.set("a:x", 1)
    await writer.save()
    await writer.close()
    stored_id = fake.stored()[0]["id"]

    store = make_store(http_client)
    await store.fetch("other")
    store.set("a:y", 2)
    await store.flush()

    assert [d["id"] for d in fake.stored()] == [stored_id]
    assert store.get("a") == {"x": 1, "y": 2}
    await store.close()


async def test_safe_dbs_rejects_missing_database(http_client) -> None:
    store = make_store(http_client, db="missing", safe_dbs=True)
    with pytest.raises(StoreConnectionException):
        await store.load()


async def test_safe_collections_probes_collection(fake, http_client) -> None:
    store = make_store(http_client, safe_collections=True)
    await store.load()
    listings = [r for r in fake.requests if r.method == "GET" and r.url.path.endswith("/config")]
    assert len(listings) == 1
    assert listings[0].url.params["pageSize"] == "1"
    await store.close()


async def test_permission_denied_is_authentication_error(fake, http_client) -> None:
    fake.fail_with = 403
    store = make_store(http_client)
    with pytest.raises(AuthenticationException):
        await store.load()


async def test_server_error_on_save_goes_to_hook(fake, http_client) -> None:
    errors: list[PersistenceException] = []
    settings = make_settings()
    backend = FirestoreDocumentBackend(settings, http_client=http_client)
    store = CachingDocumentStore(settings, backend=backend, on_persistence_error=errors.append)
    await store.load()
    store.set("a:b", 0)
    await store.flush()

    fake.fail_with = 500
    store.set("a:b", 1)
    await store.flush()

    assert len(errors) == 1
    assert errors[0].details == {"operation": "save", "root": "test:a"}
    assert store.get("a:b") == 1
    fake.fail_with = None
    await store.close()


async def test_transport_error_is_connection_error() -> None:
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(unreachable)) as client:
        store = make_store(client)
        with pytest.raises(StoreConnectionException) as exc_info:
            await store.load()
    assert exc_info.value.details["endpoint"].startswith("http://localhost:8080/v1/")


async def test_invalid_service_account_key_is_authentication_error(http_client) -> None:
    store = make_store(
        http_client,
        emulator=False,
        auth=AuthSettings(username="svc@demo.iam.gserviceaccount.com", password="not-a-key"),
    )
    with pytest.raises(AuthenticationException):
        await store.load()


@pytest.mark.requires_firestore
async def test_emulator_round_trip() -> None:
    """Runs against a real Firestore emulator when FIRESTORE_EMULATOR_HOST is set."""
    emulator_host = os.environ.get("FIRESTORE_EMULATOR_HOST")
    if not emulator_host:
        pytest.skip("Firestore emulator not configured: set FIRESTORE_EMULATOR_HOST=host:port")
    host, _, port = emulator_host.rpartition(":")
    settings = make_settings(host=host, port=int(port), app="emulator-test")

    store = CachingDocumentStore(settings)
    await store.load()
    await store.reset()
    store.set("a:b", 5)
    await store.save()
    await store.close()

    second = CachingDocumentStore(settings)
    await second.load()
    assert second.get("a:b") == 5
    await second.reset()
    await second.close()
