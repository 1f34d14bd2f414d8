"""Caching document store: hierarchical config over a document backend.

Reads and writes (get, set, clear, merge) are synchronous and touch only the
in-memory cache. Storage is reached from load, save, fetch and reset, from
background refreshes of stale roots, and from the write-back queue that
every local mutation feeds.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Callable
from typing import Any

from docconf.application.interfaces.document_backend import IDocumentBackend
from docconf.core.config import StoreSettings, get_settings
from docconf.core.constants import DOC_APP, DOC_ID, DOC_KEY, DOC_VALUE
from docconf.domain.entities import (
    CacheEntry,
    build_document,
    deep_merge,
    is_logically_deleted,
    storage_id,
)
from docconf.domain.enums import QueueOperation, StoreState
from docconf.domain.exceptions import (
    ConfigStoreException,
    NonObjectPathException,
    PersistenceException,
    StoreClosedException,
)
from docconf.infrastructure.cache.keys import (
    namespaced_key,
    root_from_namespaced,
    storage_path,
)
from docconf.infrastructure.cache.memory import MemoryStore
from docconf.infrastructure.cache.save_queue import SaveJob, SaveQueue
from docconf.infrastructure.composition import create_backend
from docconf.shared.telemetry.tracing import add_span_attributes, add_span_event, traced

logger = logging.getLogger(__name__)


class CachingDocumentStore:
    """Hierarchical key/value store backed by one document per root.

    Keys look like "db:pool:size": "db" selects the document stored under
    "<namespace>:db" for this app, and "pool:size" is a path inside its
    value. Cached roots older than ttl milliseconds are refreshed in the
    background on access (ttl 0 disables that).

    Args:
        settings: Store options; defaults to get_settings().
        backend: Document backend; defaults to create_backend(settings).
        clock: Monotonic clock in seconds (injectable for tests).
        on_persistence_error: Called with a PersistenceException whenever a
            write-back job fails.
    """

    read_only = False

    def __init__(
        self,
        settings: StoreSettings | None = None,
        *,
        backend: IDocumentBackend | None = None,
        clock: Callable[[], float] = time.monotonic,
        on_persistence_error: Callable[[PersistenceException], None] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._backend = backend if backend is not None else create_backend(self._settings)
        self._clock = clock
        self._cache = MemoryStore(clock)
        self._queue = SaveQueue(
            self._run_job,
            concurrency=self._settings.save_concurrency,
            on_error=on_persistence_error,
        )
        self._state = StoreState.UNCONNECTED
        self._connect_lock = asyncio.Lock()
        self._collection: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._refreshes: dict[str, asyncio.Task[None]] = {}
        self._pending_save = False

    @property
    def type(self) -> str:
        """Name of the backend in use ("firestore", "memory")."""
        return self._backend.name

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def namespace(self) -> str:
        return self._settings.namespace

    @property
    def app(self) -> str:
        return self._settings.app

    @property
    def ttl(self) -> int:
        return self._settings.ttl

    @property
    def delimiter(self) -> str:
        return self._settings.delimiter

    async def __aenter__(self) -> "CachingDocumentStore":
        await self.load()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Cache operations (synchronous)
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any | None:
        """Return a copy of the cached value at key, or None.

        A stale or missing root is refreshed in the background once the
        store is connected; this call still returns what the cache holds now.
        """
        path = storage_path(key, self.delimiter)
        root = path[0]
        entry = self._cache.entry(root)
        if self._state is StoreState.READY and (entry is None or self._is_stale(entry)):
            self._schedule_refresh(root)
        with self._cache.lock:
            return copy.deepcopy(self._cache.get(path))

    def set(self, key: str, value: Any) -> bool:
        """Set value at key and schedule write-back.

        Returns False, leaving the cache untouched, when the key's path runs
        through an existing non-object value.
        """
        path = storage_path(key, self.delimiter)
        root = path[0]
        try:
            with self._cache.lock:
                self._ensure_document(root)
                self._cache.set(path, value)
        except NonObjectPathException as e:
            logger.warning("Cannot set %r: %s", key, e.message)
            return False
        self._persist(SaveJob(QueueOperation.SAVE, root))
        return True

    def clear(self, key: str) -> bool:
        """Remove the value at key. Returns False if nothing was there.

        When the root's document is left without any value, the stored
        document is removed instead of being saved empty.
        """
        path = storage_path(key, self.delimiter)
        root = path[0]
        with self._cache.lock:
            entry = self._cache.entry(root)
            document = entry.document if entry else None
            if not self._cache.clear(path):
                return False
        if is_logically_deleted(document):
            self._persist(SaveJob(QueueOperation.REMOVE, root, document))
        else:
            self._persist(SaveJob(QueueOperation.SAVE, root))
        return True

    def merge(self, key: str, value: Any) -> Any:
        """Merge value into the value at key and return a copy of the result.

        Objects merge recursively (incoming keys win); anything else replaces
        the current value.

        Raises:
            NonObjectPathException: If the path runs through a non-object value.
        """
        path = storage_path(key, self.delimiter)
        root = path[0]
        with self._cache.lock:
            self._ensure_document(root)
            merged = copy.deepcopy(self._cache.merge(path, value))
        self._persist(SaveJob(QueueOperation.SAVE, root))
        return merged

    def load_sync(self) -> dict[str, Any]:
        """Snapshot of every cached root as {root: value}; no I/O."""
        return self._cache.snapshot()

    # ------------------------------------------------------------------
    # Storage operations
    # ------------------------------------------------------------------

    @traced("docconf.store.load")
    async def load(self) -> dict[str, Any]:
        """Connect if needed and cache every stored document of this app.

        Roots with unsaved local changes keep them (see _reconcile), and so
        do roots written while the query was in flight.

        Returns:
            load_sync() after loading.

        Raises:
            StoreConnectionException: If the backend cannot be reached.
            AuthenticationException: If the credentials are rejected.
            StoreClosedException: If the store has been closed.
        """
        await self._connect()
        before = self._generations()
        documents = await self._backend.find(self._collection, {DOC_APP: self.app})
        now = self._clock()
        loaded = 0
        with self._cache.lock:
            for document in documents:
                root = root_from_namespaced(self.namespace, document.get(DOC_KEY), self.delimiter)
                if root is None:
                    logger.debug("Skipping document outside namespace %r: %r", self.namespace, document.get(DOC_KEY))
                    continue
                loaded += 1
                entry = self._cache.entry(root)
                if entry is None:
                    self._cache.put(root, document, now)
                elif entry.dirty:
                    self._reconcile(entry, document)
                elif self._unchanged_since(before, entry):
                    self._cache.put(root, document, now)
                else:
                    logger.debug("Keeping root %r: written while loading", root)
        add_span_attributes(**{"docconf.count": loaded})
        logger.info("Loaded %d config documents for app %r", loaded, self.app)
        return self.load_sync()

    @traced("docconf.store.fetch")
    async def fetch(self, key: str) -> Any | None:
        """Like get(), but waits for a refresh when the root is missing or stale."""
        path = storage_path(key, self.delimiter)
        root = path[0]
        await self._connect()
        entry = self._cache.entry(root)
        if entry is None or self._is_stale(entry) or root in self._refreshes:
            await self._schedule_refresh(root)
        with self._cache.lock:
            return copy.deepcopy(self._cache.get(path))

    @traced("docconf.store.save")
    async def save(self) -> None:
        """Write every cached document back to storage and wait for it.

        Before the store is ready the save is deferred: load() connects,
        which replays it, and then loads the stored documents. Failures for
        individual documents go to the persistence error hook and the log,
        not to the caller.
        """
        self._raise_if_closed()
        if self._state is not StoreState.READY:
            self._pending_save = True
            await self.load()
        else:
            self._pending_save = False
            self._enqueue_all(dirty_only=False)
        await self._queue.join()

    async def flush(self) -> None:
        """Wait until queued write-back has been attempted."""
        self._raise_if_closed()
        await self._queue.join()

    @traced("docconf.store.reset")
    async def reset(self) -> bool:
        """Drop every cached root and delete this app's stored documents.

        Returns:
            True once the remove has been issued.
        """
        self._raise_if_closed()
        await self._cancel_refreshes()
        if not self._cache.reset():
            return False
        self._pending_save = False
        await self._connect()
        await self._queue.join()
        removed = await self._backend.remove(self._collection, {DOC_APP: self.app})
        add_span_event("docconf.reset", {"docconf.count": removed})
        logger.info("Reset app %r: removed %d stored documents", self.app, removed)
        return True

    async def close(self, drain: bool = True) -> None:
        """Stop background work and release the backend.

        Args:
            drain: Write back unsaved changes and wait for queued write-back
                before stopping the workers.
        """
        if self._state is StoreState.CLOSED:
            return
        if drain:
            await self._write_back_pending()
            await self._queue.join()
        await self._cancel_refreshes()
        await self._queue.aclose()
        await self._backend.close()
        self._state = StoreState.CLOSED
        logger.info("Config store closed (%s)", self.type)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _connect(self) -> None:
        if self._state is StoreState.READY:
            return
        self._raise_if_closed()
        async with self._connect_lock:
            if self._state is StoreState.READY:
                return
            self._raise_if_closed()
            self._state = StoreState.CONNECTING
            try:
                await self._backend.open()
                auth = self._settings.auth
                if auth is not None:
                    await self._backend.authenticate(auth.username, auth.password.get_secret_value())
                self._collection = await self._backend.ensure_collection(self._settings.collection)
            except Exception:
                self._state = StoreState.UNCONNECTED
                await self._backend.close()
                raise
            self._loop = asyncio.get_running_loop()
            self._state = StoreState.READY
            logger.info(
                "Config store ready (%s, collection %r, app %r)",
                self.type,
                self._settings.collection,
                self.app,
            )
            if self._pending_save:
                self._pending_save = False
                self._enqueue_all(dirty_only=True)

    async def _write_back_pending(self) -> None:
        if not self._pending_save:
            return
        if self._state is StoreState.READY:
            self._pending_save = False
            self._enqueue_all(dirty_only=True)
            return
        try:
            await self._connect()
        except ConfigStoreException as e:
            logger.error("Unsaved config changes for app %r were not written back: %s", self.app, e.message)

    def _raise_if_closed(self) -> None:
        if self._state is StoreState.CLOSED:
            raise StoreClosedException()

    def _is_stale(self, entry: CacheEntry) -> bool:
        if self.ttl == 0:
            return False
        return (self._clock() - entry.refreshed_at) * 1000 >= self.ttl

    def _generations(self) -> dict[str, tuple[CacheEntry, int]]:
        generations = {}
        with self._cache.lock:
            for root in self._cache.roots():
                entry = self._cache.entry(root)
                if entry is not None:
                    generations[root] = (entry, entry.generation)
        return generations

    @staticmethod
    def _unchanged_since(before: dict[str, tuple[CacheEntry, int]], entry: CacheEntry) -> bool:
        seen = before.get(entry.root)
        return seen is not None and seen[0] is entry and seen[1] == entry.generation

    def _ensure_document(self, root: str) -> None:
        entry = self._cache.entry(root)
        if entry is not None and entry.document is not None:
            return
        document = build_document(namespaced_key(self.namespace, root, self.delimiter), self.app)
        self._cache.put(root, document, entry.refreshed_at if entry else None)

    def _persist(self, job: SaveJob) -> None:
        if self._state is StoreState.CLOSED:
            logger.warning("Store is closed; change to root %r is kept in memory only", job.root)
            return
        if self._state is not StoreState.READY or self._loop is None:
            self._pending_save = True
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.push(job)
            return
        # called from another thread; the queue belongs to the store's loop
        try:
            self._loop.call_soon_threadsafe(self._queue.push, job)
        except RuntimeError:
            logger.warning("Event loop is closed; change to root %r waits for the next save", job.root)
            self._pending_save = True

    def _enqueue_all(self, *, dirty_only: bool) -> None:
        for root in self._cache.roots():
            with self._cache.lock:
                entry = self._cache.entry(root)
                if entry is None or (dirty_only and not entry.dirty):
                    continue
                document = entry.document
                deleted = is_logically_deleted(document)
            if not deleted:
                self._queue.push(SaveJob(QueueOperation.SAVE, root))
            elif storage_id(document) is not None:
                self._queue.push(SaveJob(QueueOperation.REMOVE, root, document))

    async def _run_job(self, job: SaveJob) -> None:
        if job.operation is QueueOperation.REMOVE:
            await self._remove_document(job)
        else:
            await self._save_document(job)

    async def _save_document(self, job: SaveJob) -> None:
        entry = self._savable_entry(job.root)
        if entry is None:
            return
        generation = entry.generation
        try:
            if storage_id(entry.document) is None:
                # created locally: the root may already have a stored document
                query = {DOC_KEY: entry.document[DOC_KEY], DOC_APP: self.app}
                existing = await self._backend.find_one(self._collection, query)
                if self._savable_entry(job.root) is not entry:
                    return
                with self._cache.lock:
                    self._reconcile(entry, existing)
                    generation = entry.generation
            with self._cache.lock:
                document = copy.deepcopy(entry.document)
            doc_id = await self._backend.save(self._collection, document)
        finally:
            # failed writes too, so a later refresh can replace the value
            self._mark_saved(entry, generation)
        with self._cache.lock:
            if entry.document is not None:
                entry.document.setdefault(DOC_ID, doc_id)
        logger.debug("Saved root %r as document %s", job.root, doc_id)

    def _savable_entry(self, root: str) -> CacheEntry | None:
        with self._cache.lock:
            entry = self._cache.entry(root)
            if entry is None or is_logically_deleted(entry.document):
                logger.debug("Nothing to save for root %r", root)
                return None
            return entry

    def _mark_saved(self, entry: CacheEntry, generation: int) -> None:
        with self._cache.lock:
            if self._cache.entry(entry.root) is entry and entry.generation == generation:
                entry.dirty = False

    async def _remove_document(self, job: SaveJob) -> None:
        document = job.document
        doc_id = storage_id(document)
        try:
            if doc_id is not None:
                await self._backend.remove(self._collection, document_id=doc_id)
                logger.debug("Removed document %s for root %r", doc_id, job.root)
        finally:
            removed = self._holds_removed(job.root, document)
            if removed is not None:
                removed.dirty = False
        if removed is not None:
            document.pop(DOC_ID, None)

    def _holds_removed(self, root: str, document: dict[str, Any] | None) -> CacheEntry | None:
        with self._cache.lock:
            entry = self._cache.entry(root)
            if entry is not None and entry.document is document and is_logically_deleted(document):
                return entry
            return None

    def _reconcile(self, entry: CacheEntry, stored: dict[str, Any] | None) -> None:
        """Fold a stored document into an entry that has unsaved changes.

        A document created locally has no storage id yet; it adopts the
        stored id, and local values are merged over the stored ones, so the
        next save updates the stored document instead of duplicating it.
        """
        document = entry.document
        if stored is None or document is None or storage_id(document) is not None:
            return
        document[DOC_ID] = stored[DOC_ID]
        local, remote = document.get(DOC_VALUE), stored.get(DOC_VALUE)
        if isinstance(local, dict) and isinstance(remote, dict):
            document[DOC_VALUE] = deep_merge(remote, local)
        entry.generation += 1
        logger.debug("Reconciled unsaved root %r with stored document %s", entry.root, stored[DOC_ID])

    def _schedule_refresh(self, root: str) -> asyncio.Task[None] | None:
        task = self._refreshes.get(root)
        if task is not None:
            return task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        task = loop.create_task(self._refresh(root), name=f"docconf-refresh-{root}")
        self._refreshes[root] = task
        task.add_done_callback(lambda t: self._refresh_done(root, t))
        return task

    async def _refresh(self, root: str) -> None:
        entry = self._cache.entry(root)
        generation = entry.generation if entry else None
        query = {DOC_KEY: namespaced_key(self.namespace, root, self.delimiter), DOC_APP: self.app}
        document = await self._backend.find_one(self._collection, query)
        with self._cache.lock:
            current = self._cache.entry(root)
            if current is not None and current.dirty:
                self._reconcile(current, document)
                logger.debug("Discarding refresh of root %r: local changes pending", root)
                return
            if current is not entry or (current is not None and current.generation != generation):
                logger.debug("Discarding refresh of root %r: entry changed meanwhile", root)
                return
            self._cache.put(root, document)

    def _refresh_done(self, root: str, task: asyncio.Task[None]) -> None:
        if self._refreshes.get(root) is task:
            del self._refreshes[root]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background refresh of root %r failed: %s", root, exc, exc_info=exc)

    async def _cancel_refreshes(self) -> None:
        tasks = list(self._refreshes.values())
        self._refreshes.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

