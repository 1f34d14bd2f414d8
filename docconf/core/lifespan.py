"""Store lifespan: open, yield, close.

Single place for startup/shutdown of a CachingDocumentStore. Replaces
process signal handlers: callers scope the store with `async with`.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from docconf.application.interfaces.document_backend import IDocumentBackend
from docconf.core.config import StoreSettings, get_settings
from docconf.infrastructure.cache.document_store import CachingDocumentStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_store(
    settings: StoreSettings | None = None,
    *,
    backend: IDocumentBackend | None = None,
    drain: bool = True,
) -> AsyncIterator[CachingDocumentStore]:
    """Load a store, yield it, then close it.

    Startup: connect, authenticate and load every document of the app.
    Shutdown: drain write-back (unless drain is False), cancel background
    refreshes, close the backend. Shutdown also runs when the body raises.
    """
    settings = settings or get_settings()
    store = CachingDocumentStore(settings, backend=backend)

    # ---- Startup ----
    try:
        await store.load()
    except Exception:
        await store.close(drain=False)
        raise
    logger.info("Config store opened for app %r", settings.app)

    try:
        yield store
    finally:
        # ---- Shutdown ----
        await store.close(drain=drain)
