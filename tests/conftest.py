"""Pytest configuration and fixtures for docconf.

Stores use the in-memory backend unless a test builds a Firestore one.
Shared in-memory databases and cached settings are reset around each test.
"""

import pytest

from docconf.core.config import StoreSettings, get_settings
from docconf.infrastructure.cache.document_store import CachingDocumentStore
from docconf.infrastructure.memory.backend import (
    InMemoryDocumentBackend,
    reset_memory_databases,
)

TEST_DB = "test-db"


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolate_state():
    """Fresh in-memory databases and settings cache for every test."""
    reset_memory_databases()
    get_settings.cache_clear()
    yield
    reset_memory_databases()
    get_settings.cache_clear()


@pytest.fixture
def settings() -> StoreSettings:
    """Memory-backed settings with a test namespace and app."""
    return StoreSettings(
        backend="memory",
        db=TEST_DB,
        namespace="test",
        app="unit",
        _env_file=None,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def store(settings: StoreSettings, clock: FakeClock) -> CachingDocumentStore:
    """Unloaded store; closed after the test."""
    s = CachingDocumentStore(settings, clock=clock)
    yield s
    await s.close()


@pytest.fixture
async def raw_backend() -> InMemoryDocumentBackend:
    """Direct handle on the test database, for seeding and inspecting documents."""
    backend = InMemoryDocumentBackend(db=TEST_DB)
    await backend.open()
    yield backend
    await backend.close()
