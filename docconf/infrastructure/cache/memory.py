"""Generic in-memory keyed-document cache.

Holds one CacheEntry per root and performs nested get/set/clear/merge over
segment paths ([root, field, field, ...]). Knows nothing about storage;
CachingDocumentStore owns one and decides what to persist.
"""

from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from docconf.core.constants import DOC_VALUE
from docconf.domain.entities import CacheEntry, deep_merge
from docconf.domain.exceptions import NonObjectPathException


class MemoryStore:
    """Nested key/value cache keyed by root.

    Local mutations (set, clear, merge) mark the entry dirty and bump its
    generation; put() replaces an entry wholesale (e.g. after a refresh).

    Mutations and reads run under `lock`, a reentrant lock. Callers that
    update an entry in place from the event loop hold it too, so writes from
    other threads never interleave with them.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def __contains__(self, root: str) -> bool:
        return root in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, root: str) -> CacheEntry | None:
        """Return the entry for a root, or None."""
        return self._entries.get(root)

    def roots(self) -> list[str]:
        """Roots currently cached."""
        with self._lock:
            return list(self._entries)

    def put(
        self,
        root: str,
        document: dict[str, Any] | None,
        refreshed_at: float | None = None,
        *,
        dirty: bool = False,
    ) -> CacheEntry:
        """Replace the entry for a root with a (possibly absent) document."""
        with self._lock:
            previous = self._entries.get(root)
            entry = CacheEntry(
                root=root,
                document=document,
                refreshed_at=self._clock() if refreshed_at is None else refreshed_at,
                generation=previous.generation + 1 if previous else 0,
                dirty=dirty,
            )
            self._entries[root] = entry
            return entry

    def get(self, path: Sequence[str]) -> Any:
        """Value at path, or None if any segment is missing or not an object."""
        root, *rest = path
        with self._lock:
            entry = self._entries.get(root)
            node: Any = entry.document if entry else None
            for segment in rest:
                if not isinstance(node, Mapping):
                    return None
                node = node.get(segment)
            return node

    def set(self, path: Sequence[str], value: Any) -> None:
        """Set value at path, creating missing intermediate objects.

        The whole path is checked before anything is written, so a failed
        call leaves the entry untouched.

        Raises:
            NonObjectPathException: If an existing intermediate is not a dict.
        """
        root, *rest = path
        with self._lock:
            entry = self._entries.get(root)
            if not rest:
                entry = entry or self.put(root, None)
                entry.document = copy.deepcopy(value)
                self._touch(entry)
                return

            document = entry.document if entry else None
            if document is not None:
                if not isinstance(document, dict):
                    raise NonObjectPathException(list(path), root)
                self._check_parents(document, rest, list(path))
            else:
                entry = entry or self.put(root, None)
                document = entry.document = {}

            node = document
            for segment in rest[:-1]:
                child = node.get(segment)
                if child is None:
                    child = node[segment] = {}
                node = child
            node[rest[-1]] = copy.deepcopy(value)
            self._touch(entry)

    def clear(self, path: Sequence[str]) -> bool:
        """Remove the value at path. Returns False if there was nothing to remove."""
        root, *rest = path
        with self._lock:
            entry = self._entries.get(root)
            if entry is None or entry.document is None:
                return False
            if not rest:
                entry.document = None
                self._touch(entry)
                return True

            parent = self.get([root, *rest[:-1]])
            if not isinstance(parent, dict) or rest[-1] not in parent:
                return False
            del parent[rest[-1]]
            self._touch(entry)
            return True

    def merge(self, path: Sequence[str], value: Any) -> Any:
        """Deep-merge value into the value at path and return the result.

        Mappings merge key by key (incoming wins); anything else replaces.
        """
        with self._lock:
            existing = self.get(path)
            if isinstance(existing, Mapping) and isinstance(value, Mapping):
                merged = deep_merge(existing, value)
            else:
                merged = value
            self.set(path, merged)
            return self.get(path)

    def reset(self) -> bool:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
        return True

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of {root: value} for every entry holding a value."""
        with self._lock:
            return {
                root: copy.deepcopy(entry.document[DOC_VALUE])
                for root, entry in self._entries.items()
                if entry.document is not None and entry.document.get(DOC_VALUE) is not None
            }

    @staticmethod
    def _check_parents(document: dict[str, Any], segments: list[str], path: list[str]) -> None:
        node: Any = document
        for segment in segments[:-1]:
            child = node.get(segment)
            if child is None:
                return
            if not isinstance(child, dict):
                raise NonObjectPathException(path, segment)
            node = child

    @staticmethod
    def _touch(entry: CacheEntry) -> None:
        entry.generation += 1
        entry.dirty = True
