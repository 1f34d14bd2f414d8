"""Cache entities and document helpers.

Documents are plain JSON-like dicts ({key, value, app} plus an optional
storage id) so they can be handed to any backend without conversion.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from docconf.core.constants import DOC_APP, DOC_ID, DOC_KEY, DOC_VALUE, STORED_FIELDS


@dataclass
class CacheEntry:
    """In-memory mirror of one root's document.

    Attributes:
        root: First key segment; one entry per root.
        document: Cached document, or None when storage has none for the root.
        refreshed_at: Clock reading (seconds) of creation or last refresh.
        generation: Bumped on every change to the entry.
        dirty: True while local mutations have not been saved.
    """

    root: str
    document: dict[str, Any] | None
    refreshed_at: float
    generation: int = 0
    dirty: bool = False


def build_document(key: str, app: str, value: Any = None) -> dict[str, Any]:
    """Return a new, not yet persisted document for a namespaced key."""
    return {DOC_KEY: key, DOC_VALUE: {} if value is None else value, DOC_APP: app}


def stored_fields(document: Mapping[str, Any]) -> dict[str, Any]:
    """Deep copy of the fields that are written to storage (no identity)."""
    return {f: copy.deepcopy(document[f]) for f in STORED_FIELDS if f in document}


def storage_id(document: Mapping[str, Any] | None) -> str | None:
    """Return the storage identity of a document, if it has been persisted."""
    if document is None:
        return None
    return document.get(DOC_ID)


def is_logically_deleted(document: Mapping[str, Any] | None) -> bool:
    """True when a document no longer holds any configuration value."""
    if document is None:
        return True
    value = document.get(DOC_VALUE)
    return value is None or (isinstance(value, Mapping) and not value)


def deep_merge(base: Mapping[str, Any], incoming: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge two mappings into a new dict; incoming wins on conflicts."""
    merged = copy.deepcopy(dict(base))
    for k, v in incoming.items():
        current = merged.get(k)
        if isinstance(current, Mapping) and isinstance(v, Mapping):
            merged[k] = deep_merge(current, v)
        else:
            merged[k] = copy.deepcopy(v)
    return merged
