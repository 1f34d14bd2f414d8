"""Config key builders and resolvers. Single place for key format (DRY).

Caller keys are delimiter-joined segments ("db:pool:size"). The first
segment is the root, which selects one stored document; the rest is a path
into that document's "value" field.
"""

from collections.abc import Sequence

from docconf.core.constants import DOC_VALUE, KEY_SEP
from docconf.domain.exceptions import InvalidKeyException


def split_key(key: str, sep: str = KEY_SEP) -> list[str]:
    """Split a config key into its non-empty segments.

    Args:
        key: Hierarchical key such as "a:b:c".
        sep: Segment delimiter.

    Returns:
        Ordered list of segments; the first one is the root.

    Raises:
        InvalidKeyException: If key is not a string or has no segments.
    """
    if not isinstance(key, str):
        raise InvalidKeyException(key)
    segments = [s for s in key.split(sep) if s]
    if not segments:
        raise InvalidKeyException(key)
    return segments


def root_of(key: str, sep: str = KEY_SEP) -> str:
    """Root (first segment) of a config key."""
    return split_key(key, sep)[0]


def storage_path(key: str, sep: str = KEY_SEP) -> list[str]:
    """Field path of a key inside the cached document tree.

    The configuration tree lives under the document's "value" field, so
    "value" is inserted after the root: "a:b:c" -> ["a", "value", "b", "c"].
    """
    root, *rest = split_key(key, sep)
    return [root, DOC_VALUE, *rest]


def join_key(segments: Sequence[str], sep: str = KEY_SEP) -> str:
    """Join segments back into a config key; empty segments are skipped."""
    return sep.join(s for s in segments if s)


def namespaced_key(namespace: str, root: str, sep: str = KEY_SEP) -> str:
    """Stored document key for a root (namespace + sep + root)."""
    return join_key([namespace, root], sep)


def root_from_namespaced(namespace: str, key: str | None, sep: str = KEY_SEP) -> str | None:
    """Inverse of namespaced_key; None if key is outside the namespace."""
    if not key:
        return None
    if not namespace:
        return key
    prefix = f"{namespace}{sep}"
    if not key.startswith(prefix) or len(key) == len(prefix):
        return None
    return key[len(prefix):]
