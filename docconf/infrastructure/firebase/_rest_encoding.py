"""Encode/decode config values to/from the Firestore REST 'fields' format.

Config documents hold arbitrary JSON-like trees, so maps and arrays nest
freely. Map keys must be strings.
"""

import base64
from collections.abc import Mapping
from datetime import datetime
from typing import Any


def encode_value(v: Any) -> dict:
    """Encode one Python value as a Firestore Value object."""
    if v is None:
        return {"nullValue": None}
    # bool before int: bool is an int subclass
    if isinstance(v, bool):
        return {"booleanValue": v}
    if isinstance(v, int):
        return {"integerValue": str(v)}
    if isinstance(v, float):
        return {"doubleValue": v}
    if isinstance(v, str):
        return {"stringValue": v}
    if isinstance(v, datetime):
        return {"timestampValue": v.strftime("%Y-%m-%dT%H:%M:%S.%fZ")}
    if isinstance(v, bytes):
        return {"bytesValue": base64.standard_b64encode(v).decode("ascii")}
    if isinstance(v, Mapping):
        return {"mapValue": {"fields": encode_map(v)}}
    if isinstance(v, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(x) for x in v]}}
    raise TypeError(f"Unsupported Firestore value type: {type(v).__name__}")


def encode_map(data: Mapping[str, Any]) -> dict[str, dict]:
    """Encode a mapping as Firestore map fields."""
    fields: dict[str, dict] = {}
    for k, x in data.items():
        if not isinstance(k, str):
            raise TypeError(f"Firestore map keys must be strings, got {type(k).__name__}")
        fields[k] = encode_value(x)
    return fields


def encode_document(data: Mapping[str, Any]) -> dict:
    """Convert a Python mapping to a Firestore REST Document body."""
    return {"fields": encode_map(data)}


_SCALAR_DECODERS = {
    "booleanValue": lambda x: x,
    "integerValue": int,
    "doubleValue": float,
    "stringValue": lambda x: x,
    "timestampValue": lambda x: datetime.fromisoformat(x.replace("Z", "+00:00")),
    "bytesValue": base64.standard_b64decode,
    "referenceValue": lambda x: x,
}


def decode_value(obj: Mapping[str, Any]) -> Any:
    """Decode one Firestore Value object."""
    if "mapValue" in obj:
        return decode_map(obj["mapValue"].get("fields"))
    if "arrayValue" in obj:
        return [decode_value(x) for x in obj["arrayValue"].get("values") or []]
    for kind, decode in _SCALAR_DECODERS.items():
        if kind in obj:
            return decode(obj[kind])
    # nullValue, geoPointValue and unknown kinds
    return None


def decode_map(fields: Mapping[str, Any] | None) -> dict[str, Any]:
    """Decode Firestore map fields to a dict."""
    return {k: decode_value(v) for k, v in (fields or {}).items()}


def decode_document(document: Mapping[str, Any] | None) -> dict[str, Any]:
    """Convert a Firestore REST Document (with 'fields') to a dict."""
    if not document:
        return {}
    return decode_map(document.get("fields"))
