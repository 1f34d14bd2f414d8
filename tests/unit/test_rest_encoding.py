"""Tests for Firestore REST value encoding and decoding."""

from datetime import datetime, timezone

import pytest

from docconf.infrastructure.firebase._rest_encoding import (
    decode_document,
    decode_value,
    encode_document,
    encode_value,
)


def test_encode_scalars() -> None:
    """bool is encoded before int since bool subclasses int."""
    assert encode_value(True) == {"booleanValue": True}
    assert encode_value(5) == {"integerValue": "5"}
    assert encode_value(1.5) == {"doubleValue": 1.5}
    assert encode_value("x") == {"stringValue": "x"}
    assert encode_value(None) == {"nullValue": None}
    assert encode_value(b"\x00\x01") == {"bytesValue": "AAE="}


def test_encode_document_nests_maps_and_arrays() -> None:
    body = encode_document({"key": "ns:a", "value": {"pool": {"size": 4}, "hosts": ["a", 1]}})
    assert body == {
        "fields": {
            "key": {"stringValue": "ns:a"},
            "value": {
                "mapValue": {
                    "fields": {
                        "pool": {"mapValue": {"fields": {"size": {"integerValue": "4"}}}},
                        "hosts": {
                            "arrayValue": {
                                "values": [{"stringValue": "a"}, {"integerValue": "1"}]
                            }
                        },
                    }
                }
            },
        }
    }


def test_encode_rejects_unsupported_values() -> None:
    with pytest.raises(TypeError):
        encode_value(object())
    with pytest.raises(TypeError):
        encode_value({1: "non-string key"})


def test_decode_document() -> None:
    document = {
        "name": "projects/p/databases/(default)/documents/config/abc",
        "fields": {
            "key": {"stringValue": "ns:a"},
            "value": {
                "mapValue": {
                    "fields": {
                        "n": {"integerValue": "12"},
                        "empty": {"mapValue": {}},
                        "list": {"arrayValue": {}},
                        "off": {"booleanValue": False},
                        "none": {"nullValue": None},
                    }
                }
            },
        },
    }
    assert decode_document(document) == {
        "key": "ns:a",
        "value": {"n": 12, "empty": {}, "list": [], "off": False, "none": None},
    }
    assert decode_document(None) == {}


def test_decode_timestamp() -> None:
    value = decode_value({"timestampValue": "2024-01-02T03:04:05.000000Z"})
    assert value == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
