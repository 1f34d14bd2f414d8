"""Tests for domain exceptions (error_code, message, details)."""

from docconf.domain.exceptions import (
    AuthenticationException,
    ConfigStoreException,
    InvalidKeyException,
    NonObjectPathException,
    PersistenceException,
    StoreClosedException,
    StoreConnectionException,
)


def test_config_store_exception_default_error_code() -> None:
    """Base ConfigStoreException uses class name as error_code when not provided."""
    exc = ConfigStoreException("Something failed")
    assert exc.message == "Something failed"
    assert exc.error_code == "ConfigStoreException"
    assert exc.details == {}
    assert str(exc) == "Something failed"


def test_config_store_exception_custom_error_code_and_details() -> None:
    exc = ConfigStoreException("Oops", error_code="CUSTOM", details={"key": "value"})
    assert exc.error_code == "CUSTOM"
    assert exc.details == {"key": "value"}


def test_invalid_key_exception() -> None:
    """InvalidKeyException sets INVALID_KEY and the offending key in details."""
    exc = InvalidKeyException(":::")
    assert exc.error_code == "INVALID_KEY"
    assert exc.details == {"key": ":::"}
    assert "':::'" in exc.message


def test_invalid_key_exception_non_string_key() -> None:
    exc = InvalidKeyException(42)
    assert exc.details == {"key": "42"}


def test_non_object_path_exception() -> None:
    exc = NonObjectPathException(["a", "value", "b", "c"], "b")
    assert exc.error_code == "PATH_CONFLICT"
    assert exc.details == {"path": ["a", "value", "b", "c"], "segment": "b"}


def test_store_connection_exception() -> None:
    """StoreConnectionException records the endpoint when given."""
    exc = StoreConnectionException("Timed out", endpoint="http://localhost:8080/v1")
    assert exc.error_code == "CONNECTION_ERROR"
    assert exc.details == {"endpoint": "http://localhost:8080/v1"}
    assert StoreConnectionException().details == {}
    assert StoreConnectionException().message == "Document store unreachable"


def test_authentication_exception() -> None:
    exc = AuthenticationException()
    assert exc.message == "Authentication failed"
    assert exc.error_code == "AUTHENTICATION_ERROR"


def test_persistence_exception() -> None:
    """PersistenceException names the operation and root."""
    exc = PersistenceException("save", "db", "HTTP 500")
    assert exc.error_code == "PERSISTENCE_ERROR"
    assert exc.details == {"operation": "save", "root": "db"}
    assert exc.message == "Failed to save document for root 'db': HTTP 500"


def test_store_closed_exception() -> None:
    exc = StoreClosedException()
    assert exc.error_code == "STORE_CLOSED"
    assert isinstance(exc, ConfigStoreException)
