"""Domain exceptions for docconf.

Structural errors (bad keys, paths through scalars) are raised locally and
never reach storage. Transport and credential errors surface from load(),
reset() and fetch(). Write-back failures are wrapped in PersistenceException
and reported to the diagnostic channel instead of the caller.
"""

from typing import Any


class ConfigStoreException(Exception):
    """Base exception for all docconf errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. key, root, operation).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class InvalidKeyException(ConfigStoreException):
    """Raised when a config key is not a string or has no segments."""

    def __init__(self, key: Any) -> None:
        super().__init__(
            f"Invalid config key: {key!r}",
            "INVALID_KEY",
            {"key": key if isinstance(key, str) else repr(key)},
        )


class NonObjectPathException(ConfigStoreException):
    """Raised when a key path would index through a non-mapping value."""

    def __init__(self, path: list[str], segment: str) -> None:
        super().__init__(
            f"Cannot descend into {segment!r}: value is not an object",
            "PATH_CONFLICT",
            {"path": list(path), "segment": segment},
        )


class StoreConnectionException(ConfigStoreException):
    """Raised when the document store cannot be reached."""

    def __init__(self, message: str = "Document store unreachable", endpoint: str | None = None) -> None:
        details = {"endpoint": endpoint} if endpoint else {}
        super().__init__(message, "CONNECTION_ERROR", details)


class AuthenticationException(ConfigStoreException):
    """Raised when the document store rejects the configured credentials."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, "AUTHENTICATION_ERROR")


class PersistenceException(ConfigStoreException):
    """Raised when a single document could not be saved or removed."""

    def __init__(self, operation: str, root: str | None, reason: str) -> None:
        super().__init__(
            f"Failed to {operation} document for root {root!r}: {reason}",
            "PERSISTENCE_ERROR",
            {"operation": operation, "root": root},
        )


class StoreClosedException(ConfigStoreException):
    """Raised when a storage operation is attempted on a closed store."""

    def __init__(self) -> None:
        super().__init__("Store has been closed", "STORE_CLOSED")
