"""Store configuration (settings and environment).

Single source of truth for all store options. Uses pydantic-settings with
.env support; every field can be set from the environment with the
DOCCONF_ prefix (nested auth fields use "__", e.g. DOCCONF_AUTH__USERNAME)
or passed as keyword arguments, which take precedence.
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from docconf.core.constants import (
    DEFAULT_APP,
    DEFAULT_COLLECTION,
    DEFAULT_NAMESPACE,
    DEFAULT_SAVE_CONCURRENCY,
    DEFAULT_TTL_MS,
    FIRESTORE_DEFAULT_DATABASE,
    FIRESTORE_HOST,
    KEY_SEP,
)


class AuthSettings(BaseModel):
    """Credentials handed to the backend's authenticate step.

    For Firestore these are a service account's client email and private key.
    """

    username: str
    password: SecretStr


class StoreSettings(BaseSettings):
    """Options for a CachingDocumentStore and the backend it connects to."""

    # Key space
    namespace: str = DEFAULT_NAMESPACE
    app: str = DEFAULT_APP
    delimiter: str = KEY_SEP
    ttl: int = DEFAULT_TTL_MS  # milliseconds; 0 disables implicit refresh

    # Backend: "firestore" (REST API / emulator) or "memory" (process-local)
    backend: Literal["firestore", "memory"] = "firestore"
    host: str = FIRESTORE_HOST
    port: int = 443
    use_tls: bool = True
    emulator: bool = False
    project: str = "docconf"
    db: str = FIRESTORE_DEFAULT_DATABASE
    collection: str = DEFAULT_COLLECTION
    auth: AuthSettings | None = None

    # Strictness toggles passed through to the backend
    safe_dbs: bool = False
    safe_collections: bool = False

    # Write-back
    save_concurrency: int = DEFAULT_SAVE_CONCURRENCY
    request_timeout: float = 30.0

    debug: bool = False

    model_config = SettingsConfigDict(
        env_prefix="DOCCONF_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_options(self) -> "StoreSettings":
        """Reject option combinations the store cannot work with."""
        if not self.delimiter:
            raise ValueError("delimiter must be a non-empty string")
        if self.ttl < 0:
            raise ValueError(f"ttl must be >= 0 milliseconds, got {self.ttl}")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")
        if self.save_concurrency < 1:
            raise ValueError(
                f"save_concurrency must be at least 1, got {self.save_concurrency}"
            )
        if not self.collection:
            raise ValueError("collection name is required")
        if self.backend == "firestore" and not self.project:
            raise ValueError(
                "project is required when backend is 'firestore'. "
                "Set DOCCONF_PROJECT or pass project=..."
            )
        return self

    @property
    def base_url(self) -> str:
        """REST endpoint root for the configured host and port."""
        scheme = "https" if self.use_tls else "http"
        return f"{scheme}://{self.host}:{self.port}/v1"


@lru_cache
def get_settings() -> StoreSettings:
    """Return cached default settings (single instance per process).

    In tests, call get_settings.cache_clear() after changing environment
    variables so the next call picks up the new values.
    """
    return StoreSettings()
