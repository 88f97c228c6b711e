"""Configuration management for the webhook service."""

import logging
import secrets
import warnings
from typing import Literal

from cryptography.fernet import Fernet
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


def _generate_dev_secret_key() -> str:
    """Generate a random auth key for development use.

    Tokens signed with it become invalid on restart, which is fine outside
    production.
    """
    return secrets.token_hex(32)


class DeliveryPolicy(BaseModel):
    """How a logical delivery is attempted and retried.

    The delay before attempt ``n + 1`` is::

        min(backoff_base_seconds * 2 ** (n - 1), backoff_max_seconds)

    so with the defaults a receiver that keeps failing sees attempts at
    roughly 0s, 10s, 30s, 70s and 150s before the delivery is exhausted.

    Attributes:
        max_attempts: Attempts per logical delivery, including the first.
        backoff_base_seconds: Delay after the first failed attempt.
        backoff_max_seconds: Upper bound on any single delay.
        request_timeout_seconds: Wall-clock timeout of one HTTP attempt.
        response_body_max_chars: Receiver response body is truncated to this.
        user_agent: User-Agent header sent with every delivery.
        signature_header: Header carrying ``t=<ts>,v1=<hex>``.
    """

    max_attempts: int = Field(default=5, ge=1, le=20, description="Attempts per delivery")
    backoff_base_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Initial retry delay (doubles each attempt)",
    )
    backoff_max_seconds: float = Field(
        default=3600.0,
        ge=0.0,
        description="Cap on a single retry delay",
    )
    request_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="Per-attempt HTTP timeout",
    )
    response_body_max_chars: int = Field(
        default=1000,
        ge=0,
        description="Truncate stored receiver responses to this many characters",
    )
    user_agent: str = Field(default="BlazeBlog-Webhooks/1.0")
    signature_header: str = Field(default="X-Blaze-Signature")

    def backoff_seconds(self, attempt: int) -> float:
        """Delay to wait after failed ``attempt`` (1-based) before the next one."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        # Exponent clamp keeps the float finite for absurd attempt numbers
        delay = self.backoff_base_seconds * (2 ** min(attempt - 1, 32))
        return float(min(delay, self.backoff_max_seconds))


class AutoDisablePolicy(BaseModel):
    """When an endpoint is switched off because its receiver keeps failing.

    An endpoint is disabled when, over the trailing window, more than
    ``failure_rate_threshold`` of its attempts failed and at least
    ``min_samples`` attempts were made.
    """

    failure_rate_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    window_seconds: int = Field(default=2 * 24 * 3600, ge=60, description="Trailing window")
    min_samples: int = Field(default=10, ge=1, description="Attempts needed before tripping")


class Settings(BaseSettings):
    """Webhook service configuration loaded from environment variables.

    All settings can be overridden via environment variables with the
    BLAZE_WEBHOOKS_ prefix. Nested policies use ``__``:
        BLAZE_WEBHOOKS_QDRANT_URL=http://localhost:6333
        BLAZE_WEBHOOKS_DELIVERY__MAX_ATTEMPTS=8

    Security Notes:
        - In production, auth is enabled by default
        - Production requires explicit auth and secret-encryption keys
        - In dev/test, missing keys are generated at startup
    """

    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    qdrant_location: str | None = Field(
        default=None,
        description="Local Qdrant location (':memory:' or a path); overrides qdrant_url",
    )
    collection_prefix: str = Field(
        default="blaze",
        description="Prefix for Qdrant collection names",
    )
    storage_max_scroll_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description="Maximum records fetched by a single scroll",
    )

    # Secrets
    secret_encryption_key: str | None = Field(
        default=None,
        description="Fernet key encrypting endpoint secrets at rest. REQUIRED in production.",
    )

    # Delivery
    delivery: DeliveryPolicy = Field(default_factory=DeliveryPolicy)
    auto_disable: AutoDisablePolicy = Field(default_factory=AutoDisablePolicy)
    signature_max_age_seconds: int = Field(
        default=300,
        ge=1,
        description="Replay window accepted by verify()",
    )

    # Worker
    worker_enabled: bool = Field(default=True, description="Run the delivery worker in the API")
    worker_concurrency: int = Field(default=10, ge=1, le=500)
    worker_poll_interval_seconds: float = Field(default=1.0, gt=0.0)
    worker_batch_size: int = Field(default=50, ge=1, le=1000)
    worker_lease_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="A claimed job is reclaimable once its lease is this old",
    )

    # Retention
    attempt_retention_days: int = Field(
        default=30,
        ge=1,
        description="Delivery log rows and finished jobs older than this are purged",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log output format")

    # Authentication
    auth_enabled: bool | None = Field(
        default=None,
        description=(
            "Require Bearer tokens on the admin API. "
            "If not set, defaults to True in production, False otherwise."
        ),
    )
    auth_secret_key: str | None = Field(
        default=None,
        description="HMAC key for admin tokens. REQUIRED in production.",
    )
    auth_token_expire_minutes: int = Field(default=60, ge=1)

    # CORS
    cors_enabled: bool = Field(default=True)
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PATCH", "DELETE", "OPTIONS"]
    )
    cors_allow_headers: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=False)
    cors_max_age: int = Field(default=600, ge=0, le=86400)

    # Runtime-generated keys (not from env)
    _runtime_dev_secret: str | None = None
    _runtime_encryption_key: str | None = None

    model_config = {
        "env_prefix": "BLAZE_WEBHOOKS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Resolve auth defaults and require real keys in production."""
        is_production = self.env == "production"

        if self.auth_enabled is None:
            object.__setattr__(self, "auth_enabled", is_production)

        if is_production:
            if self.auth_secret_key is None:
                raise ValueError(
                    "BLAZE_WEBHOOKS_AUTH_SECRET_KEY must be set in production. "
                    'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
                )
            if self.secret_encryption_key is None:
                raise ValueError(
                    "BLAZE_WEBHOOKS_SECRET_ENCRYPTION_KEY must be set in production. "
                    "Generate one with: python -c "
                    '"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"'
                )
            if not self.auth_enabled:
                warnings.warn(
                    "Authentication is disabled in production environment. "
                    "Set BLAZE_WEBHOOKS_AUTH_ENABLED=true to enable.",
                    UserWarning,
                    stacklevel=2,
                )
                logger.warning("Authentication disabled in production")
        else:
            if self.auth_secret_key is None:
                object.__setattr__(self, "_runtime_dev_secret", _generate_dev_secret_key())
            if self.secret_encryption_key is None:
                object.__setattr__(
                    self, "_runtime_encryption_key", Fernet.generate_key().decode("ascii")
                )
                logger.debug(
                    "Generated random secret encryption key (stored secrets unreadable after restart)"
                )

        return self

    @property
    def is_auth_enabled(self) -> bool:
        """Resolved auth flag (never None)."""
        if self.auth_enabled is None:
            return self.env == "production"
        return self.auth_enabled

    @property
    def effective_auth_secret_key(self) -> str:
        """Configured auth key, or the runtime-generated one outside production."""
        if self.auth_secret_key is not None:
            return self.auth_secret_key
        if self._runtime_dev_secret is not None:
            return self._runtime_dev_secret
        raise ValueError("No auth secret key available")

    @property
    def effective_encryption_key(self) -> str:
        """Configured Fernet key, or the runtime-generated one outside production."""
        if self.secret_encryption_key is not None:
            return self.secret_encryption_key
        if self._runtime_encryption_key is not None:
            return self._runtime_encryption_key
        raise ValueError("No secret encryption key available")
