"""Customer resolution for the admin API.

With auth enabled, callers present ``Authorization: Bearer <token>`` where
the token is ``customer_id:expires_at:signature`` and the signature is
``HMAC_SHA256(auth_secret_key, "customer_id:expires_at")``. With auth
disabled (local development), the customer is read from ``X-Customer-Id``.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from blaze_webhooks.exceptions import AuthenticationError
from blaze_webhooks.logging import get_logger

if TYPE_CHECKING:
    from blaze_webhooks.config import Settings

logger = get_logger(__name__)

# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)

CUSTOMER_HEADER = "X-Customer-Id"


class TokenValidator:
    """Issues and checks HMAC-signed customer tokens."""

    def __init__(self, secret_key: str) -> None:
        self.secret_key = secret_key.encode()

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret_key, payload.encode(), hashlib.sha256).hexdigest()

    def create_token(self, customer_id: str, expire_minutes: int = 60) -> str:
        """Create a signed token for a customer.

        Args:
            customer_id: Customer the token acts for. Must not contain ":".
            expire_minutes: Token validity in minutes.
        """
        if not customer_id or ":" in customer_id:
            raise ValueError("customer_id must be non-empty and must not contain ':'")
        expires_at = int(time.time()) + (expire_minutes * 60)
        payload = f"{customer_id}:{expires_at}"
        return f"{payload}:{self._sign(payload)}"

    def validate_token(self, token: str) -> str:
        """Validate a token and return its customer ID.

        Raises:
            AuthenticationError: If the token is malformed, forged or expired.
        """
        parts = token.split(":")
        if len(parts) != 3:
            raise AuthenticationError("Invalid token format")

        customer_id, expires_at_str, signature = parts
        if not hmac.compare_digest(signature, self._sign(f"{customer_id}:{expires_at_str}")):
            raise AuthenticationError("Invalid token signature")

        try:
            expires_at = int(expires_at_str)
        except ValueError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e
        if time.time() > expires_at:
            raise AuthenticationError("Token has expired")
        if not customer_id:
            raise AuthenticationError("Token has no customer")
        return customer_id


@lru_cache(maxsize=1)
def get_token_validator(secret_key: str) -> TokenValidator:
    """Cached validator; a new one is built if the key changes."""
    return TokenValidator(secret_key)


def resolve_customer(
    settings: Settings,
    credentials: HTTPAuthorizationCredentials | None,
    customer_header: str | None,
) -> str:
    """Work out which customer a request acts for.

    Raises:
        AuthenticationError: If credentials are required and missing or invalid,
            or if auth is off and the customer header is missing.
    """
    if settings.is_auth_enabled:
        if credentials is None:
            raise AuthenticationError("Missing authentication credentials")
        validator = get_token_validator(settings.effective_auth_secret_key)
        customer_id = validator.validate_token(credentials.credentials)
        logger.debug("Customer authenticated", customer_id=customer_id)
        return customer_id

    if not customer_header or not customer_header.strip():
        raise AuthenticationError(f"Missing {CUSTOMER_HEADER} header")
    return customer_header.strip()
