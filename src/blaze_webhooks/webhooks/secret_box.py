"""Endpoint signing secrets: generation and encryption at rest.

Secrets are 32 random bytes, base64url-encoded without padding. Because the
worker needs the secret itself to compute HMACs, a one-way hash is not
enough; the stored form is a Fernet token that only a holder of the service
encryption key can open.
"""

from __future__ import annotations

import secrets

from cryptography.fernet import Fernet, InvalidToken

from blaze_webhooks.exceptions import ConfigurationError, StorageError

SECRET_BYTES = 32


def generate_secret() -> str:
    """Return a fresh base64url secret (43 characters, no padding)."""
    return secrets.token_urlsafe(SECRET_BYTES)


class SecretCipher:
    """Encrypts and decrypts endpoint secrets with a Fernet key."""

    def __init__(self, key: str | bytes) -> None:
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid secret encryption key: {e}") from e

    def encrypt(self, secret: str) -> str:
        return self._fernet.encrypt(secret.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise StorageError(
                "Stored webhook secret cannot be decrypted with the configured key"
            ) from e
