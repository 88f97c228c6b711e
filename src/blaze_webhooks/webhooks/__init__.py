"""Webhook signing, registration, fan-out and delivery.

Example:
    ```python
    from blaze_webhooks.webhooks import sign, header_value, verify

    digest = sign(secret, 1735752400, body)
    header = header_value(1735752400, digest)
    assert verify(secret, header, body, now=1735752400)
    ```
"""

from .dispatcher import Dispatcher
from .registry import WebhookRegistry, validate_events, validate_url
from .secret_box import SecretCipher, generate_secret
from .signing import header_value, parse_header, sign, sign_request, verify
from .worker import DeliveryWorker

__all__ = [
    "DeliveryWorker",
    "Dispatcher",
    "SecretCipher",
    "WebhookRegistry",
    "generate_secret",
    "header_value",
    "parse_header",
    "sign",
    "sign_request",
    "validate_events",
    "validate_url",
    "verify",
]
