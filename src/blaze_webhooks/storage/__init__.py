"""Storage backends for the webhook service.

Endpoints, the delivery log and the delivery queue are persisted to Qdrant.

Example:
    ```python
    from blaze_webhooks.storage import WebhookStorage

    async with WebhookStorage(location=":memory:") as storage:
        await storage.store_endpoint(endpoint)
    ```
"""

from .base import COLLECTION_NAMES
from .client import WebhookStorage
from .retry import qdrant_retry

__all__ = [
    "COLLECTION_NAMES",
    "WebhookStorage",
    "qdrant_retry",
]
