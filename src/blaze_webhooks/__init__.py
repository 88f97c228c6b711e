"""Blaze Webhooks: signed webhook delivery for BlazeBlog.

Customers register HTTPS endpoints for blog events. Each event is delivered
as a POST signed with HMAC-SHA256 over ``"{timestamp}." + body``, retried
with exponential backoff, logged attempt by attempt, and endpoints whose
receivers keep failing are switched off automatically.

Quick Start:
    from blaze_webhooks import Settings, WebhookService

    settings = Settings(env="test", qdrant_location=":memory:")
    async with WebhookService.create(settings) as service:
        endpoint, secret = await service.registry.create(
            "cus_1", "https://example.com/hooks", ["comment.added"]
        )
        await service.publish("cus_1", "comment.added", {"commentId": "c_9"})
        await service.worker.run_once()

Receivers verify deliveries with ``blaze_webhooks.webhooks.verify``.
"""

__version__ = "0.1.0"

# Configuration
from .config import AutoDisablePolicy, DeliveryPolicy, Settings

# Exceptions
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    DeliveryError,
    ExhaustedError,
    NotFoundError,
    StorageError,
    ValidationError,
    WebhookServiceError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    delivery_context,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    ALL_EVENT_TYPES,
    DeliveryAttempt,
    DeliveryJob,
    DeliveryState,
    WebhookEndpoint,
    WebhookEvent,
)

# Service
from .service import WebhookService

__all__ = [
    "ALL_EVENT_TYPES",
    "AuthenticationError",
    "AutoDisablePolicy",
    "ConfigurationError",
    "DeliveryAttempt",
    "DeliveryError",
    "DeliveryJob",
    "DeliveryPolicy",
    "DeliveryState",
    "ExhaustedError",
    "NotFoundError",
    "Settings",
    "StorageError",
    "ValidationError",
    "WebhookEndpoint",
    "WebhookEvent",
    "WebhookService",
    "WebhookServiceError",
    "__version__",
    "bind_context",
    "clear_context",
    "configure_logging",
    "delivery_context",
    "get_logger",
    "unbind_context",
]
