"""Data models for the webhook service."""

from .base import generate_id, utc_now
from .webhook import (
    ALL_EVENT_TYPES,
    TERMINAL_STATES,
    AttemptStatus,
    DeliveryAttempt,
    DeliveryJob,
    DeliveryState,
    EventType,
    WebhookEndpoint,
    WebhookEvent,
)

__all__ = [
    "ALL_EVENT_TYPES",
    "AttemptStatus",
    "DeliveryAttempt",
    "DeliveryJob",
    "DeliveryState",
    "EventType",
    "TERMINAL_STATES",
    "WebhookEndpoint",
    "WebhookEvent",
    "generate_id",
    "utc_now",
]
