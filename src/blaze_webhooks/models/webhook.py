"""Webhook models: endpoints, outgoing events, delivery jobs and attempts.

An endpoint is a tenant-configured receiver. Publishing an event creates one
delivery job per matching endpoint (a logical delivery). Each HTTP call the
worker makes for a job is written once to the delivery log as a
DeliveryAttempt and never modified afterwards.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now

# Event types that can trigger webhooks
EventType = Literal[
    "newsletter.subscribed",
    "comment.added",
]

# All available event types for subscription
ALL_EVENT_TYPES: list[str] = [
    "newsletter.subscribed",
    "comment.added",
]

AttemptStatus = Literal["succeeded", "failed"]


class DeliveryState(str, Enum):
    """Lifecycle of a logical delivery."""

    PENDING = "pending"  # Enqueued, first attempt not made yet
    SENDING = "sending"  # Claimed by a worker, attempt in flight
    RETRYING = "retrying"  # Last attempt failed, next one scheduled
    SUCCEEDED = "succeeded"  # Terminal: a 2xx was received
    EXHAUSTED = "exhausted"  # Terminal: max attempts used up
    ABANDONED = "abandoned"  # Terminal: endpoint deleted or deactivated

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {DeliveryState.SUCCEEDED, DeliveryState.EXHAUSTED, DeliveryState.ABANDONED}
)


class WebhookEndpoint(BaseModel):
    """A registered webhook receiver.

    The signing secret is kept only as Fernet ciphertext; the plaintext is
    handed to the owner once, on creation or rotation.

    Attributes:
        id: Unique identifier.
        tenant_id: Customer that owns the endpoint.
        url: HTTPS destination.
        events: Subscribed event names.
        is_active: False when disabled manually or by the auto-disable policy.
        description: Optional human-readable note.
        secret_ciphertext: Encrypted signing secret.
        auto_disabled_at: Set when the failure-rate policy tripped.
        reactivated_at: Last manual re-activation; failures before it no longer count.
        failure_rate: Last computed trailing-window failure ratio (derived, informational).
        secret_rotated_at: When the secret was last rotated.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    tenant_id: str = Field(min_length=1, description="Owning customer")
    url: str = Field(description="HTTPS endpoint to receive events")
    events: list[str] = Field(min_length=1, description="Subscribed event names")
    is_active: bool = Field(default=True)
    description: str | None = Field(default=None, max_length=500)
    secret_ciphertext: str = Field(repr=False, description="Fernet token of the signing secret")
    auto_disabled_at: datetime | None = None
    reactivated_at: datetime | None = None
    failure_rate: float | None = Field(default=None, ge=0.0, le=1.0)
    secret_rotated_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def subscribes_to(self, event: str) -> bool:
        """True if active and subscribed to ``event``."""
        return self.is_active and event in self.events


class WebhookEvent(BaseModel):
    """Body sent to receivers: ``{"event": ..., "data": {...}}``."""

    model_config = ConfigDict(extra="forbid")

    event: str = Field(min_length=1, description="Event name")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")

    def to_body(self) -> bytes:
        """Compact JSON bytes; exactly what gets signed and sent."""
        return self.model_dump_json().encode("utf-8")


class DeliveryJob(BaseModel):
    """One logical delivery of an event to an endpoint.

    Stored in the durable queue. ``attempt`` is the number of the next
    attempt to make while the job is pending/retrying, and the number of the
    last attempt made once it is terminal.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    tenant_id: str
    webhook_id: str
    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    attempt: int = Field(default=1, ge=1)
    state: DeliveryState = DeliveryState.PENDING
    visible_at: datetime = Field(default_factory=utc_now, description="Not claimable before this")
    lease_expires_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    def to_event(self) -> WebhookEvent:
        return WebhookEvent(event=self.event, data=self.data)


class DeliveryAttempt(BaseModel):
    """Immutable record of one HTTP delivery attempt.

    Attributes:
        id: Unique identifier for this attempt.
        delivery_id: Logical delivery (job) this attempt belongs to.
        webhook_id: Endpoint the attempt targeted.
        tenant_id: Owning customer.
        event: Event name.
        payload: Event data (opaque JSON).
        url: Endpoint URL snapshot at send time.
        attempt: 1-based attempt number within the logical delivery.
        status: "succeeded" for a 2xx response, otherwise "failed".
        http_status: Response status, None if no response was received.
        response_time_ms: Wall-clock duration of the attempt.
        signature: Signature header value that was sent.
        response_body: Receiver response, truncated.
        error: Failure description, None on success.
        delivered_at: When the attempt finished.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("att"))
    delivery_id: str
    webhook_id: str
    tenant_id: str
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)
    url: str
    attempt: int = Field(ge=1)
    status: AttemptStatus
    http_status: int | None = None
    response_time_ms: int | None = Field(default=None, ge=0)
    signature: str
    response_body: str | None = None
    error: str | None = None
    delivered_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


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
]
