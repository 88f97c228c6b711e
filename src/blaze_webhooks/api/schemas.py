"""Pydantic schemas for API request/response models.

The admin UI speaks camelCase JSON; models accept either spelling on input
and always emit camelCase.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from blaze_webhooks.models import AttemptStatus, DeliveryAttempt, WebhookEndpoint


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class CreateWebhookRequest(CamelModel):
    """Request body for registering an endpoint.

    URL scheme and event names are checked by the registry so that bad
    values come back as 400 validation errors.
    """

    url: str = Field(min_length=1, description="HTTPS endpoint to receive events")
    events: list[str] = Field(description="Event names to subscribe to")
    is_active: bool = Field(default=True)
    description: str | None = Field(default=None, max_length=500)


class UpdateWebhookRequest(CamelModel):
    """Partial update. Omitted fields are left as they are."""

    url: str | None = None
    events: list[str] | None = None
    is_active: bool | None = None
    description: str | None = Field(default=None, max_length=500)


class WebhookResponse(CamelModel):
    """An endpoint as shown to its owner. Never includes the secret."""

    id: str
    customer_id: str
    url: str
    events: list[str]
    is_active: bool
    description: str | None = None
    auto_disabled_at: datetime | None = None
    failure_rate: float | None = None
    secret_rotated_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_endpoint(cls, endpoint: WebhookEndpoint) -> WebhookResponse:
        return cls(
            id=endpoint.id,
            customer_id=endpoint.tenant_id,
            url=endpoint.url,
            events=endpoint.events,
            is_active=endpoint.is_active,
            description=endpoint.description,
            auto_disabled_at=endpoint.auto_disabled_at,
            failure_rate=endpoint.failure_rate,
            secret_rotated_at=endpoint.secret_rotated_at,
            created_at=endpoint.created_at,
            updated_at=endpoint.updated_at,
        )


class CreateWebhookResponse(WebhookResponse):
    """Created endpoint plus its signing secret, returned this one time only."""

    secret: str


class RotateSecretResponse(CamelModel):
    secret: str


class DeliveryAttemptResponse(CamelModel):
    """One row of the endpoint's Events view."""

    id: str
    delivery_id: str
    webhook_id: str
    customer_id: str
    event: str
    payload: dict[str, Any]
    url: str
    attempt: int
    status: AttemptStatus
    http_status: int | None = None
    response_time_ms: int | None = None
    signature: str
    response_body: str | None = None
    error: str | None = None
    delivered_at: datetime
    created_at: datetime

    @classmethod
    def from_attempt(cls, attempt: DeliveryAttempt) -> DeliveryAttemptResponse:
        return cls(
            id=attempt.id,
            delivery_id=attempt.delivery_id,
            webhook_id=attempt.webhook_id,
            customer_id=attempt.tenant_id,
            event=attempt.event,
            payload=attempt.payload,
            url=attempt.url,
            attempt=attempt.attempt,
            status=attempt.status,
            http_status=attempt.http_status,
            response_time_ms=attempt.response_time_ms,
            signature=attempt.signature,
            response_body=attempt.response_body,
            error=attempt.error,
            delivered_at=attempt.delivered_at,
            created_at=attempt.created_at,
        )


class PageMeta(CamelModel):
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total_pages: int = Field(ge=0)
    success_rate: float | None = Field(
        default=None,
        description="Share of successful attempts over the endpoint's whole log",
    )


class EventListResponse(CamelModel):
    data: list[DeliveryAttemptResponse]
    meta: PageMeta


class PublishEventRequest(CamelModel):
    """Internal ingress: a domain event raised for the calling customer."""

    event: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class PublishEventResponse(CamelModel):
    enqueued: int = Field(ge=0)
    delivery_ids: list[str] = Field(default_factory=list)


class HealthResponse(CamelModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, degraded, unhealthy).
        version: API version.
        storage_connected: Whether storage is connected.
    """

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    storage_connected: bool
