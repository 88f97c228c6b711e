"""FastAPI router for the webhook admin API."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from fastapi.security import HTTPAuthorizationCredentials

from blaze_webhooks import __version__
from blaze_webhooks.exceptions import ValidationError
from blaze_webhooks.logging import get_logger
from blaze_webhooks.service import WebhookService

from .auth import CUSTOMER_HEADER, resolve_customer, security
from .schemas import (
    CreateWebhookRequest,
    CreateWebhookResponse,
    DeliveryAttemptResponse,
    EventListResponse,
    HealthResponse,
    PageMeta,
    PublishEventRequest,
    PublishEventResponse,
    RotateSecretResponse,
    UpdateWebhookRequest,
    WebhookResponse,
)

logger = get_logger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]


async def get_customer_id(
    service: ServiceDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    x_customer_id: Annotated[str | None, Header(alias=CUSTOMER_HEADER)] = None,
) -> str:
    """Dependency resolving the calling customer."""
    return resolve_customer(service.settings, credentials, x_customer_id)


CustomerDep = Annotated[str, Depends(get_customer_id)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health, including storage connectivity."""
    storage_connected = _service is not None and await _service.health()
    return HealthResponse(
        status="healthy" if storage_connected else "unhealthy",
        version=__version__,
        storage_connected=storage_connected,
    )


@router.post(
    "/webhooks",
    response_model=CreateWebhookResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(
    body: CreateWebhookRequest,
    service: ServiceDep,
    customer_id: CustomerDep,
) -> CreateWebhookResponse:
    """Register an endpoint. The response carries the signing secret, once."""
    endpoint, secret = await service.registry.create(
        customer_id,
        body.url,
        body.events,
        description=body.description,
        is_active=body.is_active,
    )
    return CreateWebhookResponse(
        **WebhookResponse.from_endpoint(endpoint).model_dump(),
        secret=secret,
    )


@router.get("/webhooks", response_model=list[WebhookResponse], tags=["webhooks"])
async def list_webhooks(service: ServiceDep, customer_id: CustomerDep) -> list[WebhookResponse]:
    endpoints = await service.registry.list(customer_id)
    return [WebhookResponse.from_endpoint(e) for e in endpoints]


@router.get("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def get_webhook(
    webhook_id: str,
    service: ServiceDep,
    customer_id: CustomerDep,
) -> WebhookResponse:
    endpoint = await service.registry.get(customer_id, webhook_id)
    return WebhookResponse.from_endpoint(endpoint)


@router.patch("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def update_webhook(
    webhook_id: str,
    body: UpdateWebhookRequest,
    service: ServiceDep,
    customer_id: CustomerDep,
) -> WebhookResponse:
    """Partially update an endpoint. Setting ``isActive`` back to true re-enables it."""
    # Only fields present in the body are passed, so an explicit null clears a value
    changes = {name: getattr(body, name) for name in body.model_fields_set}
    endpoint = await service.registry.update(customer_id, webhook_id, **changes)
    return WebhookResponse.from_endpoint(endpoint)


@router.delete(
    "/webhooks/{webhook_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    tags=["webhooks"],
)
async def delete_webhook(
    webhook_id: str,
    service: ServiceDep,
    customer_id: CustomerDep,
) -> Response:
    await service.registry.delete(customer_id, webhook_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/webhooks/{webhook_id}/rotate-secret",
    response_model=RotateSecretResponse,
    tags=["webhooks"],
)
async def rotate_secret(
    webhook_id: str,
    service: ServiceDep,
    customer_id: CustomerDep,
) -> RotateSecretResponse:
    """Issue a new signing secret. The old one stops working immediately."""
    secret = await service.registry.rotate_secret(customer_id, webhook_id)
    return RotateSecretResponse(secret=secret)


@router.get(
    "/webhooks/{webhook_id}/events",
    response_model=EventListResponse,
    tags=["webhooks"],
)
async def list_webhook_events(
    webhook_id: str,
    service: ServiceDep,
    customer_id: CustomerDep,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> EventListResponse:
    """Delivery attempts for an endpoint, newest first."""
    result = await service.list_events(customer_id, webhook_id, page=page, limit=limit)
    return EventListResponse(
        data=[DeliveryAttemptResponse.from_attempt(a) for a in result.attempts],
        meta=PageMeta(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
            success_rate=result.success_rate,
        ),
    )


@router.post(
    "/events",
    response_model=PublishEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["events"],
)
async def publish_event(
    body: PublishEventRequest,
    service: ServiceDep,
    customer_id: CustomerDep,
) -> PublishEventResponse:
    """Raise a domain event for the caller; deliveries run in the background."""
    if body.event not in service.registry.known_events:
        raise ValidationError("event", f"unknown event: {body.event}")
    jobs = await service.publish(customer_id, body.event, body.data)
    return PublishEventResponse(enqueued=len(jobs), delivery_ids=[j.id for j in jobs])
