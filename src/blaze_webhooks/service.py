"""Webhook service layer.

Wires storage, the secret cipher, the registry, the dispatcher and the
delivery worker together behind one object the API (or an embedding
application) talks to.

Example:
    ```python
    from blaze_webhooks.service import WebhookService

    async with WebhookService.create() as service:
        endpoint, secret = await service.registry.create(
            "cus_1", "https://example.com/hooks", ["comment.added"]
        )
        await service.publish("cus_1", "comment.added", {"commentId": "c_9"})
        await service.worker.run_once()
    ```
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import httpx

from blaze_webhooks.config import Settings
from blaze_webhooks.models import DeliveryAttempt, DeliveryJob
from blaze_webhooks.storage import WebhookStorage
from blaze_webhooks.webhooks import DeliveryWorker, Dispatcher, SecretCipher, WebhookRegistry

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


@dataclass
class EventLogPage:
    """One page of an endpoint's delivery log."""

    attempts: list[DeliveryAttempt]
    total: int
    page: int
    limit: int
    success_rate: float | None = None

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


def normalize_paging(page: int | None, limit: int | None) -> tuple[int, int]:
    """Clamp page to >= 1 and limit to 1..100 (10 when unset or invalid)."""
    page = page if page is not None and page >= 1 else 1
    limit = limit if limit is not None and limit >= 1 else DEFAULT_PAGE_SIZE
    return page, min(limit, MAX_PAGE_SIZE)


@dataclass
class WebhookService:
    """High-level webhook service.

    Attributes:
        storage: Qdrant-backed storage for endpoints, jobs and attempts.
        settings: Configuration settings.
        transport: Optional httpx transport for the worker (tests use MockTransport).
    """

    storage: WebhookStorage
    settings: Settings
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    cipher: SecretCipher = field(init=False, repr=False)
    registry: WebhookRegistry = field(init=False, repr=False)
    dispatcher: Dispatcher = field(init=False, repr=False)
    worker: DeliveryWorker = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.cipher = SecretCipher(self.settings.effective_encryption_key)
        self.registry = WebhookRegistry(
            self.storage,
            self.cipher,
            auto_disable=self.settings.auto_disable,
        )
        self.dispatcher = Dispatcher(self.storage)
        self.worker = DeliveryWorker(
            self.storage,
            self.registry,
            self.settings,
            transport=self.transport,
        )

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Example:
            ```python
            settings = Settings(env="test", qdrant_location=":memory:")
            async with WebhookService.create(settings) as service:
                ...
            ```
        """
        if settings is None:
            settings = Settings()
        storage = WebhookStorage(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
            location=settings.qdrant_location,
            max_scroll_limit=settings.storage_max_scroll_limit,
        )
        return cls(storage=storage, settings=settings, transport=transport)

    async def initialize(self) -> None:
        """Initialize the service (storage collections, etc.)."""
        await self.storage.initialize()

    async def close(self) -> None:
        """Stop the worker's HTTP client and close storage."""
        await self.worker.aclose()
        await self.storage.close()

    async def __aenter__(self) -> WebhookService:
        await self.initialize()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def publish(
        self,
        tenant_id: str,
        event: str,
        data: dict[str, Any] | None = None,
    ) -> list[DeliveryJob]:
        """Fan an event out to the tenant's subscribed endpoints."""
        return await self.dispatcher.publish(tenant_id, event, data)

    async def list_events(
        self,
        tenant_id: str,
        endpoint_id: str,
        page: int | None = None,
        limit: int | None = None,
    ) -> EventLogPage:
        """A page of the endpoint's delivery log with its overall success rate.

        Raises:
            NotFoundError: If the endpoint is absent or owned by another tenant.
        """
        await self.registry.get(tenant_id, endpoint_id)
        page, limit = normalize_paging(page, limit)
        attempts, total = await self.storage.list_attempts(
            endpoint_id, tenant_id=tenant_id, page=page, limit=limit
        )
        success_rate = await self.storage.success_rate(endpoint_id)
        return EventLogPage(
            attempts=attempts,
            total=total,
            page=page,
            limit=limit,
            success_rate=success_rate,
        )

    async def purge_expired(self) -> tuple[int, int]:
        """Apply the retention policy now. Returns (attempts, jobs) deleted."""
        return await self.worker.purge_expired()

    async def health(self) -> bool:
        return await self.storage.health_check()
