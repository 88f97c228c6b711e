"""Event fan-out: one delivery job per matching endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from blaze_webhooks.logging import get_logger
from blaze_webhooks.models import DeliveryJob

if TYPE_CHECKING:
    from blaze_webhooks.storage import WebhookStorage

logger = get_logger(__name__)


class Dispatcher:
    """Turns a domain event into queued deliveries.

    Only active endpoints of the publishing tenant that subscribe to the
    event get a job. Delivery itself happens later in the worker, so
    publishing never waits on a receiver.

    Example:
        ```python
        dispatcher = Dispatcher(storage)
        jobs = await dispatcher.publish("cus_1", "comment.added", {"commentId": "c_9"})
        ```
    """

    def __init__(self, storage: WebhookStorage) -> None:
        self._storage = storage

    async def publish(
        self,
        tenant_id: str,
        event: str,
        payload: dict[str, Any] | None = None,
    ) -> list[DeliveryJob]:
        """Enqueue one job per active endpoint subscribed to ``event``.

        No matching endpoint is not an error; an empty list is returned.

        Returns:
            The enqueued jobs.
        """
        endpoints = await self._storage.get_endpoints_for_event(tenant_id, event)
        if not endpoints:
            logger.debug("No webhooks subscribed", tenant_id=tenant_id, event_name=event)
            return []

        jobs: list[DeliveryJob] = []
        for endpoint in endpoints:
            job = DeliveryJob(
                tenant_id=tenant_id,
                webhook_id=endpoint.id,
                event=event,
                data=dict(payload or {}),
            )
            await self._storage.enqueue_job(job)
            jobs.append(job)

        logger.info(
            "Event published",
            tenant_id=tenant_id,
            event_name=event,
            deliveries=len(jobs),
        )
        return jobs
