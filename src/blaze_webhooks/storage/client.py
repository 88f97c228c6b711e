"""Qdrant storage client for the webhook service.

Combines the endpoint registry, delivery log and job queue operations
through mixins.

Example:
    ```python
    from blaze_webhooks.storage import WebhookStorage

    async with WebhookStorage(location=":memory:") as storage:
        await storage.store_endpoint(endpoint)
        due = await storage.claim_due_jobs(limit=50, lease_seconds=60)
    ```
"""

from __future__ import annotations

import logging

from .attempts import AttemptLogMixin
from .base import StorageBase
from .endpoints import EndpointMixin
from .jobs import JobQueueMixin

logger = logging.getLogger(__name__)


class WebhookStorage(EndpointMixin, AttemptLogMixin, JobQueueMixin, StorageBase):
    """Async Qdrant storage for endpoints, attempts and delivery jobs.

    This class combines functionality from multiple mixins:
    - EndpointMixin: store_endpoint, get_endpoint, list_endpoints, update_endpoint_fields, ...
    - AttemptLogMixin: append_attempt, list_attempts, count_attempts, purge_attempts
    - JobQueueMixin: enqueue_job, claim_due_jobs, update_job, purge_jobs
    """

    async def health_check(self) -> bool:
        """True if the client is connected and Qdrant answers."""
        if not self.is_initialized:
            return False
        try:
            await self.client.get_collections()
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")
            return False
        return True
