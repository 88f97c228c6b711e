"""Delivery log storage: one immutable row per HTTP attempt."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from qdrant_client import models

from blaze_webhooks.exceptions import StorageError
from blaze_webhooks.models import DeliveryAttempt

from .base import match


class AttemptLogMixin:
    """Mixin providing delivery log operations for WebhookStorage.

    The log is insert-only. Nothing here updates a row once written; rows
    leave only through the retention purge.
    """

    _to_payload: Any
    _from_payload: Any
    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _scroll_ordered: Any
    _count: Any
    _delete_matching: Any

    async def append_attempt(self, attempt: DeliveryAttempt) -> str:
        """Write an attempt row.

        Raises:
            StorageError: If a row with the same ID already exists.
        """
        if await self._retrieve("attempts", attempt.id) is not None:
            raise StorageError(f"Delivery attempt {attempt.id} already recorded")
        await self._upsert("attempts", attempt.id, self._to_payload(attempt))
        return attempt.id

    async def list_attempts(
        self,
        webhook_id: str,
        tenant_id: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[DeliveryAttempt], int]:
        """One page of an endpoint's log, newest first.

        Qdrant orders by ``created_at_ts`` and the total is an exact count,
        so both hold for logs of any size.

        Returns:
            Tuple of (attempts on this page, total attempts for the endpoint).
        """
        must: list[models.Condition] = [match("webhook_id", webhook_id)]
        if tenant_id is not None:
            must.append(match("tenant_id", tenant_id))
        log_filter = models.Filter(must=must)

        total = await self._count("attempts", log_filter)
        start = (page - 1) * limit
        if start >= total:
            return [], total

        payloads = await self._scroll_ordered(
            "attempts", log_filter, "created_at_ts", start + limit, descending=True
        )
        attempts = [self._from_payload(p, DeliveryAttempt) for p in payloads]
        return attempts[start : start + limit], total

    async def list_attempts_for_delivery(self, delivery_id: str) -> list[DeliveryAttempt]:
        """Every attempt of one logical delivery, in attempt order."""
        payloads = await self._scroll_all(
            "attempts", models.Filter(must=[match("delivery_id", delivery_id)])
        )
        attempts = [self._from_payload(p, DeliveryAttempt) for p in payloads]
        attempts.sort(key=lambda a: a.attempt)
        return attempts

    async def count_attempts(
        self,
        webhook_id: str,
        since: datetime | None = None,
        succeeded: bool | None = None,
    ) -> int:
        """Count an endpoint's attempts, optionally since a moment and by outcome."""
        must: list[models.Condition] = [match("webhook_id", webhook_id)]
        if since is not None:
            must.append(
                models.FieldCondition(
                    key="created_at_ts",
                    range=models.Range(gte=since.timestamp()),
                )
            )
        if succeeded is not None:
            must.append(match("status", "succeeded" if succeeded else "failed"))
        return await self._count("attempts", models.Filter(must=must))

    async def success_rate(self, webhook_id: str) -> float | None:
        """Share of successful attempts over the whole log, None if empty."""
        total = await self.count_attempts(webhook_id)
        if total == 0:
            return None
        return await self.count_attempts(webhook_id, succeeded=True) / total

    async def purge_attempts(self, older_than: datetime) -> int:
        """Delete log rows created before ``older_than``.

        Returns:
            Number of rows deleted.
        """
        old = models.Filter(
            must=[
                models.FieldCondition(
                    key="created_at_ts",
                    range=models.Range(lt=older_than.timestamp()),
                )
            ]
        )
        count = await self._count("attempts", old)
        if count:
            await self._delete_matching("attempts", old)
        return count
