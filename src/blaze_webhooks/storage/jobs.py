"""Durable delivery queue.

A job is claimable when it is pending or retrying and its ``visible_at``
has passed, or when it is stuck in ``sending`` with an expired lease (the
worker that claimed it died). Claiming moves it to ``sending`` with a fresh
lease.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from qdrant_client import models

from blaze_webhooks.models import TERMINAL_STATES, DeliveryJob, DeliveryState, utc_now

from .base import match


class JobQueueMixin:
    """Mixin providing queue operations for WebhookStorage."""

    _to_payload: Any
    _from_payload: Any
    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _scroll_ordered: Any
    _count: Any
    _delete_matching: Any
    _claim_lock: Any

    async def enqueue_job(self, job: DeliveryJob) -> str:
        await self._upsert("jobs", job.id, self._to_payload(job))
        return job.id

    async def get_job(self, job_id: str) -> DeliveryJob | None:
        payload = await self._retrieve("jobs", job_id)
        if payload is None:
            return None
        return self._from_payload(payload, DeliveryJob)

    async def update_job(self, job: DeliveryJob) -> DeliveryJob:
        """Persist a job's new state, bumping ``updated_at``."""
        updated = job.model_copy(update={"updated_at": utc_now()})
        await self._upsert("jobs", updated.id, self._to_payload(updated))
        return updated

    async def claim_due_jobs(
        self,
        limit: int,
        lease_seconds: float,
        now: datetime | None = None,
    ) -> list[DeliveryJob]:
        """Claim up to ``limit`` due jobs, oldest visibility first.

        Claims within one process are serialized, so a job is handed to at
        most one caller until its lease runs out.

        Args:
            limit: Maximum jobs to claim.
            lease_seconds: How long the claim is held before it can be reclaimed.
            now: Current time (defaults to the clock).

        Returns:
            Claimed jobs, already moved to ``sending``.
        """
        moment = now or utc_now()
        ts = moment.timestamp()

        due = models.Filter(
            should=[
                models.Filter(
                    must=[
                        models.FieldCondition(
                            key="state",
                            match=models.MatchAny(
                                any=[DeliveryState.PENDING.value, DeliveryState.RETRYING.value]
                            ),
                        ),
                        models.FieldCondition(key="visible_at_ts", range=models.Range(lte=ts)),
                    ]
                ),
                models.Filter(
                    must=[
                        match("state", DeliveryState.SENDING.value),
                        models.FieldCondition(key="lease_expires_at_ts", range=models.Range(lte=ts)),
                    ]
                ),
            ]
        )

        async with self._claim_lock:
            payloads = await self._scroll_ordered("jobs", due, "visible_at_ts", limit)
            jobs = [self._from_payload(p, DeliveryJob) for p in payloads]

            lease_until = moment + timedelta(seconds=lease_seconds)
            claimed: list[DeliveryJob] = []
            for job in jobs:
                leased = job.model_copy(
                    update={
                        "state": DeliveryState.SENDING,
                        "lease_expires_at": lease_until,
                        "updated_at": moment,
                    }
                )
                await self._upsert("jobs", leased.id, self._to_payload(leased))
                claimed.append(leased)
            return claimed

    async def list_jobs(
        self,
        webhook_id: str | None = None,
        state: DeliveryState | None = None,
    ) -> list[DeliveryJob]:
        """Jobs filtered by endpoint and/or state, oldest first."""
        must: list[models.Condition] = []
        if webhook_id is not None:
            must.append(match("webhook_id", webhook_id))
        if state is not None:
            must.append(match("state", state.value))

        payloads = await self._scroll_all("jobs", models.Filter(must=must) if must else None)
        jobs = [self._from_payload(p, DeliveryJob) for p in payloads]
        jobs.sort(key=lambda j: (j.created_at, j.id))
        return jobs

    async def purge_jobs(self, older_than: datetime) -> int:
        """Delete finished jobs completed before ``older_than``.

        Returns:
            Number of jobs deleted.
        """
        old = models.Filter(
            must=[
                models.FieldCondition(
                    key="state",
                    match=models.MatchAny(any=[s.value for s in TERMINAL_STATES]),
                ),
                models.FieldCondition(
                    key="completed_at_ts",
                    range=models.Range(lt=older_than.timestamp()),
                ),
            ]
        )
        count = await self._count("jobs", old)
        if count:
            await self._delete_matching("jobs", old)
        return count
