"""Delivery worker: signed HTTP POSTs with retry and exponential backoff.

The worker pulls due jobs from the durable queue and runs one attempt per
job. Every attempt is written to the delivery log and reported to the
registry's failure-rate tracker. Failed attempts are rescheduled by moving
the job's ``visible_at`` forward, so pending retries survive restarts.

Per-job state machine::

    pending -> sending -> succeeded
                       -> retrying -> sending -> ...
                       -> exhausted              (attempt == max_attempts)
                       -> abandoned              (endpoint deleted or inactive)
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import httpx

from blaze_webhooks.config import Settings
from blaze_webhooks.exceptions import DeliveryError, ExhaustedError, StorageError
from blaze_webhooks.logging import delivery_context, get_logger
from blaze_webhooks.models import (
    DeliveryAttempt,
    DeliveryJob,
    DeliveryState,
    WebhookEndpoint,
    utc_now,
)

from .signing import sign_request

if TYPE_CHECKING:
    from blaze_webhooks.storage import WebhookStorage

    from .registry import WebhookRegistry

logger = get_logger(__name__)

PURGE_INTERVAL_SECONDS = 3600


class DeliveryWorker:
    """Processes queued deliveries.

    Example:
        ```python
        worker = DeliveryWorker(storage, registry, settings)
        task = asyncio.create_task(worker.run())
        ...
        worker.stop()
        await task
        await worker.aclose()
        ```

    Args:
        storage: Queue, endpoint and log storage.
        registry: Used to decrypt secrets and record outcomes.
        settings: Delivery policy and worker tuning.
        http_client: Client to send with. Created (and owned) if omitted.
        transport: Transport for the owned client, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        storage: WebhookStorage,
        registry: WebhookRegistry,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._storage = storage
        self._registry = registry
        self._settings = settings or Settings()
        self._policy = self._settings.delivery
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._policy.request_timeout_seconds),
            transport=transport,
        )
        self._semaphore = asyncio.Semaphore(self._settings.worker_concurrency)
        self._stopping = asyncio.Event()
        self._last_purge: datetime | None = None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def process(self, job: DeliveryJob) -> DeliveryState:
        """Make the next attempt of a claimed job and move it to its next state.

        If an earlier claim already logged this attempt and then stopped
        before updating the job, the logged attempt is settled instead of
        sending again.
        """
        with delivery_context(delivery_id=job.id, webhook_id=job.webhook_id, attempt=job.attempt):
            logged = await self._storage.list_attempts_for_delivery(job.id)
            if logged and logged[-1].attempt >= job.attempt:
                attempt = logged[-1]
                job = job.model_copy(update={"attempt": attempt.attempt})
                logger.info(
                    "Resuming interrupted delivery",
                    logged_attempt=attempt.attempt,
                    status=attempt.status,
                )
                return await self._settle(job, attempt)

            endpoint = await self._storage.get_endpoint(job.webhook_id)
            if endpoint is None:
                return await self._finish(job, DeliveryState.ABANDONED, "Webhook deleted")
            if not endpoint.is_active:
                return await self._finish(job, DeliveryState.ABANDONED, "Webhook inactive")

            try:
                secret = self._registry.reveal_secret(endpoint)
            except StorageError as e:
                logger.error("Cannot read webhook secret", error=e.message)
                return await self._finish(job, DeliveryState.ABANDONED, e.message)

            attempt = await self._send(job, endpoint, secret)
            await self._storage.append_attempt(attempt)
            return await self._settle(job, attempt)

    async def _settle(self, job: DeliveryJob, attempt: DeliveryAttempt) -> DeliveryState:
        """Report a logged attempt and move the job on from it."""
        await self._registry.record_outcome(job.webhook_id, attempt.succeeded)

        if attempt.succeeded:
            logger.info(
                "Webhook delivered",
                event_name=job.event,
                http_status=attempt.http_status,
                response_time_ms=attempt.response_time_ms,
            )
            return await self._finish(job, DeliveryState.SUCCEEDED)

        if job.attempt >= self._policy.max_attempts:
            exhausted = ExhaustedError(job.attempt, attempt.error)
            logger.warning("Webhook delivery exhausted", event_name=job.event, error=attempt.error)
            return await self._finish(job, DeliveryState.EXHAUSTED, exhausted.message)

        # The endpoint may have been deleted, deactivated or auto-disabled meanwhile
        current = await self._storage.get_endpoint(job.webhook_id)
        if current is None or not current.is_active:
            reason = "Webhook deleted" if current is None else "Webhook inactive"
            return await self._finish(job, DeliveryState.ABANDONED, f"{reason}: {attempt.error}")

        return await self._schedule_retry(job, attempt.error)

    async def _send(
        self,
        job: DeliveryJob,
        endpoint: WebhookEndpoint,
        secret: str,
    ) -> DeliveryAttempt:
        """POST the signed body once and describe what happened."""
        body = job.to_event().to_body()
        # Fresh timestamp per attempt
        _, signature = sign_request(secret, body)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._policy.user_agent,
            self._policy.signature_header: signature,
            "X-Blaze-Event": job.event,
            "X-Blaze-Delivery-Id": job.id,
        }

        http_status: int | None = None
        response_body: str | None = None
        error: str | None = None
        started = time.perf_counter()
        try:
            response = await self._client.post(endpoint.url, content=body, headers=headers)
            http_status = response.status_code
            if response.text:
                response_body = response.text[: self._policy.response_body_max_chars]
            if not 200 <= response.status_code < 300:
                raise DeliveryError(f"HTTP {response.status_code}", status_code=response.status_code)
        except DeliveryError as e:
            error = e.message
        except httpx.TimeoutException:
            error = f"Request timed out after {self._policy.request_timeout_seconds:g}s"
        except httpx.RequestError as e:
            error = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if error is not None:
            logger.info("Webhook attempt failed", event_name=job.event, error=error)

        return DeliveryAttempt(
            delivery_id=job.id,
            webhook_id=job.webhook_id,
            tenant_id=job.tenant_id,
            event=job.event,
            payload=job.data,
            url=endpoint.url,
            attempt=job.attempt,
            status="failed" if error is not None else "succeeded",
            http_status=http_status,
            response_time_ms=elapsed_ms,
            signature=signature,
            response_body=response_body,
            error=error,
        )

    async def _schedule_retry(self, job: DeliveryJob, error: str | None) -> DeliveryState:
        delay = self._policy.backoff_seconds(job.attempt)
        retry = job.model_copy(
            update={
                "state": DeliveryState.RETRYING,
                "attempt": job.attempt + 1,
                "visible_at": utc_now() + timedelta(seconds=delay),
                "lease_expires_at": None,
                "last_error": error,
            }
        )
        await self._storage.update_job(retry)
        logger.info(
            "Webhook scheduled for retry",
            event_name=job.event,
            next_attempt=retry.attempt,
            delay_seconds=delay,
        )
        return DeliveryState.RETRYING

    async def _finish(
        self,
        job: DeliveryJob,
        state: DeliveryState,
        error: str | None = None,
    ) -> DeliveryState:
        done = job.model_copy(
            update={
                "state": state,
                "lease_expires_at": None,
                "last_error": error,
                "completed_at": utc_now(),
            }
        )
        await self._storage.update_job(done)
        if state is DeliveryState.ABANDONED:
            logger.info("Webhook delivery abandoned", reason=error)
        return state

    async def run_once(self, now: datetime | None = None) -> int:
        """Claim one batch of due jobs and process it concurrently.

        Returns:
            Number of jobs claimed.
        """
        jobs = await self._storage.claim_due_jobs(
            limit=self._settings.worker_batch_size,
            lease_seconds=self._settings.worker_lease_seconds,
            now=now,
        )
        if not jobs:
            return 0

        async def _guarded(job: DeliveryJob) -> DeliveryState:
            async with self._semaphore:
                return await self.process(job)

        results = await asyncio.gather(*(_guarded(j) for j in jobs), return_exceptions=True)
        for job, result in zip(jobs, results, strict=True):
            # The job stays leased and is picked up again once the lease expires
            if isinstance(result, Exception):
                logger.error(
                    "Delivery processing failed",
                    delivery_id=job.id,
                    webhook_id=job.webhook_id,
                    error=str(result),
                )
        return len(jobs)

    async def drain(self, max_rounds: int = 100) -> int:
        """Run batches until nothing is due. Handy with a zero backoff.

        Returns:
            Total jobs claimed.
        """
        total = 0
        for _ in range(max_rounds):
            claimed = await self.run_once()
            if claimed == 0:
                break
            total += claimed
        return total

    async def purge_expired(self, now: datetime | None = None) -> tuple[int, int]:
        """Delete log rows and finished jobs past the retention period.

        Returns:
            Tuple of (attempts deleted, jobs deleted).
        """
        cutoff = (now or utc_now()) - timedelta(days=self._settings.attempt_retention_days)
        attempts = await self._storage.purge_attempts(cutoff)
        jobs = await self._storage.purge_jobs(cutoff)
        if attempts or jobs:
            logger.info("Purged expired delivery records", attempts=attempts, jobs=jobs)
        return attempts, jobs

    async def _maybe_purge(self) -> None:
        now = utc_now()
        if (
            self._last_purge is not None
            and (now - self._last_purge).total_seconds() < PURGE_INTERVAL_SECONDS
        ):
            return
        self._last_purge = now
        await self.purge_expired(now)

    async def run(self) -> None:
        """Poll the queue until ``stop()`` is called."""
        self._stopping.clear()
        logger.info(
            "Delivery worker started",
            concurrency=self._settings.worker_concurrency,
            poll_interval=self._settings.worker_poll_interval_seconds,
        )
        while not self._stopping.is_set():
            claimed = 0
            try:
                claimed = await self.run_once()
                await self._maybe_purge()
            except Exception:
                logger.exception("Delivery worker iteration failed")

            if claimed == 0:
                try:
                    await asyncio.wait_for(
                        self._stopping.wait(),
                        timeout=self._settings.worker_poll_interval_seconds,
                    )
                except TimeoutError:
                    pass
        logger.info("Delivery worker stopped")

    def stop(self) -> None:
        self._stopping.set()
