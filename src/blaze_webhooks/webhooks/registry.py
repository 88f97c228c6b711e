"""Webhook endpoint registry.

Owns endpoint configuration per tenant: creation, partial updates, secret
rotation, deletion, and the failure-rate policy that switches off endpoints
whose receivers keep failing.

Mutations of a single endpoint (update, rotate, delete, outcome recording)
are serialized through a per-endpoint lock, so a rotation never interleaves
with another write and the failure-rate snapshot is never computed from a
half-applied update.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from blaze_webhooks.config import AutoDisablePolicy
from blaze_webhooks.exceptions import NotFoundError, ValidationError
from blaze_webhooks.logging import get_logger
from blaze_webhooks.models import ALL_EVENT_TYPES, WebhookEndpoint, utc_now

from .secret_box import SecretCipher, generate_secret

if TYPE_CHECKING:
    from blaze_webhooks.storage import WebhookStorage

logger = get_logger(__name__)

_url_adapter = TypeAdapter(HttpUrl)

# Marks an argument the caller left out, so None can mean "clear"
_UNSET: Any = object()


def validate_url(url: str) -> str:
    """Check that ``url`` is an absolute HTTPS URL.

    Raises:
        ValidationError: If the URL is malformed or not HTTPS.
    """
    try:
        parsed = _url_adapter.validate_python(url)
    except PydanticValidationError as e:
        raise ValidationError("url", "must be a valid URL") from e
    if parsed.scheme != "https":
        raise ValidationError("url", "must use https")
    return url


def validate_events(events: Iterable[str], known_events: Iterable[str]) -> list[str]:
    """Deduplicate ``events`` and check them against the known vocabulary.

    Raises:
        ValidationError: If the list is empty or names an unknown event.
    """
    unique = list(dict.fromkeys(events))
    if not unique:
        raise ValidationError("events", "at least one event is required")
    known = set(known_events)
    unknown = [e for e in unique if e not in known]
    if unknown:
        raise ValidationError("events", f"unknown event(s): {', '.join(unknown)}")
    return unique


class WebhookRegistry:
    """Tenant-scoped endpoint management.

    Example:
        ```python
        registry = WebhookRegistry(storage, cipher)
        endpoint, secret = await registry.create(
            "cus_1", "https://example.com/hooks", ["comment.added"]
        )
        # `secret` is shown to the owner now and never again
        ```
    """

    def __init__(
        self,
        storage: WebhookStorage,
        cipher: SecretCipher,
        auto_disable: AutoDisablePolicy | None = None,
        known_events: Iterable[str] | None = None,
    ) -> None:
        self._storage = storage
        self._cipher = cipher
        self._policy = auto_disable or AutoDisablePolicy()
        self._known_events = list(known_events or ALL_EVENT_TYPES)
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def known_events(self) -> list[str]:
        return list(self._known_events)

    async def create(
        self,
        tenant_id: str,
        url: str,
        events: Iterable[str],
        description: str | None = None,
        is_active: bool = True,
    ) -> tuple[WebhookEndpoint, str]:
        """Register an endpoint.

        Args:
            tenant_id: Owning customer.
            url: HTTPS destination.
            events: Events to subscribe to; non-empty subset of the vocabulary.
            description: Optional note for the owner.
            is_active: Initial active flag.

        Returns:
            Tuple of (endpoint, plaintext secret). The secret is not stored in
            plaintext and cannot be retrieved later.

        Raises:
            ValidationError: If the URL or events are invalid. Nothing is stored.
        """
        url = validate_url(url)
        event_list = validate_events(events, self._known_events)
        if description is not None and len(description) > 500:
            raise ValidationError("description", "must be at most 500 characters")

        secret = generate_secret()
        endpoint = WebhookEndpoint(
            tenant_id=tenant_id,
            url=url,
            events=event_list,
            is_active=is_active,
            description=description,
            secret_ciphertext=self._cipher.encrypt(secret),
        )
        await self._storage.store_endpoint(endpoint)

        logger.info(
            "Webhook endpoint created",
            webhook_id=endpoint.id,
            tenant_id=tenant_id,
            events=event_list,
        )
        return endpoint, secret

    async def list(self, tenant_id: str) -> list[WebhookEndpoint]:
        """All endpoints of a tenant, newest first."""
        return await self._storage.list_endpoints(tenant_id)

    async def get(self, tenant_id: str, endpoint_id: str) -> WebhookEndpoint:
        """Get an endpoint owned by ``tenant_id``.

        Raises:
            NotFoundError: If the endpoint is absent or owned by another tenant.
        """
        endpoint = await self._storage.get_endpoint(endpoint_id)
        if endpoint is None or endpoint.tenant_id != tenant_id:
            raise NotFoundError("webhook", endpoint_id)
        return endpoint

    async def update(
        self,
        tenant_id: str,
        endpoint_id: str,
        url: str | None = None,
        events: Iterable[str] | None = None,
        is_active: bool | None = None,
        description: str | None = _UNSET,
    ) -> WebhookEndpoint:
        """Partially update an endpoint. The secret is never touched.

        Omitted arguments keep their current value. Passing
        ``description=None`` clears the description.

        Re-activating an endpoint clears ``auto_disabled_at`` and starts a
        fresh failure-rate window.

        Raises:
            NotFoundError: If the endpoint is absent or owned by another tenant.
            ValidationError: If a new URL or event list is invalid.
        """
        fields: dict[str, object] = {}
        if url is not None:
            fields["url"] = validate_url(url)
        if events is not None:
            fields["events"] = validate_events(events, self._known_events)
        if description is not _UNSET:
            if description is not None and len(description) > 500:
                raise ValidationError("description", "must be at most 500 characters")
            fields["description"] = description

        async with self._locks[endpoint_id]:
            current = await self.get(tenant_id, endpoint_id)
            if is_active is not None and is_active != current.is_active:
                fields["is_active"] = is_active
                if is_active:
                    fields["reactivated_at"] = utc_now()
                    fields["auto_disabled_at"] = None
                    fields["failure_rate"] = None

            if not fields:
                return current

            updated = await self._storage.update_endpoint_fields(endpoint_id, **fields)
            if updated is None:
                raise NotFoundError("webhook", endpoint_id)

        logger.info(
            "Webhook endpoint updated",
            webhook_id=endpoint_id,
            fields=sorted(fields),
        )
        return updated

    async def rotate_secret(self, tenant_id: str, endpoint_id: str) -> str:
        """Replace the signing secret.

        The old secret stops working as soon as this returns: the ciphertext
        is replaced in a single write and the worker reads the secret per
        attempt.

        Returns:
            The new plaintext secret, shown once.
        """
        async with self._locks[endpoint_id]:
            await self.get(tenant_id, endpoint_id)
            secret = generate_secret()
            now = utc_now()
            updated = await self._storage.update_endpoint_fields(
                endpoint_id,
                secret_ciphertext=self._cipher.encrypt(secret),
                secret_rotated_at=now,
            )
            if updated is None:
                raise NotFoundError("webhook", endpoint_id)

        logger.info("Webhook secret rotated", webhook_id=endpoint_id)
        return secret

    async def delete(self, tenant_id: str, endpoint_id: str) -> None:
        """Delete an endpoint. Deleting a missing endpoint is a no-op.

        An endpoint owned by another tenant is left alone. The delivery log
        is kept until the retention purge removes it.
        """
        async with self._locks[endpoint_id]:
            endpoint = await self._storage.get_endpoint(endpoint_id)
            if endpoint is None or endpoint.tenant_id != tenant_id:
                return
            await self._storage.delete_endpoint(endpoint_id)
        self._locks.pop(endpoint_id, None)

        logger.info("Webhook endpoint deleted", webhook_id=endpoint_id, tenant_id=tenant_id)

    def reveal_secret(self, endpoint: WebhookEndpoint) -> str:
        """Decrypt an endpoint's signing secret for the delivery worker."""
        return self._cipher.decrypt(endpoint.secret_ciphertext)

    def window_start(self, endpoint: WebhookEndpoint, now: datetime | None = None) -> datetime:
        """Start of the failure-rate window for ``endpoint``.

        Attempts made before the last manual re-activation are ignored.
        """
        start = (now or utc_now()) - timedelta(seconds=self._policy.window_seconds)
        if endpoint.reactivated_at is not None and endpoint.reactivated_at > start:
            return endpoint.reactivated_at
        return start

    async def failure_stats(
        self,
        endpoint: WebhookEndpoint,
        now: datetime | None = None,
    ) -> tuple[int, int]:
        """Return (failed, total) attempts in the endpoint's trailing window."""
        since = self.window_start(endpoint, now)
        total = await self._storage.count_attempts(endpoint.id, since=since)
        if total == 0:
            return 0, 0
        failed = await self._storage.count_attempts(endpoint.id, since=since, succeeded=False)
        return failed, total

    async def record_outcome(
        self,
        endpoint_id: str,
        success: bool,
        now: datetime | None = None,
    ) -> bool:
        """Refresh the failure rate after an attempt and apply the auto-disable policy.

        The rate is recomputed from the delivery log, so every worker
        process sees the same value. The attempt being reported must already
        be in the log.

        Args:
            endpoint_id: Endpoint the attempt targeted.
            success: Whether the attempt got a 2xx.
            now: Current time (defaults to the clock).

        Returns:
            True if this call disabled the endpoint.
        """
        moment = now or utc_now()
        async with self._locks[endpoint_id]:
            endpoint = await self._storage.get_endpoint(endpoint_id)
            if endpoint is None:
                return False

            failed, total = await self.failure_stats(endpoint, moment)
            rate = failed / total if total else 0.0

            tripped = (
                not success
                and endpoint.is_active
                and total >= self._policy.min_samples
                and rate > self._policy.failure_rate_threshold
            )
            fields: dict[str, object] = {"failure_rate": rate}
            if tripped:
                fields["is_active"] = False
                fields["auto_disabled_at"] = moment

            await self._storage.update_endpoint_fields(endpoint_id, touch=tripped, **fields)

        if tripped:
            logger.warning(
                "Webhook auto-disabled",
                webhook_id=endpoint_id,
                failure_rate=round(rate, 4),
                failed=failed,
                samples=total,
            )
        return tripped
