"""Endpoint storage operations.

Endpoints are mutable: the registry patches fields in place and the failure
tracker flips ``is_active``. Patches go through ``set_payload`` so that two
writers touching different fields do not overwrite each other.
"""

from __future__ import annotations

from typing import Any

from qdrant_client import models

from blaze_webhooks.models import WebhookEndpoint, utc_now

from .base import TS_SUFFIX, match


class EndpointMixin:
    """Mixin providing endpoint operations for WebhookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _to_payload(model) -> dict
    - _from_payload(payload, model_class) -> model
    - _upsert / _retrieve / _scroll_all / _set_payload / _delete_ids
    """

    _to_payload: Any
    _from_payload: Any
    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _set_payload: Any
    _delete_ids: Any

    async def store_endpoint(self, endpoint: WebhookEndpoint) -> str:
        """Insert or fully replace an endpoint.

        Returns:
            The endpoint ID.
        """
        await self._upsert("endpoints", endpoint.id, self._to_payload(endpoint))
        return endpoint.id

    async def get_endpoint(self, endpoint_id: str) -> WebhookEndpoint | None:
        """Get an endpoint by ID regardless of tenant."""
        payload = await self._retrieve("endpoints", endpoint_id)
        if payload is None:
            return None
        return self._from_payload(payload, WebhookEndpoint)

    async def list_endpoints(
        self,
        tenant_id: str,
        active_only: bool = False,
    ) -> list[WebhookEndpoint]:
        """All endpoints of a tenant, newest first."""
        must: list[models.Condition] = [match("tenant_id", tenant_id)]
        if active_only:
            must.append(match("is_active", True))

        payloads = await self._scroll_all("endpoints", models.Filter(must=must))
        endpoints = [self._from_payload(p, WebhookEndpoint) for p in payloads]
        endpoints.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return endpoints

    async def get_endpoints_for_event(
        self,
        tenant_id: str,
        event: str,
    ) -> list[WebhookEndpoint]:
        """Active endpoints of a tenant subscribed to an event."""
        endpoints = await self.list_endpoints(tenant_id, active_only=True)
        # Event membership is filtered here rather than with MatchAny on a list field
        return [e for e in endpoints if e.subscribes_to(event)]

    async def update_endpoint_fields(
        self,
        endpoint_id: str,
        touch: bool = True,
        **fields: Any,
    ) -> WebhookEndpoint | None:
        """Patch selected endpoint fields.

        Args:
            endpoint_id: Endpoint to patch.
            touch: Bump ``updated_at``. Derived stats updates pass False.
            **fields: Field values to set. Validated against WebhookEndpoint.

        Returns:
            The updated endpoint, or None if it does not exist.
        """
        current = await self.get_endpoint(endpoint_id)
        if current is None:
            return None

        changed = set(fields)
        if touch:
            fields["updated_at"] = utc_now()
            changed.add("updated_at")
        updated = WebhookEndpoint.model_validate({**current.model_dump(), **fields})
        full = self._to_payload(updated)
        patch = {
            key: value
            for key, value in full.items()
            if key in changed or key.removesuffix(TS_SUFFIX) in changed
        }

        await self._set_payload("endpoints", endpoint_id, patch)
        return updated

    async def delete_endpoint(self, endpoint_id: str) -> bool:
        """Delete an endpoint. Its delivery log is kept.

        Returns:
            True if the endpoint existed.
        """
        if await self._retrieve("endpoints", endpoint_id) is None:
            return False
        await self._delete_ids("endpoints", [endpoint_id])
        return True
