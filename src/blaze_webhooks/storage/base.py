"""Base storage class and helpers.

Webhook records live in payload-only Qdrant collections. Points carry a
1-dimensional placeholder vector; all lookups go through payload filters.
Datetimes are stored twice: as ISO strings inside the model dump, and as
float Unix seconds under ``<field>_ts`` keys so range filters work.
"""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from blaze_webhooks.config import Settings
from blaze_webhooks.exceptions import StorageError

from .retry import qdrant_retry

ModelT = TypeVar("ModelT", bound=BaseModel)

# Collection suffixes by record kind
COLLECTION_NAMES = {
    "endpoints": "webhook_endpoints",
    "attempts": "webhook_attempts",
    "jobs": "webhook_jobs",
}

# Keyword fields indexed per collection
INDEXED_FIELDS = {
    "endpoints": ("tenant_id", "is_active"),
    "attempts": ("webhook_id", "tenant_id", "delivery_id", "status"),
    "jobs": ("webhook_id", "state"),
}

# Float fields indexed for range filters and ordering
RANGE_FIELDS = {
    "endpoints": (),
    "attempts": ("created_at_ts",),
    "jobs": ("visible_at_ts",),
}

PLACEHOLDER_VECTOR = [1.0]

TS_SUFFIX = "_ts"


class StorageBase:
    """Client lifecycle, collection setup and payload conversion."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        location: str | None = None,
        max_scroll_limit: int | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            location: Local mode location (":memory:" or a directory). Overrides url.
            max_scroll_limit: Cap on records fetched by one listing.
        """
        defaults = Settings() if location is None and url is None else None
        self._url = url or (defaults.qdrant_url if defaults else None)
        self._api_key = api_key if api_key is not None else (
            defaults.qdrant_api_key if defaults else None
        )
        self._prefix = prefix or (defaults.collection_prefix if defaults else "blaze")
        self._location = location
        self._max_scroll_limit = max_scroll_limit or 10000
        self._client: AsyncQdrantClient | None = None
        self._claim_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> StorageBase:
        return cls(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
            location=settings.qdrant_location,
            max_scroll_limit=settings.storage_max_scroll_limit,
        )

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    async def initialize(self) -> None:
        """Connect and make sure all collections exist."""
        if self._location is not None:
            self._client = AsyncQdrantClient(location=self._location)
        else:
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()

    async def close(self) -> None:
        """Close the client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> StorageBase:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _collection_name(self, kind: str) -> str:
        """Full collection name with prefix."""
        return f"{self._prefix}_{COLLECTION_NAMES[kind]}"

    @staticmethod
    def _point_id(kind: str, record_id: str) -> str:
        """Deterministic UUID-format point ID for a record.

        Qdrant requires point IDs to be UUIDs or unsigned integers, so the
        kind-qualified record ID is hashed.
        """
        h = hashlib.sha256(f"{kind}/{record_id}".encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            name = self._collection_name(kind)
            if name in existing:
                continue
            await self.client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            for field_name in INDEXED_FIELDS[kind]:
                await self.client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=models.PayloadSchemaType.KEYWORD
                    if field_name != "is_active"
                    else models.PayloadSchemaType.BOOL,
                )
            for field_name in RANGE_FIELDS[kind]:
                await self.client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=models.PayloadSchemaType.FLOAT,
                )

    @staticmethod
    def _to_payload(record: BaseModel) -> dict[str, Any]:
        """Dump a model and add ``<field>_ts`` float copies of its datetimes.

        Unset datetimes get no ``_ts`` key, so range filters never match them.
        """
        payload = record.model_dump(mode="json")
        for name in type(record).model_fields:
            value = getattr(record, name)
            if isinstance(value, datetime):
                payload[f"{name}{TS_SUFFIX}"] = value.timestamp()
        return payload

    @staticmethod
    def _from_payload(payload: dict[str, Any], model_class: type[ModelT]) -> ModelT:
        data = {k: v for k, v in payload.items() if not k.endswith(TS_SUFFIX)}
        try:
            return model_class.model_validate(data)
        except ValueError as e:
            raise StorageError(f"Corrupt {model_class.__name__} record: {e}") from e

    @qdrant_retry
    async def _upsert(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(kind, record_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=payload,
                )
            ],
        )

    @qdrant_retry
    async def _retrieve(self, kind: str, record_id: str) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._point_id(kind, record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return dict(results[0].payload)

    @qdrant_retry
    async def _scroll_all(
        self,
        kind: str,
        scroll_filter: models.Filter | None = None,
    ) -> list[dict[str, Any]]:
        """Every matching payload, up to the configured scroll cap."""
        payloads: list[dict[str, Any]] = []
        offset: Any = None
        while len(payloads) < self._max_scroll_limit:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(kind),
                scroll_filter=scroll_filter,
                limit=min(256, self._max_scroll_limit - len(payloads)),
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            payloads.extend(dict(p.payload) for p in points if p.payload is not None)
            if offset is None:
                break
        return payloads

    @qdrant_retry
    async def _scroll_ordered(
        self,
        kind: str,
        scroll_filter: models.Filter | None,
        order_key: str,
        limit: int,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """First ``limit`` matching payloads ordered by an indexed float field.

        Qdrant does the ordering, so the result does not depend on how many
        points match. Points without ``order_key`` are skipped.
        """
        if limit <= 0:
            return []
        points, _ = await self.client.scroll(
            collection_name=self._collection_name(kind),
            scroll_filter=scroll_filter,
            limit=limit,
            order_by=models.OrderBy(
                key=order_key,
                direction=models.Direction.DESC if descending else models.Direction.ASC,
            ),
            with_payload=True,
            with_vectors=False,
        )
        return [dict(p.payload) for p in points if p.payload is not None]

    @qdrant_retry
    async def _set_payload(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        await self.client.set_payload(
            collection_name=self._collection_name(kind),
            payload=payload,
            points=[self._point_id(kind, record_id)],
        )

    @qdrant_retry
    async def _delete_ids(self, kind: str, record_ids: list[str]) -> None:
        await self.client.delete(
            collection_name=self._collection_name(kind),
            points_selector=models.PointIdsList(
                points=[self._point_id(kind, rid) for rid in record_ids],
            ),
        )

    @qdrant_retry
    async def _count(self, kind: str, count_filter: models.Filter | None = None) -> int:
        result = await self.client.count(
            collection_name=self._collection_name(kind),
            count_filter=count_filter,
            exact=True,
        )
        return int(result.count)

    @qdrant_retry
    async def _delete_matching(self, kind: str, selector_filter: models.Filter) -> None:
        await self.client.delete(
            collection_name=self._collection_name(kind),
            points_selector=models.FilterSelector(filter=selector_filter),
        )


def match(key: str, value: Any) -> models.FieldCondition:
    """Shorthand for an exact-match payload condition."""
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))
