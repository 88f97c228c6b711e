"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
import pytest
from cryptography.fernet import Fernet

from blaze_webhooks.config import AutoDisablePolicy, DeliveryPolicy, Settings
from blaze_webhooks.models import DeliveryAttempt, utc_now
from blaze_webhooks.storage import WebhookStorage
from blaze_webhooks.webhooks import DeliveryWorker, SecretCipher, WebhookRegistry

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

TENANT = "cus_alpha"
OTHER_TENANT = "cus_beta"
HOOK_URL = "https://receiver.example.com/hooks"


def make_settings(**overrides: Any) -> Settings:
    """Test settings: in-memory Qdrant, no backoff, worker off."""
    values: dict[str, Any] = {
        "env": "test",
        "qdrant_location": ":memory:",
        "collection_prefix": "test",
        "worker_enabled": False,
        "delivery": DeliveryPolicy(backoff_base_seconds=0.0),
    }
    values.update(overrides)
    return Settings(**values)


def make_attempt(
    webhook_id: str,
    succeeded: bool,
    created_at: datetime | None = None,
    attempt: int = 1,
    delivery_id: str = "dlv_test",
    tenant_id: str = TENANT,
) -> DeliveryAttempt:
    """Build a delivery log row without sending anything."""
    moment = created_at or utc_now()
    return DeliveryAttempt(
        delivery_id=delivery_id,
        webhook_id=webhook_id,
        tenant_id=tenant_id,
        event="comment.added",
        payload={"commentId": "c_1"},
        url=HOOK_URL,
        attempt=attempt,
        status="succeeded" if succeeded else "failed",
        http_status=200 if succeeded else 500,
        response_time_ms=12,
        signature="t=1,v1=" + "0" * 64,
        error=None if succeeded else "HTTP 500",
        delivered_at=moment,
        created_at=moment,
    )


@pytest.fixture
async def storage() -> AsyncIterator[WebhookStorage]:
    """In-memory storage instance.

    Uses qdrant-client's local mode; no external Qdrant server is required.
    """
    store = WebhookStorage(location=":memory:", prefix="test")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def cipher() -> SecretCipher:
    return SecretCipher(Fernet.generate_key())


@pytest.fixture
def registry(storage: WebhookStorage, cipher: SecretCipher) -> WebhookRegistry:
    return WebhookRegistry(storage, cipher)


@pytest.fixture
async def make_worker(
    storage: WebhookStorage,
    registry: WebhookRegistry,
) -> AsyncIterator[Callable[..., DeliveryWorker]]:
    """Factory for workers talking to an ``httpx.MockTransport`` receiver."""
    created: list[DeliveryWorker] = []

    def _make(
        handler: Callable[[httpx.Request], Any],
        worker_registry: WebhookRegistry | None = None,
        **delivery: Any,
    ) -> DeliveryWorker:
        policy = DeliveryPolicy(**{"backoff_base_seconds": 0.0, **delivery})
        worker = DeliveryWorker(
            storage,
            worker_registry or registry,
            make_settings(delivery=policy),
            transport=httpx.MockTransport(handler),
        )
        created.append(worker)
        return worker

    yield _make

    for worker in created:
        await worker.aclose()


@pytest.fixture
def strict_policy() -> AutoDisablePolicy:
    """Auto-disable policy that trips after three samples."""
    return AutoDisablePolicy(failure_rate_threshold=0.5, min_samples=3)
