"""Tests for event fan-out."""

from unittest.mock import AsyncMock

from conftest import HOOK_URL, OTHER_TENANT, TENANT

from blaze_webhooks.models import DeliveryState
from blaze_webhooks.storage import WebhookStorage
from blaze_webhooks.webhooks import Dispatcher, WebhookRegistry


class TestPublish:
    async def test_one_job_per_subscribed_active_endpoint(
        self, registry: WebhookRegistry, storage: WebhookStorage
    ):
        comments, _ = await registry.create(TENANT, HOOK_URL, ["comment.added"])
        both, _ = await registry.create(
            TENANT, HOOK_URL, ["comment.added", "newsletter.subscribed"]
        )
        await registry.create(TENANT, HOOK_URL, ["newsletter.subscribed"])
        await registry.create(TENANT, HOOK_URL, ["comment.added"], is_active=False)
        await registry.create(OTHER_TENANT, HOOK_URL, ["comment.added"])

        jobs = await Dispatcher(storage).publish(TENANT, "comment.added", {"commentId": "c_1"})

        assert sorted(j.webhook_id for j in jobs) == sorted([comments.id, both.id])
        for job in jobs:
            assert job.attempt == 1
            assert job.state is DeliveryState.PENDING
            assert job.tenant_id == TENANT
            assert job.event == "comment.added"
            assert job.data == {"commentId": "c_1"}
            assert await storage.get_job(job.id) == job

    async def test_no_match_is_silent(self, registry: WebhookRegistry, storage: WebhookStorage):
        await registry.create(TENANT, HOOK_URL, ["newsletter.subscribed"])
        assert await Dispatcher(storage).publish(TENANT, "comment.added", {}) == []
        assert await storage.list_jobs() == []

    async def test_no_endpoints_at_all(self, storage: WebhookStorage):
        assert await Dispatcher(storage).publish(TENANT, "comment.added") == []

    async def test_jobs_do_not_share_payload(self, registry: WebhookRegistry, storage: WebhookStorage):
        await registry.create(TENANT, HOOK_URL, ["comment.added"])
        await registry.create(TENANT, HOOK_URL, ["comment.added"])
        payload = {"commentId": "c_1"}

        jobs = await Dispatcher(storage).publish(TENANT, "comment.added", payload)
        jobs[0].data["commentId"] = "changed"
        assert jobs[1].data == {"commentId": "c_1"}
        assert payload == {"commentId": "c_1"}

    async def test_uses_storage_lookup(self):
        storage = AsyncMock()
        storage.get_endpoints_for_event = AsyncMock(return_value=[])

        await Dispatcher(storage).publish(TENANT, "comment.added", {})

        storage.get_endpoints_for_event.assert_awaited_once_with(TENANT, "comment.added")
        storage.enqueue_job.assert_not_awaited()
