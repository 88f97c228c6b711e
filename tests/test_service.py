"""End-to-end tests for WebhookService against in-memory Qdrant."""

from collections.abc import AsyncIterator

import httpx
import pytest
from conftest import HOOK_URL, OTHER_TENANT, TENANT, make_settings

from blaze_webhooks.exceptions import NotFoundError
from blaze_webhooks.models import DeliveryState
from blaze_webhooks.service import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    EventLogPage,
    WebhookService,
    normalize_paging,
)
from blaze_webhooks.webhooks import verify


class Receiver:
    """Records requests and answers with a scripted status."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, text="received")


@pytest.fixture
def receiver() -> Receiver:
    return Receiver()


@pytest.fixture
async def service(receiver: Receiver) -> AsyncIterator[WebhookService]:
    async with WebhookService.create(
        make_settings(), transport=httpx.MockTransport(receiver)
    ) as svc:
        yield svc


class TestNormalizePaging:
    @pytest.mark.parametrize(
        ("page", "limit", "expected"),
        [
            (None, None, (1, DEFAULT_PAGE_SIZE)),
            (3, 25, (3, 25)),
            (0, 0, (1, DEFAULT_PAGE_SIZE)),
            (-2, -5, (1, DEFAULT_PAGE_SIZE)),
            (1, 1000, (1, MAX_PAGE_SIZE)),
        ],
    )
    def test_clamps(self, page, limit, expected):
        assert normalize_paging(page, limit) == expected

    def test_total_pages(self):
        assert EventLogPage(attempts=[], total=0, page=1, limit=10).total_pages == 0
        assert EventLogPage(attempts=[], total=10, page=1, limit=10).total_pages == 1
        assert EventLogPage(attempts=[], total=11, page=1, limit=10).total_pages == 2


class TestEndToEnd:
    async def test_publish_deliver_and_list(self, service: WebhookService, receiver: Receiver):
        endpoint, secret = await service.registry.create(TENANT, HOOK_URL, ["comment.added"])

        jobs = await service.publish(TENANT, "comment.added", {"commentId": "c_42"})
        assert len(jobs) == 1
        await service.worker.drain()

        (request,) = receiver.requests
        assert request.headers["X-Blaze-Delivery-Id"] == jobs[0].id
        assert verify(secret, request.headers["X-Blaze-Signature"], request.content)
        assert (await service.storage.get_job(jobs[0].id)).state is DeliveryState.SUCCEEDED

        page = await service.list_events(TENANT, endpoint.id)
        assert page.total == 1
        assert page.page == 1
        assert page.limit == DEFAULT_PAGE_SIZE
        assert page.success_rate == 1.0
        (row,) = page.attempts
        assert row.payload == {"commentId": "c_42"}
        assert row.response_body == "received"

    async def test_rotation_between_deliveries(self, service: WebhookService, receiver: Receiver):
        endpoint, old_secret = await service.registry.create(
            TENANT, HOOK_URL, ["newsletter.subscribed"]
        )
        await service.publish(TENANT, "newsletter.subscribed", {"email": "a@example.com"})
        await service.worker.drain()

        new_secret = await service.registry.rotate_secret(TENANT, endpoint.id)
        await service.publish(TENANT, "newsletter.subscribed", {"email": "b@example.com"})
        await service.worker.drain()

        first, second = receiver.requests
        assert verify(old_secret, first.headers["X-Blaze-Signature"], first.content)
        assert verify(new_secret, second.headers["X-Blaze-Signature"], second.content)
        assert not verify(old_secret, second.headers["X-Blaze-Signature"], second.content)

    async def test_failing_receiver_shows_in_log(
        self, service: WebhookService, receiver: Receiver
    ):
        receiver.status = 503
        endpoint, _ = await service.registry.create(TENANT, HOOK_URL, ["comment.added"])
        await service.publish(TENANT, "comment.added", {})
        await service.worker.drain()

        page = await service.list_events(TENANT, endpoint.id, page=1, limit=2)
        assert page.total == 5
        assert page.total_pages == 3
        assert [a.attempt for a in page.attempts] == [5, 4]
        assert page.success_rate == 0.0

    async def test_list_events_hides_other_tenants(self, service: WebhookService):
        endpoint, _ = await service.registry.create(TENANT, HOOK_URL, ["comment.added"])
        with pytest.raises(NotFoundError):
            await service.list_events(OTHER_TENANT, endpoint.id)

    async def test_empty_log(self, service: WebhookService):
        endpoint, _ = await service.registry.create(TENANT, HOOK_URL, ["comment.added"])
        page = await service.list_events(TENANT, endpoint.id)
        assert page.attempts == []
        assert page.total == 0
        assert page.success_rate is None

    async def test_health(self, service: WebhookService):
        assert await service.health() is True

    async def test_purge_expired_nothing_old(self, service: WebhookService):
        await service.registry.create(TENANT, HOOK_URL, ["comment.added"])
        await service.publish(TENANT, "comment.added", {})
        await service.worker.drain()
        assert await service.purge_expired() == (0, 0)


def test_service_builds_components():
    svc = WebhookService.create(make_settings())
    assert svc.registry.known_events
    assert svc.storage.is_initialized is False
