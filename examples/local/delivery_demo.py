#!/usr/bin/env python3
"""Delivery, retry and auto-disable demo.

Runs entirely locally: Qdrant in memory and an in-process receiver built
on ``httpx.MockTransport``. The receiver verifies every signature the way
a real integration would.

    python examples/local/delivery_demo.py
"""

import asyncio

import httpx

from blaze_webhooks import AutoDisablePolicy, DeliveryPolicy, Settings
from blaze_webhooks.service import WebhookService
from blaze_webhooks.webhooks import verify

SECRETS: dict[str, str] = {}
FLAKY_URL = "https://flaky.example.com/hooks"
HEALTHY_URL = "https://healthy.example.com/hooks"


def receiver(request: httpx.Request) -> httpx.Response:
    secret = SECRETS[str(request.url)]
    valid = verify(secret, request.headers["X-Blaze-Signature"], request.content)
    print(f"    <- {request.url.host:<22} signature {'ok' if valid else 'INVALID'}")
    if request.url.host.startswith("flaky"):
        return httpx.Response(500, text="internal error")
    return httpx.Response(200, text="thanks")


async def main() -> None:
    settings = Settings(
        env="development",
        qdrant_location=":memory:",
        worker_enabled=False,
        delivery=DeliveryPolicy(max_attempts=3, backoff_base_seconds=0.0),
        auto_disable=AutoDisablePolicy(min_samples=4),
    )

    async with WebhookService.create(settings, transport=httpx.MockTransport(receiver)) as service:
        flaky, SECRETS[FLAKY_URL] = await service.registry.create(
            "cus_demo", FLAKY_URL, ["comment.added"]
        )
        healthy, SECRETS[HEALTHY_URL] = await service.registry.create(
            "cus_demo", HEALTHY_URL, ["comment.added", "newsletter.subscribed"]
        )

        for n in range(3):
            jobs = await service.publish("cus_demo", "comment.added", {"commentId": f"c_{n}"})
            print(f"\n  comment.added #{n}: {len(jobs)} delivery(ies)")
            await service.worker.drain()

        for endpoint in (flaky, healthy):
            current = await service.registry.get("cus_demo", endpoint.id)
            page = await service.list_events("cus_demo", endpoint.id, limit=100)
            state = "active" if current.is_active else f"disabled at {current.auto_disabled_at}"
            print(f"\n  {current.url}")
            print(f"    {page.total} attempts, success rate {page.success_rate:.0%}, {state}")


if __name__ == "__main__":
    asyncio.run(main())
