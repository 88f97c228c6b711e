#!/usr/bin/env python3
"""REST API client demonstration.

This example drives the webhook admin API with httpx.
First, start the server in another terminal:

    python -m blaze_webhooks --port 8000

Then run this script:

    python examples/external/api_client.py https://your-receiver.example.com/hooks

The API provides:
    POST   /api/v1/webhooks                     - Register an endpoint
    GET    /api/v1/webhooks                     - List endpoints
    PATCH  /api/v1/webhooks/{id}                - Update / re-enable
    POST   /api/v1/webhooks/{id}/rotate-secret  - Rotate the signing secret
    GET    /api/v1/webhooks/{id}/events         - Delivery log
    POST   /api/v1/events                       - Raise an event
    GET    /api/v1/health                       - Health check
"""

import asyncio
import sys

import httpx

BASE_URL = "http://localhost:8000/api/v1"
HEADERS = {"X-Customer-Id": "cus_demo"}


async def main(receiver_url: str) -> None:
    """Run the API client demo."""
    print("=" * 60)
    print("Blaze Webhooks REST API Demo")
    print("=" * 60)
    print(f"\nConnecting to {BASE_URL}...")

    async with httpx.AsyncClient(base_url=BASE_URL, headers=HEADERS, timeout=30.0) as client:
        try:
            resp = await client.get("/health")
            resp.raise_for_status()
        except httpx.ConnectError:
            print("\nCould not connect to API server!")
            print("   Start the server with: python -m blaze_webhooks")
            return
        health = resp.json()
        print(f"  Status: {health['status']}  Version: {health['version']}")

        # Register
        resp = await client.post(
            "/webhooks",
            json={
                "url": receiver_url,
                "events": ["comment.added", "newsletter.subscribed"],
                "description": "API demo",
            },
        )
        if resp.status_code == 400:
            print(f"\n  Rejected: {resp.json()['error']['message']}")
            return
        resp.raise_for_status()
        webhook = resp.json()
        print(f"\n  Registered {webhook['id']} -> {webhook['url']}")
        print(f"  Signing secret (shown once): {webhook['secret']}")

        # Publish
        resp = await client.post(
            "/events",
            json={"event": "comment.added", "data": {"commentId": "c_demo", "postId": "p_1"}},
        )
        resp.raise_for_status()
        print(f"\n  Enqueued {resp.json()['enqueued']} delivery(ies)")

        # Give the worker a moment
        await asyncio.sleep(2)

        resp = await client.get(f"/webhooks/{webhook['id']}/events", params={"limit": 5})
        resp.raise_for_status()
        log = resp.json()
        print(f"\n  Delivery log ({log['meta']['total']} attempts):")
        for row in log["data"]:
            outcome = row["httpStatus"] or row["error"]
            print(f"    #{row['attempt']} {row['event']:<22} {row['status']:<9} {outcome}")
        if log["meta"]["successRate"] is not None:
            print(f"  Success rate: {log['meta']['successRate']:.0%}")

        resp = await client.post(f"/webhooks/{webhook['id']}/rotate-secret")
        resp.raise_for_status()
        print(f"\n  Rotated secret: {resp.json()['secret']}")

        resp = await client.delete(f"/webhooks/{webhook['id']}")
        print(f"  Deleted ({resp.status_code})")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(f"usage: {sys.argv[0]} <https receiver url>")
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
