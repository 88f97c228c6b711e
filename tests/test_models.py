"""Tests for webhook data models."""

import json

import pytest
from pydantic import ValidationError

from blaze_webhooks.models import (
    ALL_EVENT_TYPES,
    DeliveryAttempt,
    DeliveryJob,
    DeliveryState,
    WebhookEndpoint,
    WebhookEvent,
    generate_id,
)


def make_endpoint(**overrides) -> WebhookEndpoint:
    values = {
        "tenant_id": "cus_1",
        "url": "https://example.com/hooks",
        "events": ["comment.added"],
        "secret_ciphertext": "gAAAA-token",
    }
    values.update(overrides)
    return WebhookEndpoint(**values)


class TestHelpers:
    def test_generate_id(self):
        ident = generate_id("whk")
        assert ident.startswith("whk_")
        assert len(ident) == 16


class TestWebhookEndpoint:
    def test_defaults(self):
        endpoint = make_endpoint()
        assert endpoint.id.startswith("whk_")
        assert endpoint.is_active is True
        assert endpoint.auto_disabled_at is None
        assert endpoint.failure_rate is None

    def test_events_required(self):
        with pytest.raises(ValidationError):
            make_endpoint(events=[])

    def test_extra_fields_rejected(self):
        with pytest.raises(ValidationError):
            make_endpoint(secret="plaintext")

    def test_secret_not_in_repr(self):
        assert "gAAAA-token" not in repr(make_endpoint())

    def test_subscribes_to(self):
        endpoint = make_endpoint(events=["comment.added"])
        assert endpoint.subscribes_to("comment.added")
        assert not endpoint.subscribes_to("newsletter.subscribed")

    def test_inactive_subscribes_to_nothing(self):
        assert not make_endpoint(is_active=False).subscribes_to("comment.added")

    def test_vocabulary(self):
        assert ALL_EVENT_TYPES == ["newsletter.subscribed", "comment.added"]


class TestWebhookEvent:
    def test_body_is_compact_json(self):
        event = WebhookEvent(event="comment.added", data={"commentId": "c_1", "n": 2})
        body = event.to_body()
        assert body == b'{"event":"comment.added","data":{"commentId":"c_1","n":2}}'
        assert json.loads(body) == {"event": "comment.added", "data": {"commentId": "c_1", "n": 2}}


class TestDeliveryJob:
    def test_defaults(self):
        job = DeliveryJob(tenant_id="cus_1", webhook_id="whk_1", event="comment.added")
        assert job.id.startswith("dlv_")
        assert job.attempt == 1
        assert job.state is DeliveryState.PENDING
        assert job.lease_expires_at is None

    def test_to_event(self):
        job = DeliveryJob(
            tenant_id="cus_1", webhook_id="whk_1", event="comment.added", data={"a": 1}
        )
        assert job.to_event() == WebhookEvent(event="comment.added", data={"a": 1})

    @pytest.mark.parametrize(
        ("state", "terminal"),
        [
            (DeliveryState.PENDING, False),
            (DeliveryState.SENDING, False),
            (DeliveryState.RETRYING, False),
            (DeliveryState.SUCCEEDED, True),
            (DeliveryState.EXHAUSTED, True),
            (DeliveryState.ABANDONED, True),
        ],
    )
    def test_terminal_states(self, state, terminal):
        assert state.is_terminal is terminal


class TestDeliveryAttempt:
    def make(self, **overrides) -> DeliveryAttempt:
        values = {
            "delivery_id": "dlv_1",
            "webhook_id": "whk_1",
            "tenant_id": "cus_1",
            "event": "comment.added",
            "url": "https://example.com/hooks",
            "attempt": 1,
            "status": "succeeded",
            "http_status": 200,
            "signature": "t=1,v1=" + "a" * 64,
        }
        values.update(overrides)
        return DeliveryAttempt(**values)

    def test_immutable(self):
        attempt = self.make()
        with pytest.raises(ValidationError):
            attempt.http_status = 500

    def test_succeeded_property(self):
        assert self.make().succeeded
        assert not self.make(status="failed", http_status=500).succeeded

    def test_attempt_is_one_based(self):
        with pytest.raises(ValidationError):
            self.make(attempt=0)

    def test_status_vocabulary(self):
        with pytest.raises(ValidationError):
            self.make(status="pending")
