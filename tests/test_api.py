"""Tests for the webhook admin REST API."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import HOOK_URL, TENANT, make_attempt, make_settings
from fastapi import FastAPI
from fastapi.testclient import TestClient

from blaze_webhooks.api import create_app, register_exception_handlers, router
from blaze_webhooks.api.auth import TokenValidator
from blaze_webhooks.api.router import set_service
from blaze_webhooks.exceptions import NotFoundError, StorageError, ValidationError
from blaze_webhooks.models import ALL_EVENT_TYPES, DeliveryJob, WebhookEndpoint
from blaze_webhooks.service import EventLogPage, WebhookService

CUSTOMER = {"X-Customer-Id": TENANT}


def make_endpoint(**overrides) -> WebhookEndpoint:
    values = {
        "tenant_id": TENANT,
        "url": HOOK_URL,
        "events": ["comment.added"],
        "secret_ciphertext": "ciphertext",
    }
    values.update(overrides)
    return WebhookEndpoint(**values)


@pytest.fixture
def mock_service():
    """Create a mock WebhookService with real test settings."""
    service = MagicMock(spec=WebhookService)
    service.settings = make_settings()
    service.health = AsyncMock(return_value=True)
    service.publish = AsyncMock(return_value=[])
    service.list_events = AsyncMock()
    service.registry = MagicMock()
    service.registry.known_events = list(ALL_EVENT_TYPES)
    for name in ("create", "list", "get", "update", "delete", "rotate_secret"):
        setattr(service.registry, name, AsyncMock())
    return service


@pytest.fixture
def test_app(mock_service):
    """Create a test FastAPI app with mocked service."""
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")
    set_service(mock_service)
    yield app
    set_service(None)


@pytest.fixture
def client(test_app):
    return TestClient(test_app)


class TestHealthEndpoint:
    def test_healthy(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storageConnected"] is True
        assert "version" in data

    def test_unhealthy_without_service(self):
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_service(None)

        response = TestClient(app).get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"
        assert response.json()["storageConnected"] is False

    def test_other_routes_503_without_service(self):
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_service(None)

        response = TestClient(app).get("/api/v1/webhooks", headers=CUSTOMER)
        assert response.status_code == 503


class TestCreateWebhook:
    def test_returns_secret_once(self, client, mock_service):
        endpoint = make_endpoint(description="Zapier")
        mock_service.registry.create.return_value = (endpoint, "whsec_abc")

        response = client.post(
            "/api/v1/webhooks",
            json={"url": HOOK_URL, "events": ["comment.added"], "description": "Zapier"},
            headers=CUSTOMER,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == endpoint.id
        assert data["customerId"] == TENANT
        assert data["isActive"] is True
        assert data["secret"] == "whsec_abc"
        assert "secretCiphertext" not in data
        mock_service.registry.create.assert_awaited_once_with(
            TENANT,
            HOOK_URL,
            ["comment.added"],
            description="Zapier",
            is_active=True,
        )

    def test_validation_error_is_400(self, client, mock_service):
        mock_service.registry.create.side_effect = ValidationError("url", "must use https")

        response = client.post(
            "/api/v1/webhooks",
            json={"url": "http://insecure.example.com", "events": ["comment.added"]},
            headers=CUSTOMER,
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "validation_error"
        assert error["field"] == "url"

    def test_unknown_field_rejected(self, client):
        response = client.post(
            "/api/v1/webhooks",
            json={"url": HOOK_URL, "events": ["comment.added"], "secret": "mine"},
            headers=CUSTOMER,
        )
        assert response.status_code == 422

    def test_missing_customer_is_401(self, client):
        response = client.post(
            "/api/v1/webhooks", json={"url": HOOK_URL, "events": ["comment.added"]}
        )
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"


class TestReadWebhooks:
    def test_list(self, client, mock_service):
        mock_service.registry.list.return_value = [make_endpoint(), make_endpoint()]

        response = client.get("/api/v1/webhooks", headers=CUSTOMER)

        assert response.status_code == 200
        assert len(response.json()) == 2
        mock_service.registry.list.assert_awaited_once_with(TENANT)

    def test_get_not_found(self, client, mock_service):
        mock_service.registry.get.side_effect = NotFoundError("webhook", "wh_missing")

        response = client.get("/api/v1/webhooks/wh_missing", headers=CUSTOMER)

        assert response.status_code == 404
        assert response.json()["error"]["resource_id"] == "wh_missing"

    def test_auto_disabled_fields_exposed(self, client, mock_service):
        disabled = make_endpoint(
            is_active=False,
            auto_disabled_at=datetime(2024, 3, 1, tzinfo=UTC),
            failure_rate=0.8,
        )
        mock_service.registry.get.return_value = disabled

        data = client.get(f"/api/v1/webhooks/{disabled.id}", headers=CUSTOMER).json()

        assert data["isActive"] is False
        assert data["failureRate"] == 0.8
        assert data["autoDisabledAt"].startswith("2024-03-01")


class TestUpdateWebhook:
    def test_reactivate(self, client, mock_service):
        endpoint = make_endpoint()
        mock_service.registry.update.return_value = endpoint

        response = client.patch(
            f"/api/v1/webhooks/{endpoint.id}", json={"isActive": True}, headers=CUSTOMER
        )

        assert response.status_code == 200
        mock_service.registry.update.assert_awaited_once_with(TENANT, endpoint.id, is_active=True)

    def test_null_description_clears_it(self, client, mock_service):
        mock_service.registry.update.return_value = make_endpoint()

        response = client.patch(
            "/api/v1/webhooks/wh_1", json={"description": None}, headers=CUSTOMER
        )

        assert response.status_code == 200
        mock_service.registry.update.assert_awaited_once_with(TENANT, "wh_1", description=None)

    def test_snake_case_accepted(self, client, mock_service):
        mock_service.registry.update.return_value = make_endpoint()

        response = client.patch(
            "/api/v1/webhooks/wh_1", json={"is_active": False}, headers=CUSTOMER
        )

        assert response.status_code == 200
        assert mock_service.registry.update.await_args.kwargs["is_active"] is False


class TestDeleteAndRotate:
    def test_delete_is_204(self, client, mock_service):
        response = client.delete("/api/v1/webhooks/wh_1", headers=CUSTOMER)

        assert response.status_code == 204
        assert response.content == b""
        mock_service.registry.delete.assert_awaited_once_with(TENANT, "wh_1")

    def test_rotate(self, client, mock_service):
        mock_service.registry.rotate_secret.return_value = "whsec_new"

        response = client.post("/api/v1/webhooks/wh_1/rotate-secret", headers=CUSTOMER)

        assert response.status_code == 200
        assert response.json() == {"secret": "whsec_new"}


class TestEventLog:
    def test_page_and_meta(self, client, mock_service):
        rows = [make_attempt("wh_1", succeeded=True), make_attempt("wh_1", succeeded=False)]
        mock_service.list_events.return_value = EventLogPage(
            attempts=rows, total=12, page=2, limit=2, success_rate=0.75
        )

        response = client.get(
            "/api/v1/webhooks/wh_1/events", params={"page": 2, "limit": 2}, headers=CUSTOMER
        )

        assert response.status_code == 200
        body = response.json()
        assert body["meta"] == {
            "total": 12,
            "page": 2,
            "limit": 2,
            "totalPages": 6,
            "successRate": 0.75,
        }
        assert [r["status"] for r in body["data"]] == ["succeeded", "failed"]
        assert body["data"][1]["httpStatus"] == 500
        assert body["data"][0]["customerId"] == TENANT
        mock_service.list_events.assert_awaited_once_with(TENANT, "wh_1", page=2, limit=2)


class TestPublishEvent:
    def test_accepted(self, client, mock_service):
        job = DeliveryJob(
            webhook_id="wh_1", tenant_id=TENANT, event="comment.added", data={"commentId": "c_1"}
        )
        mock_service.publish.return_value = [job]

        response = client.post(
            "/api/v1/events",
            json={"event": "comment.added", "data": {"commentId": "c_1"}},
            headers=CUSTOMER,
        )

        assert response.status_code == 202
        assert response.json() == {"enqueued": 1, "deliveryIds": [job.id]}
        mock_service.publish.assert_awaited_once_with(
            TENANT, "comment.added", {"commentId": "c_1"}
        )

    def test_unknown_event_is_400(self, client, mock_service):
        response = client.post(
            "/api/v1/events", json={"event": "post.deleted"}, headers=CUSTOMER
        )

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "event"
        mock_service.publish.assert_not_awaited()

    def test_storage_failure_is_500(self, client, mock_service):
        mock_service.publish.side_effect = StorageError("qdrant unreachable")

        response = client.post(
            "/api/v1/events", json={"event": "comment.added"}, headers=CUSTOMER
        )

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "storage_error"


class TestTokenAuth:
    @pytest.fixture
    def auth_service(self, mock_service):
        mock_service.settings = make_settings(auth_enabled=True, auth_secret_key="k" * 32)
        mock_service.registry.list.return_value = []
        return mock_service

    def test_bearer_token_selects_customer(self, client, auth_service):
        token = TokenValidator("k" * 32).create_token("cus_token")

        response = client.get(
            "/api/v1/webhooks", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200
        auth_service.registry.list.assert_awaited_once_with("cus_token")

    def test_customer_header_ignored_when_auth_on(self, client, auth_service):
        response = client.get("/api/v1/webhooks", headers=CUSTOMER)
        assert response.status_code == 401

    def test_forged_token_rejected(self, client, auth_service):
        token = TokenValidator("other-key").create_token("cus_token")

        response = client.get(
            "/api/v1/webhooks", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "authentication_error"


class TestCreateApp:
    def test_lifespan_with_in_memory_storage(self):
        app = create_app(make_settings(log_format="text", cors_enabled=False))

        with TestClient(app) as client:
            health = client.get("/api/v1/health")
            assert health.json()["status"] == "healthy"

            created = client.post(
                "/api/v1/webhooks",
                json={"url": HOOK_URL, "events": ["comment.added"]},
                headers=CUSTOMER,
            )
            assert created.status_code == 201
            webhook_id = created.json()["id"]

            listed = client.get("/api/v1/webhooks", headers=CUSTOMER).json()
            assert [w["id"] for w in listed] == [webhook_id]

            published = client.post(
                "/api/v1/events", json={"event": "comment.added"}, headers=CUSTOMER
            )
            assert published.json()["enqueued"] == 1

        assert client.get("/api/v1/health").json()["status"] == "unhealthy"
