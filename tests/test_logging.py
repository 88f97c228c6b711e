"""Tests for structured logging."""

import logging

import structlog

from blaze_webhooks.logging import (
    bind_context,
    clear_context,
    configure_logging,
    delivery_context,
    get_logger,
    unbind_context,
)


class TestConfigureLogging:
    def test_json_format(self):
        configure_logging(level="INFO", format="json")
        get_logger("test").info("json format message", webhook_id="whk_1")

    def test_text_format(self):
        configure_logging(level="DEBUG", format="text")
        get_logger("test").debug("text format message")

    def test_sets_root_level(self):
        configure_logging(level="WARNING")
        assert logging.getLogger().level == logging.WARNING

    def test_quiets_http_client_loggers(self):
        configure_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        configure_logging(level="NOPE")
        assert logging.getLogger().level == logging.INFO


class TestContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_and_unbind(self):
        bind_context(webhook_id="whk_1", delivery_id="dlv_1")
        assert structlog.contextvars.get_contextvars() == {
            "webhook_id": "whk_1",
            "delivery_id": "dlv_1",
        }
        unbind_context("delivery_id")
        assert structlog.contextvars.get_contextvars() == {"webhook_id": "whk_1"}

    def test_delivery_context_scopes_fields(self):
        bind_context(request_id="req_1")
        with delivery_context(delivery_id="dlv_1", webhook_id="whk_1"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["delivery_id"] == "dlv_1"
            assert bound["webhook_id"] == "whk_1"
        assert structlog.contextvars.get_contextvars() == {"request_id": "req_1"}

    def test_delivery_context_unbinds_on_error(self):
        try:
            with delivery_context(delivery_id="dlv_1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert "delivery_id" not in structlog.contextvars.get_contextvars()
