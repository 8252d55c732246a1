"""
Tests for logging, metrics and tracing helpers.
"""

import pytest
import structlog
from prometheus_client import REGISTRY

from tarot_api.observability.logging import log_context, mask, redact_credentials
from tarot_api.observability.metrics import metrics
from tarot_api.observability.tracing import trace_operation


class TestRedaction:
    """Credentials are masked before rendering."""

    def test_token_masked_with_prefix(self):
        event = redact_credentials(None, "info", {"event": "x", "api_token": "tk_alice_0123456789"})
        assert event["api_token"] == "tk_a***"

    def test_short_values_fully_masked(self):
        assert mask("abc") == "***"

    @pytest.mark.parametrize("key", ["password", "new_password", "key", "token"])
    def test_sensitive_keys(self, key):
        event = redact_credentials(None, "info", {"event": "x", key: "hunter2-hunter2"})
        assert "hunter2-hunter2" not in event[key]

    def test_other_keys_untouched(self):
        event = redact_credentials(None, "info", {"event": "x", "username": "alice", "token": None})
        assert event == {"event": "x", "username": "alice", "token": None}


class TestLogContext:
    """log_context binds and unbinds contextvars."""

    def test_binds_within_block(self):
        with log_context(request_id="req-1"):
            assert structlog.contextvars.get_contextvars()["request_id"] == "req-1"
        assert "request_id" not in structlog.contextvars.get_contextvars()


class TestMetrics:
    """GatewayMetrics helpers."""

    def test_metered_operation_counter(self):
        labels = {"operation": "reading", "outcome": "success"}
        before = REGISTRY.get_sample_value("tarot_gateway_metered_operations_total", labels) or 0

        metrics.record_metered_operation("reading", "success")

        after = REGISTRY.get_sample_value("tarot_gateway_metered_operations_total", labels)
        assert after == before + 1


class TestTraceOperation:
    """Manual spans work without a configured tracer provider."""

    def test_span_without_provider(self):
        with trace_operation("upstream_generate", operation="reading", account_id=None) as span:
            assert span is not None

    def test_exception_propagates(self):
        with pytest.raises(RuntimeError):
            with trace_operation("upstream_generate"):
                raise RuntimeError("boom")
