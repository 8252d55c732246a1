"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from tarot_api.config import Settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    QUOTA_KIND = "kind"
    ERROR_TYPE = "error_type"


class GatewayMetrics:
    """
    Centralized metrics for the tarot gateway.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Metered operations (outcome per operation)
    - Upstream generative calls (duration, failures)
    - Account lifecycle and quota adjustments
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "tarot_gateway_service",
            "Service information",
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "tarot_gateway_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT.value, MetricLabels.METHOD.value, MetricLabels.STATUS_CODE.value],
        )

        self.http_request_duration_seconds = Histogram(
            "tarot_gateway_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT.value, MetricLabels.METHOD.value],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
        )

        self.http_requests_in_progress = Gauge(
            "tarot_gateway_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT.value, MetricLabels.METHOD.value],
        )

        # ====================================================================
        # Metered Operation Metrics
        # ====================================================================
        self.metered_operations_total = Counter(
            "tarot_gateway_metered_operations_total",
            "Metered operations by outcome",
            [MetricLabels.OPERATION.value, MetricLabels.OUTCOME.value],
        )

        self.upstream_duration_seconds = Histogram(
            "tarot_gateway_upstream_duration_seconds",
            "Generative provider call duration in seconds",
            [MetricLabels.OPERATION.value],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0),
        )

        # ====================================================================
        # Account Metrics
        # ====================================================================
        self.accounts_created_total = Counter(
            "tarot_gateway_accounts_created_total",
            "Total accounts created",
        )

        self.quota_adjustments_total = Counter(
            "tarot_gateway_quota_adjustments_total",
            "Admin quota adjustments",
            [MetricLabels.QUOTA_KIND.value],
        )

        self.logins_total = Counter(
            "tarot_gateway_logins_total",
            "Login attempts by outcome",
            [MetricLabels.OUTCOME.value],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "tarot_gateway_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE.value, MetricLabels.OPERATION.value],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def set_service_info(self, settings: Settings) -> None:
        """Publish version and service name."""
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_metered_operation(self, operation: str, outcome: str) -> None:
        """Record the outcome of a metered operation."""
        self.metered_operations_total.labels(operation=operation, outcome=outcome).inc()

    def record_upstream_call(self, operation: str, duration: float) -> None:
        """Record generative provider latency."""
        self.upstream_duration_seconds.labels(operation=operation).observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Process-wide registry; Prometheus collectors can only be registered once
metrics = GatewayMetrics()
