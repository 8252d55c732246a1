"""
Observability module - Logging, Metrics, and Tracing.
"""

from tarot_api.observability.logging import get_logger, log_context, setup_logging
from tarot_api.observability.metrics import metrics
from tarot_api.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_operation",
]
