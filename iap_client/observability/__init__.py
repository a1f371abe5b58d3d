"""
Observability module - Logging, Metrics, and Tracing.
"""

from iap_client.observability.logging import get_logger, log_context, setup_logging
from iap_client.observability.metrics import metrics
from iap_client.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
