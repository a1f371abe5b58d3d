"""
Metrics Collection with Prometheus.

Exposes purchase and receipt metrics for the host application to scrape.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from iap_client.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    OUTCOME = "outcome"
    RESULT = "result"
    STATUS = "status"
    OPERATION = "operation"


class PurchaseMetrics:
    """
    Centralized metrics for the purchase client.

    Covers:
    - Purchase sessions (rate, outcome, duration, in flight)
    - Receipt verification (accepted/rejected by reason)
    - Provider window messages (by status)
    - Marketplace HTTP calls
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""
        self.enabled = settings.metrics_enabled

        self.service_info = Info(
            "iap_client",
            "Purchase client information",
        )
        self.service_info.info(
            {
                "version": settings.service_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # Purchase Session Metrics
        # ====================================================================
        self.purchases_total = Counter(
            "iap_purchases_total",
            "Total purchase sessions settled",
            [MetricLabels.OUTCOME.value],
        )

        self.purchase_duration_seconds = Histogram(
            "iap_purchase_duration_seconds",
            "Time from purchase start to settlement",
            buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0),
        )

        self.purchase_sessions_in_progress = Gauge(
            "iap_purchase_sessions_in_progress",
            "Number of purchase sessions that have not settled",
        )

        # ====================================================================
        # Receipt Metrics
        # ====================================================================
        self.receipt_verifications_total = Counter(
            "iap_receipt_verifications_total",
            "Total receipt verifications",
            [MetricLabels.RESULT.value],
        )

        # ====================================================================
        # Payment Window Metrics
        # ====================================================================
        self.pay_messages_total = Counter(
            "iap_pay_messages_total",
            "Messages received from payment provider windows",
            [MetricLabels.STATUS.value],
        )

        # ====================================================================
        # Marketplace Metrics
        # ====================================================================
        self.marketplace_requests_total = Counter(
            "iap_marketplace_requests_total",
            "Requests made to the marketplace and verification authorities",
            [MetricLabels.OPERATION.value, MetricLabels.STATUS.value],
        )

    def record_purchase(self, outcome: str, duration_seconds: float) -> None:
        """Record a settled purchase session."""
        if not self.enabled:
            return
        self.purchases_total.labels(outcome=outcome).inc()
        self.purchase_duration_seconds.observe(duration_seconds)

    def record_receipt_verification(self, result: str) -> None:
        """Record a receipt verification result (``ok`` or a rejection kind)."""
        if not self.enabled:
            return
        self.receipt_verifications_total.labels(result=result).inc()

    def record_pay_message(self, status: str) -> None:
        """Record a message received from a provider window."""
        if not self.enabled:
            return
        self.pay_messages_total.labels(status=status).inc()

    def record_marketplace_request(self, operation: str, status: str) -> None:
        """Record an outbound HTTP call."""
        if not self.enabled:
            return
        self.marketplace_requests_total.labels(operation=operation, status=status).inc()


# Global metrics instance
metrics = PurchaseMetrics()
