"""
Metrics Collection with Prometheus.

Exposes receipt verification metrics for monitoring.
"""

from prometheus_client import Counter, Histogram, Info

from iap_receipts.config import settings


class ReceiptMetrics:
    """
    Centralized metrics for receipt verification.

    Covers:
    - Verifications (rate by environment and outcome)
    - Apple round trip duration
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""
        self.enabled = settings.metrics_enabled

        self.service_info = Info(
            "iap_receipts_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.service_version,
                "service_name": settings.service_name,
            }
        )

        self.verifications_total = Counter(
            "iap_receipts_verifications_total",
            "Total receipt verifications",
            ["environment", "outcome"],
        )

        self.verification_duration_seconds = Histogram(
            "iap_receipts_verification_duration_seconds",
            "Apple verifyReceipt round trip duration in seconds",
            ["environment"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

    def record_verification(
        self, environment: str, outcome: str, duration: float | None = None
    ) -> None:
        """
        Record one verify call.

        Args:
            environment: "production", "sandbox", "override" or "mock"
            outcome: "success" or the name of the raised error class
            duration: Round trip time, None when no request was sent
        """
        if not self.enabled:
            return
        self.verifications_total.labels(environment=environment, outcome=outcome).inc()
        if duration is not None:
            self.verification_duration_seconds.labels(environment=environment).observe(duration)


# Global metrics instance
metrics = ReceiptMetrics()
