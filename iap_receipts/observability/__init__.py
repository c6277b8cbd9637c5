"""
Observability module - Logging and Metrics.
"""

from iap_receipts.observability.logging import get_logger, log_context, setup_logging
from iap_receipts.observability.metrics import metrics

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
]
