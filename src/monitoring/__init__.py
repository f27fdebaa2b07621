"""
Monitoring and metrics infrastructure for SongSplit.

This package provides:
- Ledger and HTTP metrics (counters, gauges, histograms)
- Structured logging with JSON output
- Request timing middleware for the Flask app

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("royalty_distributions_total")
    logger = get_logger(__name__)
    logger.info("Distributed", extra={"song_id": 1})
"""

from monitoring.logging import LoggingContext, configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics
from monitoring.middleware import setup_request_logging

__all__ = [
    "LoggingContext",
    "MetricsCollector",
    "metrics",
    "get_logger",
    "configure_logging",
    "setup_request_logging",
]
