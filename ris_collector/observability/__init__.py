"""Observability layer - logging and metrics."""

from ris_collector.observability.logging import setup_logging
from ris_collector.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
