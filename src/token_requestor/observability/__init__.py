"""
Observability module for the token requestor.

This module provides structured logging, Prometheus metrics, health checks
and OpenTelemetry tracing.
"""

from .health import HealthChecker, HealthCheckResult
from .logging import OperatorLogger, setup_structured_logging
from .metrics import MetricsCollector, MetricsServer, metrics_collector
from .tracing import reconcile_span, setup_tracing, shutdown_tracing

__all__ = [
    "HealthChecker",
    "HealthCheckResult",
    "OperatorLogger",
    "setup_structured_logging",
    "MetricsCollector",
    "MetricsServer",
    "metrics_collector",
    "reconcile_span",
    "setup_tracing",
    "shutdown_tracing",
]
