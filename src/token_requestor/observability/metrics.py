"""
Prometheus metrics and the HTTP endpoint serving them.

All series live in a registry owned by this module, so the process default
registry (and whatever other libraries put in it) is never exported.
``MetricsServer`` also answers the probe paths used by kubelet.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING

from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
    json_response,
)
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

if TYPE_CHECKING:
    from .health import HealthChecker

logger = logging.getLogger(__name__)

_REGISTRY = CollectorRegistry()

RECONCILIATION_TOTAL = Counter(
    "token_requestor_reconciliation_total",
    "Reconciliations of carrier Secrets by outcome",
    ["resource_type", "namespace", "result"],
    registry=_REGISTRY,
)

RECONCILIATION_DURATION = Histogram(
    "token_requestor_reconciliation_duration_seconds",
    "Wall time of one reconciliation",
    ["resource_type", "namespace"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=_REGISTRY,
)

RECONCILIATION_ERRORS = Counter(
    "token_requestor_reconciliation_errors_total",
    "Failed reconciliations by exception type",
    ["resource_type", "namespace", "error_type", "retryable"],
    registry=_REGISTRY,
)

TOKENS_ISSUED_TOTAL = Counter(
    "token_requestor_tokens_issued_total",
    "Tokens requested from the target cluster and written to a Secret",
    ["namespace", "credential_format"],
    registry=_REGISTRY,
)

TOKEN_RENEW_TIMESTAMP = Gauge(
    "token_requestor_token_renew_timestamp",
    "Unix time at which the token of a Secret is due for renewal",
    ["namespace", "secret_name"],
    registry=_REGISTRY,
)

SERVICE_ACCOUNT_OPERATIONS_TOTAL = Counter(
    "token_requestor_service_account_operations_total",
    "Writes to ServiceAccounts in the target cluster",
    ["operation"],
    registry=_REGISTRY,
)

RECONCILE_RETRIES_TOTAL = Counter(
    "token_requestor_reconcile_retries_total",
    "Reconciliations scheduled again with backoff after a failure",
    registry=_REGISTRY,
)


def get_metrics_registry() -> CollectorRegistry:
    return _REGISTRY


class MetricsCollector:
    """Recording helpers used by the reconciler, the handlers and the managers."""

    def __init__(self):
        self.registry = get_metrics_registry()

    @asynccontextmanager
    async def track_reconciliation(self, resource_type: str, namespace: str):
        """Count and time the wrapped run; failures are counted by type."""
        started = time.monotonic()
        result = "error"
        try:
            yield
            result = "success"
        except Exception as e:
            RECONCILIATION_ERRORS.labels(
                resource_type=resource_type,
                namespace=namespace,
                error_type=type(e).__name__,
                retryable=str(bool(getattr(e, "retryable", False))).lower(),
            ).inc()
            raise
        finally:
            RECONCILIATION_TOTAL.labels(
                resource_type=resource_type, namespace=namespace, result=result
            ).inc()
            RECONCILIATION_DURATION.labels(
                resource_type=resource_type, namespace=namespace
            ).observe(time.monotonic() - started)

    def record_token_issued(
        self, namespace: str, secret_name: str, credential_format: str, renew_at: datetime
    ) -> None:
        TOKENS_ISSUED_TOTAL.labels(
            namespace=namespace, credential_format=credential_format
        ).inc()
        TOKEN_RENEW_TIMESTAMP.labels(namespace=namespace, secret_name=secret_name).set(
            renew_at.timestamp()
        )

    def forget_secret(self, namespace: str, secret_name: str) -> None:
        """Drop the renewal series of a Secret that is no longer managed."""
        try:
            TOKEN_RENEW_TIMESTAMP.remove(namespace, secret_name)
        except KeyError:
            pass

    def record_service_account_operation(self, operation: str) -> None:
        SERVICE_ACCOUNT_OPERATIONS_TOTAL.labels(operation=operation).inc()

    def record_retry(self) -> None:
        RECONCILE_RETRIES_TOTAL.inc()


class MetricsServer:
    """
    aiohttp application serving the controller's HTTP endpoints.

    - ``/metrics``: Prometheus exposition of this module's registry
    - ``/health`` and ``/ready``: both clusters reachable, 503 otherwise
    - ``/healthz``: the event loop answers
    """

    def __init__(
        self,
        port: int = 8081,
        host: str = "0.0.0.0",
        health_checker: "HealthChecker | None" = None,
    ):
        self.port = port
        self.host = host
        self.health_checker = health_checker
        self.runner: AppRunner | None = None

        self.app = Application()
        self.app.router.add_get("/metrics", self._metrics_handler)
        self.app.router.add_get("/health", self._clusters_handler)
        self.app.router.add_get("/ready", self._clusters_handler)
        self.app.router.add_get("/healthz", self._alive_handler)

    async def _metrics_handler(self, request: Request) -> Response:
        try:
            body = generate_latest(get_metrics_registry())
        except Exception as e:
            logger.error(f"Rendering metrics failed: {e}")
            return Response(text=f"metrics unavailable: {type(e).__name__}", status=500)
        return Response(body=body, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def _clusters_handler(self, request: Request) -> Response:
        if self.health_checker is None:
            report = {"status": "unknown", "timestamp": time.time(), "checks": {}}
        else:
            results = await self.health_checker.check_all()
            report = self.health_checker.to_dict(results)
        return json_response(report, status=200 if report["status"] == "healthy" else 503)

    async def _alive_handler(self, request: Request) -> Response:
        return Response(text="ok")

    async def start(self) -> None:
        self.runner = AppRunner(self.app)
        await self.runner.setup()
        await TCPSite(self.runner, self.host, self.port).start()
        logger.info(f"Serving metrics and probes on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            logger.info("Metrics server stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


metrics_collector = MetricsCollector()
