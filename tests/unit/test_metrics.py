"""
Unit tests for the metrics collector and the MetricsServer HTTP endpoints.

Uses ``aiohttp.test_utils`` to drive the server's aiohttp application.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from token_requestor.errors import ValidationError
from token_requestor.observability.health import HealthChecker, HealthCheckResult
from token_requestor.observability.metrics import (
    MetricsServer,
    get_metrics_registry,
    metrics_collector,
)


def sample(name: str, labels: dict[str, str] | None = None) -> float:
    return get_metrics_registry().get_sample_value(name, labels or {}) or 0.0


def checker_with(status: str) -> HealthChecker:
    """Health checker whose source cluster reports the given status."""
    results = {
        "source_api": HealthCheckResult(name="source_api", status=status, message="x"),
        "target_api": HealthCheckResult(name="target_api", status="healthy", message="x"),
    }
    checker = HealthChecker(MagicMock(), MagicMock())
    checker.check_all = AsyncMock(return_value=results)
    return checker


@pytest.fixture
async def client_factory():
    clients = []

    async def factory(server: MetricsServer) -> TestClient:
        cli = TestClient(TestServer(server.app))
        await cli.start_server()
        clients.append(cli)
        return cli

    yield factory
    for cli in clients:
        await cli.close()


class TestMetricsCollector:
    @pytest.mark.asyncio
    async def test_track_successful_reconciliation(self):
        labels = {"resource_type": "secret", "namespace": "metrics-ok", "result": "success"}
        before = sample("token_requestor_reconciliation_total", labels)

        async with metrics_collector.track_reconciliation("secret", "metrics-ok"):
            pass

        assert sample("token_requestor_reconciliation_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_track_failed_reconciliation(self):
        error_labels = {
            "resource_type": "secret",
            "namespace": "metrics-err",
            "error_type": "ValidationError",
            "retryable": "false",
        }
        before = sample("token_requestor_reconciliation_errors_total", error_labels)

        with pytest.raises(ValidationError):
            async with metrics_collector.track_reconciliation("secret", "metrics-err"):
                raise ValidationError("invalid duration 'x'")

        assert sample("token_requestor_reconciliation_errors_total", error_labels) == before + 1
        assert (
            sample(
                "token_requestor_reconciliation_total",
                {"resource_type": "secret", "namespace": "metrics-err", "result": "error"},
            )
            >= 1
        )

    def test_token_issued_and_forgotten(self):
        renew_at = datetime(2021, 10, 4, 19, 36, tzinfo=UTC)
        labels = {"namespace": "metrics-ns", "secret_name": "kube-scheduler"}

        metrics_collector.record_token_issued(
            "metrics-ns", "kube-scheduler", "kubeconfig", renew_at
        )

        assert sample("token_requestor_token_renew_timestamp", labels) == renew_at.timestamp()
        assert (
            sample(
                "token_requestor_tokens_issued_total",
                {"namespace": "metrics-ns", "credential_format": "kubeconfig"},
            )
            >= 1
        )

        metrics_collector.forget_secret("metrics-ns", "kube-scheduler")
        assert get_metrics_registry().get_sample_value(
            "token_requestor_token_renew_timestamp", labels
        ) is None

        # Forgetting twice is harmless
        metrics_collector.forget_secret("metrics-ns", "kube-scheduler")

    def test_retry_counter(self):
        before = sample("token_requestor_reconcile_retries_total")

        metrics_collector.record_retry()

        assert sample("token_requestor_reconcile_retries_total") == before + 1


class TestMetricsEndpoint:
    @pytest.mark.asyncio
    async def test_metrics_exposes_controller_metrics(self, client_factory):
        metrics_collector.record_service_account_operation("create")
        cli = await client_factory(MetricsServer(port=0))

        resp = await cli.get("/metrics")

        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("text/plain")
        body = await resp.text()
        assert "token_requestor_service_account_operations_total" in body

    @pytest.mark.asyncio
    async def test_metrics_error_returns_500(self, client_factory):
        cli = await client_factory(MetricsServer(port=0))

        with patch(
            "token_requestor.observability.metrics.generate_latest",
            side_effect=RuntimeError("boom"),
        ):
            resp = await cli.get("/metrics")

        assert resp.status == 500
        assert "RuntimeError" in await resp.text()


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_healthz(self, client_factory):
        cli = await client_factory(MetricsServer(port=0))

        resp = await cli.get("/healthz")

        assert resp.status == 200
        assert await resp.text() == "ok"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/health", "/ready"])
    async def test_healthy(self, client_factory, path):
        cli = await client_factory(MetricsServer(port=0, health_checker=checker_with("healthy")))

        resp = await cli.get(path)

        assert resp.status == 200
        data = await resp.json()
        assert data["status"] == "healthy"
        assert set(data["checks"]) == {"source_api", "target_api"}

    @pytest.mark.asyncio
    async def test_unreachable_cluster(self, client_factory):
        cli = await client_factory(
            MetricsServer(port=0, health_checker=checker_with("unhealthy"))
        )

        resp = await cli.get("/ready")

        assert resp.status == 503
        assert (await resp.json())["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_without_checker(self, client_factory):
        cli = await client_factory(MetricsServer(port=0))

        resp = await cli.get("/health")

        assert resp.status == 503
        assert (await resp.json())["status"] == "unknown"
