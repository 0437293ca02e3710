"""Tests for controller wiring and probes."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import kopf
import pytest

from token_requestor import operator
from token_requestor.observability.health import HealthCheckResult
from token_requestor.services.token_requestor_reconciler import (
    TokenRequestorReconciler,
)


class TestBuildReconciler:
    def test_wires_source_and_target_clients(self):
        source_client, target_client = MagicMock(), MagicMock()

        reconciler = operator.build_reconciler(source_client, target_client)

        assert isinstance(reconciler, TokenRequestorReconciler)
        assert reconciler.secrets.k8s_client is source_client
        assert reconciler.service_accounts.k8s_client is target_client
        assert reconciler.token_issuer.k8s_client is target_client


class TestProbes:
    @pytest.mark.asyncio
    async def test_liveness_before_startup(self):
        result = await operator.health_check(memo=kopf.Memo())
        assert result["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_liveness_after_startup(self):
        result = await operator.health_check(memo=kopf.Memo(reconciler=MagicMock()))

        assert result["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_readiness(self):
        checker = MagicMock()
        checker.check_all = AsyncMock(
            return_value={"source_api": HealthCheckResult("source_api", "healthy", "ok")}
        )
        checker.get_overall_health.return_value = "healthy"

        result = await operator.readiness_check(memo=kopf.Memo(health_checker=checker))

        assert result["status"] == "ready"

    @pytest.mark.asyncio
    async def test_not_ready_without_checker(self):
        result = await operator.readiness_check(memo=kopf.Memo())
        assert result["status"] == "not_ready"


class TestStartup:
    @pytest.mark.asyncio
    async def test_memo_carries_reconciler_and_slots(self):
        metrics_server = MagicMock()
        metrics_server.start = AsyncMock()
        memo = kopf.Memo()

        with (
            patch.object(operator, "get_kubernetes_client", return_value=MagicMock()),
            patch.object(operator, "get_target_client", return_value=MagicMock()),
            patch.object(operator, "setup_tracing"),
            patch.object(operator, "MetricsServer", return_value=metrics_server),
        ):
            await operator.startup_handler(settings=kopf.OperatorSettings(), memo=memo)

        assert isinstance(memo.reconciler, TokenRequestorReconciler)
        assert isinstance(memo.reconcile_slots, asyncio.Semaphore)
        assert memo.metrics_server is metrics_server
        metrics_server.start.assert_awaited_once()
