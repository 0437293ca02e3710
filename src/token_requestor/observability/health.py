"""
Reachability checks for the two Kubernetes API servers.

Secrets are read from the source cluster while ServiceAccounts and tokens
live in the target cluster, so readiness needs both. Both are reported even
when they are the same cluster.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    name: str
    status: str  # healthy, unhealthy or unknown
    message: str
    details: dict[str, Any] | None = None
    duration: float = 0.0
    timestamp: float = 0.0


class HealthChecker:
    """Calls ``VersionApi.get_code`` against the source and target clusters."""

    def __init__(
        self,
        source_client: client.ApiClient,
        target_client: client.ApiClient,
        request_timeout: float = 5.0,
    ):
        self.source_client = source_client
        self.target_client = target_client
        self.request_timeout = request_timeout

    async def check_all(self) -> dict[str, HealthCheckResult]:
        """Probe both clusters concurrently, keyed by check name."""
        results = await asyncio.gather(
            self._check_api("source_api", self.source_client),
            self._check_api("target_api", self.target_client),
        )
        return {result.name: result for result in results}

    async def _check_api(
        self, name: str, api_client: client.ApiClient
    ) -> HealthCheckResult:
        started = time.monotonic()
        status, details = "healthy", {}
        try:
            info = await asyncio.to_thread(
                client.VersionApi(api_client).get_code,
                _request_timeout=self.request_timeout,
            )
            message = "API server answered"
            details["git_version"] = getattr(info, "git_version", "unknown")
        except ApiException as e:
            status = "unhealthy"
            message = f"API server rejected version call: {e.reason}"
            details["status_code"] = e.status
        except Exception as e:
            logger.debug(f"{name} unreachable: {e}")
            status = "unhealthy"
            message = f"API server unreachable: {e}"

        elapsed = time.monotonic() - started
        details["response_time_ms"] = round(elapsed * 1000, 2)
        return HealthCheckResult(
            name=name,
            status=status,
            message=message,
            details=details,
            duration=elapsed,
            timestamp=time.time(),
        )

    def get_overall_health(self, results: dict[str, HealthCheckResult]) -> str:
        """Worst status wins; no results at all is unknown."""
        statuses = {result.status for result in results.values()}
        if not statuses:
            return "unknown"
        if "unhealthy" in statuses:
            return "unhealthy"
        if "unknown" in statuses:
            return "unknown"
        return "healthy"

    def to_dict(self, results: dict[str, HealthCheckResult]) -> dict[str, Any]:
        return {
            "status": self.get_overall_health(results),
            "timestamp": time.time(),
            "checks": {name: asdict(result) for name, result in results.items()},
        }
