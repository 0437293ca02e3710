#!/usr/bin/env python3
"""
Token Requestor - main entry point of the kopf-based controller.

The controller keeps ServiceAccount tokens in labelled Secrets fresh:
- watches Secrets labelled with the token-requestor purpose
- creates the named ServiceAccount in the target cluster
- requests short-lived tokens and writes them into the Secret
- renews them before they expire and cleans up on removal

Usage:
    token-requestor
    # Or with kopf directly:
    kopf run -m token_requestor.operator --all-namespaces

Environment Variables:
    TOKEN_REQUESTOR_NAMESPACES: Comma-separated list of namespaces to watch
    TARGET_KUBECONFIG: Kubeconfig of the target cluster (default: source cluster)
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
"""

import asyncio
import logging
import random
import sys

import kopf

# Importing the handler module registers its decorators with kopf
from token_requestor.handlers import secrets  # noqa: F401
from token_requestor.observability.health import HealthChecker
from token_requestor.observability.logging import setup_structured_logging
from token_requestor.observability.metrics import MetricsServer
from token_requestor.observability.tracing import setup_tracing, shutdown_tracing
from token_requestor.services.token_requestor_reconciler import (
    TokenRequestorReconciler,
)
from token_requestor.settings import settings as operator_settings
from token_requestor.utils.clock import RealClock, jitter
from token_requestor.utils.kubernetes import get_kubernetes_client, get_target_client
from token_requestor.utils.secret_manager import SecretManager
from token_requestor.utils.service_account_manager import ServiceAccountManager
from token_requestor.utils.token_issuer import TokenIssuer

LIVENESS_ENDPOINT = "http://0.0.0.0:8080/healthz"


def configure_logging() -> None:
    """Configure structured logging based on operator_settings."""
    setup_structured_logging(
        log_level=operator_settings.log_level.upper(),
        enable_json_formatting=operator_settings.json_logs,
        correlation_id_enabled=operator_settings.correlation_ids,
        log_health_probes=operator_settings.log_health_probes,
    )


def build_reconciler(source_client, target_client) -> TokenRequestorReconciler:
    """Wire the reconciler and its collaborators from operator_settings."""
    timeout = operator_settings.api_request_timeout_seconds
    return TokenRequestorReconciler(
        secrets=SecretManager(source_client, request_timeout=timeout),
        service_accounts=ServiceAccountManager(target_client, request_timeout=timeout),
        token_issuer=TokenIssuer(
            target_client,
            audiences=operator_settings.audiences,
            request_timeout=timeout,
        ),
        clock=RealClock(),
        jitter_func=jitter,
        jitter_factor=operator_settings.renew_jitter_factor,
    )


@kopf.on.startup()
async def startup_handler(settings: kopf.OperatorSettings, memo: kopf.Memo, **_) -> None:
    """
    Controller startup.

    Loads both cluster configurations and puts the reconciler into the memo
    before the first Secret is seen, then exposes metrics and health endpoints.
    """
    logging.info("Starting Token Requestor...")

    settings.watching.reconnect_backoff = 1.0
    settings.peering.name = operator_settings.operator_name
    settings.peering.priority = random.randint(0, 32767)

    watched_namespaces = operator_settings.watched_namespaces
    if watched_namespaces:
        logging.info(f"Watching namespaces: {', '.join(watched_namespaces)}")
    else:
        logging.info("Watching all namespaces (cluster-wide mode)")

    setup_tracing(
        enabled=operator_settings.tracing_enabled,
        endpoint=operator_settings.tracing_endpoint,
        service_name=operator_settings.tracing_service_name,
        sample_rate=operator_settings.tracing_sample_rate,
    )

    source_client = get_kubernetes_client()
    target_client = get_target_client(operator_settings.target_kubeconfig, source_client)

    memo.reconciler = build_reconciler(source_client, target_client)
    memo.reconcile_slots = asyncio.Semaphore(operator_settings.max_concurrent_reconciles)

    health_checker = HealthChecker(source_client, target_client)
    memo.health_checker = health_checker

    try:
        metrics_server = MetricsServer(
            port=operator_settings.metrics_port,
            host=operator_settings.metrics_host,
            health_checker=health_checker,
        )
        await metrics_server.start()
        memo.metrics_server = metrics_server
    except Exception as e:
        # Metrics are not essential for rotating tokens
        logging.error(f"Failed to start metrics server: {e}")
        logging.warning("Continuing without metrics server")


@kopf.on.cleanup()
async def cleanup_handler(memo: kopf.Memo, **_) -> None:
    """Stop the metrics server and tracing."""
    logging.info("Shutting down Token Requestor...")

    metrics_server = memo.get("metrics_server")
    if metrics_server is not None:
        try:
            await metrics_server.stop()
        except Exception as e:
            logging.error(f"Error stopping metrics server: {e}")

    shutdown_tracing()


@kopf.on.probe(id="healthz")
async def health_check(memo: kopf.Memo, **_) -> dict[str, str]:
    """Liveness probe: startup has wired the reconciler."""
    running = memo.get("reconciler") is not None
    return {
        "status": "healthy" if running else "unhealthy",
        "operator": operator_settings.operator_name,
    }


@kopf.on.probe(id="ready")
async def readiness_check(memo: kopf.Memo, **_) -> dict[str, str]:
    """Readiness probe: source and target API are reachable."""
    health_checker = memo.get("health_checker")
    if health_checker is None:
        return {"status": "not_ready", "operator": operator_settings.operator_name}

    results = await health_checker.check_all()
    overall = health_checker.get_overall_health(results)
    return {
        "status": "ready" if overall == "healthy" else "not_ready",
        "operator": operator_settings.operator_name,
    }


def main() -> None:
    """
    Main entry point for the controller.

    Configures logging and runs kopf for the configured namespace scope.
    """
    configure_logging()

    watched_namespaces = operator_settings.watched_namespaces

    try:
        if watched_namespaces:
            kopf.run(namespaces=watched_namespaces, liveness_endpoint=LIVENESS_ENDPOINT)
        else:
            kopf.run(clusterwide=True, liveness_endpoint=LIVENESS_ENDPOINT)
    except KeyboardInterrupt:
        logging.info("Received shutdown signal")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Controller failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
