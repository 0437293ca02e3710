"""Centralized controller settings using pydantic-settings.

This module provides a single source of truth for all controller configuration
loaded from environment variables. Uses pydantic for automatic validation,
type coercion, and documentation.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Controller configuration loaded from environment variables.

    All settings have sensible defaults for production use. Override via
    environment variables as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    operator_name: str = Field(
        default="token-requestor",
        description="Name of the controller deployment",
        validation_alias="OPERATOR_NAME",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Log requests to the health and metrics endpoints",
    )

    # Namespace watching
    namespaces: str = Field(
        default="",
        validation_alias="TOKEN_REQUESTOR_NAMESPACES",
        description="Comma-separated list of source namespaces to watch (empty = all namespaces)",
    )

    # Target cluster
    target_kubeconfig: str = Field(
        default="",
        validation_alias="TARGET_KUBECONFIG",
        description="Path to the kubeconfig of the target cluster (empty = source cluster)",
    )
    token_audiences: str = Field(
        default="",
        validation_alias="TOKEN_AUDIENCES",
        description="Comma-separated audiences for issued tokens (empty = API server default)",
    )

    # Reconciliation behavior
    max_concurrent_reconciles: int = Field(
        default=10,
        ge=1,
        validation_alias="MAX_CONCURRENT_RECONCILES",
        description="Number of Secrets reconciled in parallel",
    )
    reconcile_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        validation_alias="RECONCILE_TIMEOUT_SECONDS",
        description="Upper bound for a single reconciliation before it is aborted",
    )
    api_request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="API_REQUEST_TIMEOUT_SECONDS",
        description="Request timeout passed to every Kubernetes API call",
    )
    renew_jitter_factor: float = Field(
        default=0.05,
        ge=0.0,
        lt=0.25,
        validation_alias="RENEW_JITTER_FACTOR",
        description="Maximum jitter factor applied to the token renewal interval",
    )
    requeue_base_delay_seconds: float = Field(
        default=0.005,
        gt=0,
        validation_alias="REQUEUE_BASE_DELAY_SECONDS",
        description="Initial delay of the per-Secret failure backoff",
    )
    requeue_max_delay_seconds: float = Field(
        default=1000.0,
        gt=0,
        validation_alias="REQUEUE_MAX_DELAY_SECONDS",
        description="Maximum delay of the per-Secret failure backoff",
    )

    # Metrics and observability
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port for Prometheus metrics endpoint",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Host address to bind metrics server",
    )
    tracing_enabled: bool = Field(
        default=False,
        validation_alias="TRACING_ENABLED",
        description="Export OpenTelemetry traces of reconciliations",
    )
    tracing_endpoint: str = Field(
        default="http://localhost:4317",
        validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="OTLP collector endpoint (gRPC)",
    )
    tracing_service_name: str = Field(
        default="token-requestor",
        validation_alias="OTEL_SERVICE_NAME",
        description="Service name reported in traces",
    )
    tracing_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        validation_alias="TRACING_SAMPLE_RATE",
        description="Fraction of reconciliations that are traced",
    )

    @property
    def watched_namespaces(self) -> list[str] | None:
        """Parse watched namespaces from comma-separated string.

        Returns:
            List of namespace names, or None to watch all namespaces
        """
        if self.namespaces:
            return [ns.strip() for ns in self.namespaces.split(",") if ns.strip()]
        return None

    @property
    def audiences(self) -> list[str]:
        """Parse token audiences from comma-separated string."""
        return [aud.strip() for aud in self.token_audiences.split(",") if aud.strip()]


# Global settings instance - initialized once at module import
settings = Settings()
