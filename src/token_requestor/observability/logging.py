"""
Structured logging for the token requestor.

Every reconciliation gets a short correlation ID and remembers the Secret it
works on, both in context variables. A filter copies them onto each record,
so renewal daemons running side by side produce lines that can be told apart
without passing a logger around. With JSON output enabled, each record
becomes one document carrying these values plus a fixed set of extra
fields.

Bearer tokens are never handed to a logger.
"""

import json
import logging
import re
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

# Per-task context, set when a reconciliation starts
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
reconcile_key: ContextVar[str] = ContextVar("reconcile_key", default="")

# Endpoints scraped by kubelet and Prometheus
HEALTH_PROBE_PATHS = frozenset({"/healthz", "/health", "/ready", "/metrics"})

_REQUEST_PATH = re.compile(r'"(?:GET|HEAD) (/[^\s?"]*)')

# Extra record attributes copied into the JSON document
STRUCTURED_FIELDS = (
    "secret",
    "resource_type",
    "resource_name",
    "namespace",
    "operation",
    "duration",
    "error_type",
    "service_account",
    "requeue_after",
    "renew_timestamp",
    "credential_format",
    "http_status",
)

# Libraries that only get to speak when something is wrong
_QUIET_LOGGERS = (
    "kopf",
    "kubernetes",
    "urllib3",
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web",
)


class HealthProbeFilter(logging.Filter):
    """Drop access log lines of probe and scrape requests."""

    def __init__(self, suppress_health_logs: bool = True):
        """
        Initialize the filter.

        Args:
            suppress_health_logs: Drop probe lines; False lets everything through
        """
        super().__init__()
        self.suppress_health_logs = suppress_health_logs

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Decide whether an access log line is emitted.

        Args:
            record: Log record to check

        Returns:
            False for a GET or HEAD of a probe path, True otherwise
        """
        if not self.suppress_health_logs:
            return True
        match = _REQUEST_PATH.search(record.getMessage())
        return match is None or match.group(1) not in HEALTH_PROBE_PATHS


class CorrelationIDFilter(logging.Filter):
    """Attach the correlation ID and the Secret being reconciled."""

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Attach the context of the current task to the record.

        A correlation ID is generated when none is set yet.

        Args:
            record: Log record to annotate

        Returns:
            Always True
        """
        current = correlation_id.get()
        if not current:
            current = set_correlation_id(generate_correlation_id())
        record.correlation_id = current

        key = reconcile_key.get()
        if key and not hasattr(record, "secret"):
            record.secret = key
        return True


class StructuredFormatter(logging.Formatter):
    """Render a record as a single-line JSON document."""

    def format(self, record: logging.LogRecord) -> str:
        """
        Build the JSON document of a record.

        Args:
            record: Log record to format

        Returns:
            The document serialized on a single line
        """
        document = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }
        document.update(
            (field, getattr(record, field))
            for field in STRUCTURED_FIELDS
            if hasattr(record, field)
        )
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)

        return json.dumps(document, default=str)


def generate_correlation_id() -> str:
    """Return a new 8 character correlation ID."""
    return uuid.uuid4().hex[:8]


def set_correlation_id(corr_id: str) -> str:
    """
    Set the correlation ID of the current task.

    Args:
        corr_id: Correlation ID to use

    Returns:
        The same correlation ID
    """
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    return correlation_id.get()


def _build_formatter(json_output: bool, with_correlation_id: bool) -> logging.Formatter:
    if json_output:
        return StructuredFormatter()
    if with_correlation_id:
        return logging.Formatter(
            "%(asctime)s [%(correlation_id)s] %(levelname)s %(name)s: %(message)s"
        )
    return logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
    log_health_probes: bool = False,
) -> None:
    """
    Replace the root handlers with a single configured stream handler.

    Args:
        log_level: Name of the root level (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Emit one JSON document per line
        correlation_id_enabled: Tag records with the correlation ID
        log_health_probes: Keep access log lines of probe requests
    """
    handler = logging.StreamHandler()
    handler.setFormatter(_build_formatter(enable_json_formatting, correlation_id_enabled))
    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())
    if not log_health_probes:
        handler.addFilter(HealthProbeFilter())

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class OperatorLogger:
    """
    Logger for the reconciliation lifecycle.

    Keyword arguments of the plain level methods become structured fields.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def log_reconciliation_start(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        correlation_id: str | None = None,
    ) -> str:
        """
        Open the logging context of one reconciliation.

        Args:
            resource_type: Kind of the reconciled object
            resource_name: Name of the reconciled object
            namespace: Namespace of the reconciled object
            correlation_id: Correlation ID to reuse

        Returns:
            The correlation ID of the run, generated unless given
        """
        corr_id = set_correlation_id(correlation_id or generate_correlation_id())
        reconcile_key.set(f"{namespace}/{resource_name}")
        self._emit(
            logging.DEBUG,
            f"Reconciling {resource_type} {namespace}/{resource_name}",
            "reconcile_start",
            resource_type,
            resource_name,
            namespace,
        )
        return corr_id

    def log_reconciliation_success(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        duration: float,
        requeue_after: float | None = None,
    ) -> None:
        """
        Log a finished run.

        Args:
            duration: Wall time of the run in seconds
            requeue_after: Seconds until the next scheduled run, if any
        """
        self._emit(
            logging.INFO,
            f"Reconciled {resource_type} {namespace}/{resource_name}",
            "reconcile_success",
            resource_type,
            resource_name,
            namespace,
            duration=duration,
            requeue_after=requeue_after,
        )

    def log_reconciliation_error(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        error: Exception,
        duration: float,
        exc_info: bool = False,
    ) -> None:
        """Log a failed run; the traceback is only added on request."""
        self._emit(
            logging.ERROR,
            f"Reconciling {resource_type} {namespace}/{resource_name} failed: {error}",
            "reconcile_error",
            resource_type,
            resource_name,
            namespace,
            exc_info=exc_info,
            error_type=type(error).__name__,
            duration=duration,
        )

    def _emit(
        self,
        level: int,
        message: str,
        operation: str,
        resource_type: str,
        resource_name: str,
        namespace: str,
        exc_info: bool = False,
        **fields,
    ) -> None:
        fields.update(
            operation=operation,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )
        self.logger.log(level, message, exc_info=exc_info, extra=fields)

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, extra=kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        self.logger.error(message, exc_info=exc_info, extra=kwargs)
