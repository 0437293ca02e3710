"""
OpenTelemetry tracing for reconciliations.

One span is opened per reconciliation of a carrier Secret. Spans go to an
OTLP collector over gRPC when tracing is enabled; otherwise the global no-op
provider answers and ``reconcile_span`` costs nothing.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from ..constants import RESOURCE_TYPE_SECRET

logger = logging.getLogger(__name__)


class _TracingState:
    provider: TracerProvider | None = None
    configured: bool = False


_state = _TracingState()


def setup_tracing(
    enabled: bool = False,
    endpoint: str = "http://localhost:4317",
    service_name: str = "token-requestor",
    sample_rate: float = 1.0,
    insecure: bool = True,
    use_simple_processor: bool = False,
) -> TracerProvider | None:
    """
    Install the global tracer provider once per process.

    Args:
        enabled: When False only the no-op provider is used
        endpoint: gRPC address of the OTLP collector
        service_name: Value of the ``service.name`` resource attribute
        sample_rate: Fraction of root spans kept, between 0 and 1
        insecure: Connect to the collector without TLS
        use_simple_processor: Export synchronously instead of in batches

    Returns:
        The installed provider, or None when tracing stays off
    """
    if _state.configured:
        return _state.provider
    _state.configured = True

    if not enabled:
        logger.info("Tracing disabled")
        return None

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": service_name,
                "service.namespace": "token-requestor",
                "deployment.environment": "kubernetes",
            }
        ),
        sampler=ParentBased(root=TraceIdRatioBased(sample_rate)),
    )
    exporter = OTLPSpanExporter(endpoint=endpoint, insecure=insecure)
    processor_class = SimpleSpanProcessor if use_simple_processor else BatchSpanProcessor
    provider.add_span_processor(processor_class(exporter))
    trace.set_tracer_provider(provider)

    _state.provider = provider
    logger.info(
        f"Exporting traces to {endpoint} as {service_name} "
        f"(sample rate {sample_rate})"
    )
    return provider


def shutdown_tracing() -> None:
    """Flush pending spans and allow a later setup."""
    if _state.provider is not None:
        _state.provider.shutdown()
        _state.provider = None
    _state.configured = False


def is_tracing_enabled() -> bool:
    return _state.provider is not None


def get_tracer(name: str = __name__) -> Tracer:
    return trace.get_tracer(name)


@contextmanager
def reconcile_span(
    namespace: str, name: str, resource_type: str = RESOURCE_TYPE_SECRET
) -> Iterator[Span]:
    """Span around one reconciliation; a raised exception marks it failed."""
    with get_tracer(__name__).start_as_current_span(
        f"reconcile_{resource_type}",
        attributes={
            "k8s.namespace": namespace,
            "k8s.resource.name": name,
            "k8s.resource.type": resource_type,
        },
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
        span.set_status(Status(StatusCode.OK))
