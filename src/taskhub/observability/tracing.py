"""OpenTelemetry tracing for activity execution.

Activity work items may carry the W3C trace context (``traceparent`` and
optional ``tracestate``) of the orchestration that scheduled them. The
activity runner continues that trace with one span per invocation::

    name        activity:<activity name>
    kind        INTERNAL
    attributes  durabletask.task.instance_id
                durabletask.task.id
                durabletask.activity.name
    status      OK, or ERROR with the recorded exception

When the work item has no trace context, or an empty ``traceparent``, the
span is started from the ambient context of the runner thread instead.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from types import MappingProxyType

from opentelemetry import context, trace
from opentelemetry.context import Context
from opentelemetry.trace import SpanKind, Status, StatusCode, Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from taskhub.core.models import ActivityWorkItem, TraceContext
from taskhub.core.settings import WorkerSettings
from taskhub.framework.logging import get_logger

log = get_logger(__name__)

TRACER_NAME = "taskhub"

ATTR_INSTANCE_ID = "durabletask.task.instance_id"
ATTR_TASK_ID = "durabletask.task.id"
ATTR_ACTIVITY_NAME = "durabletask.activity.name"

_propagator = TraceContextTextMapPropagator()


def configure_tracing(settings: WorkerSettings, set_global: bool = True) -> Tracer | None:
    """Install a tracer provider exporting over OTLP gRPC.

    Returns:
        A tracer for the runners, or None when tracing is disabled.
    """
    if not settings.tracing_enabled:
        return None

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    resource = Resource.create({"service.name": settings.service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    if set_global:
        trace.set_tracer_provider(provider)
    log.info("tracing.configured", otlp_endpoint=settings.otlp_endpoint, service_name=settings.service_name)
    return provider.get_tracer(TRACER_NAME)


def extract_parent_context(trace_context: TraceContext | None) -> Context:
    """Build the parent context for an activity span.

    The carrier is a read-only view over exactly ``traceparent`` and
    ``tracestate``; nothing else is propagated.
    """
    if trace_context is None or not trace_context.trace_parent:
        return context.get_current()

    carrier = {"traceparent": trace_context.trace_parent}
    if trace_context.trace_state:
        carrier["tracestate"] = trace_context.trace_state
    return _propagator.extract(MappingProxyType(carrier))


@contextmanager
def activity_span(tracer: Tracer, work_item: ActivityWorkItem) -> Iterator[trace.Span]:
    """Run the enclosed block inside the activity's span.

    An exception escaping the block marks the span ERROR and is re-raised;
    otherwise the span is marked OK. The span is always ended.
    """
    span = tracer.start_span(
        f"activity:{work_item.name}",
        context=extract_parent_context(work_item.parent_trace_context),
        kind=SpanKind.INTERNAL,
        attributes={
            ATTR_INSTANCE_ID: work_item.instance_id,
            ATTR_TASK_ID: work_item.task_id,
            ATTR_ACTIVITY_NAME: work_item.name,
        },
    )
    try:
        with trace.use_span(span, record_exception=False, set_status_on_exception=False):
            yield span
    except Exception as exc:
        log.warning("activity.span_failed", activity=work_item.name, error=str(exc))
        span.record_exception(exc)
        span.set_status(Status(StatusCode.ERROR, str(exc)))
        raise
    else:
        span.set_status(Status(StatusCode.OK))
    finally:
        span.end()
