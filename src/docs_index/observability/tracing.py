"""OpenTelemetry spans for index operations."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from docs_index.errors import DocsIndexError
from docs_index.observability.context import get_trace_context, update_span_id


if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.trace import Span, Tracer

logger = logging.getLogger(__name__)

INDEX_ATTRIBUTE = "index.name"

_tracer_holder: dict[str, Tracer | None] = {"tracer": None}


def init_tracing(
    service_name: str = "docs-index",
    resource_attributes: dict[str, str] | None = None,
    span_processors: list[SpanProcessor] | None = None,
) -> TracerProvider:
    """Install a tracer provider and route index spans through it.

    ``span_processors`` lets embedders attach exporters (or an in-memory
    exporter in tests) without this package depending on OTLP.
    """
    provider = TracerProvider(resource=Resource.create({"service.name": service_name, **(resource_attributes or {})}))
    for processor in span_processors or ():
        provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
    # Keep our own handle: the global provider can only be set once per process.
    _tracer_holder["tracer"] = provider.get_tracer("docs_index")
    logger.info("Tracing initialized for service: %s", service_name)
    return provider


def get_tracer() -> Tracer:
    if _tracer_holder["tracer"] is None:
        _tracer_holder["tracer"] = trace.get_tracer("docs_index")
    return _tracer_holder["tracer"]  # type: ignore[return-value]


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Open a span tagged with the bound index and mirror its id into the log context.

    Failures mark the span as errored; ``DocsIndexError`` codes are recorded
    as ``error.code``. The exception is always re-raised.
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name, kind=kind, record_exception=False, set_status_on_exception=False) as span:
        index_name = get_trace_context().get("index")
        if index_name:
            span.set_attribute(INDEX_ATTRIBUTE, index_name)
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)

        span_ctx = span.get_span_context()
        if span_ctx.is_valid:
            update_span_id(format(span_ctx.span_id, "016x"))

        try:
            yield span
        except Exception as exc:
            if isinstance(exc, DocsIndexError):
                span.set_attribute("error.code", exc.code)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise
