"""Observability module: JSON logging, Prometheus/OTel metrics and tracing spans."""

from docs_index.observability.context import bind_index, get_trace_context, set_trace_context, trace_context
from docs_index.observability.logging import JsonFormatter, configure_logging
from docs_index.observability.metrics import (
    DOCUMENT_COUNT,
    INDEX_MUTATIONS,
    INDEX_VERSION,
    REBUILD_DURATION,
    SEARCH_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from docs_index.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "DOCUMENT_COUNT",
    "INDEX_MUTATIONS",
    "INDEX_VERSION",
    "REBUILD_DURATION",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "bind_index",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
