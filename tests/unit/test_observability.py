"""Unit tests for observability module."""

import io
import json
import logging
import sys

from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import REGISTRY
import pytest

from docs_index import Document, IndexManager, IndexSettings, NotFoundError, configure_observability
from docs_index.observability import (
    SEARCH_LATENCY,
    JsonFormatter,
    bind_index,
    configure_logging,
    create_span,
    get_metrics,
    get_metrics_content_type,
    get_trace_context,
    init_tracing,
    set_trace_context,
    trace_context,
    track_latency,
)
from docs_index.observability.metrics import MetricBridge


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)
    logging.getLogger("docs_index.search").setLevel(logging.NOTSET)


@pytest.fixture
def span_exporter():
    exporter = InMemorySpanExporter()
    init_tracing(service_name="docs-index-test", span_processors=[SimpleSpanProcessor(exporter)])
    yield exporter
    exporter.clear()


@pytest.fixture
def clear_trace_context():
    token = trace_context.set(None)
    yield
    trace_context.reset(token)


def _record(message: str, *args, name: str = "docs_index.index_manager", **extra) -> logging.LogRecord:
    record = logging.LogRecord(name, logging.INFO, __file__, 10, message, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
@pytest.mark.usefixtures("clear_trace_context")
class TestJsonFormatter:
    """Tests for structured JSON logging."""

    def test_format_includes_trace_context(self):
        set_trace_context("a" * 32, "b" * 16, index="main")

        payload = json.loads(JsonFormatter().format(_record("indexed %s", "doc-1")))

        assert payload["message"] == "indexed doc-1"
        assert payload["level"] == "INFO"
        assert payload["trace_id"] == "a" * 32
        assert payload["span_id"] == "b" * 16
        assert payload["index"] == "main"
        assert payload["component"] == "index_manager"

    def test_extra_fields_are_included_and_redacted(self):
        record = _record("hello", document_id="x", token="secret-value", tags={"b", "a"})

        payload = json.loads(JsonFormatter().format(record))

        assert payload["document_id"] == "x"
        assert payload["token"] == "[REDACTED]"
        assert payload["tags"] == ["a", "b"]

    def test_long_messages_are_truncated(self):
        payload = json.loads(JsonFormatter().format(_record("x" * 5000)))
        assert len(payload["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3

    def test_document_bodies_are_logged_by_size(self):
        payload = json.loads(JsonFormatter().format(_record("indexed", content="x" * 1234)))
        assert payload["content"] == "<1234 chars>"

    def test_index_errors_are_flattened(self):
        try:
            raise NotFoundError("missing", details={"document_id": "a"})
        except NotFoundError:
            record = logging.LogRecord("docs_index.x", logging.ERROR, __file__, 1, "lookup failed", (), sys.exc_info())

        payload = json.loads(JsonFormatter(service_name="docs-index").format(record))

        assert payload["service"] == "docs-index"
        assert payload["error_code"] == "NOT_FOUND"
        assert payload["error_details"] == {"document_id": "a"}
        assert "NotFoundError" in payload["exception"]

    def test_bind_index_tags_records_and_restores(self):
        set_trace_context("c" * 32, "d" * 16)

        with bind_index("docs"):
            inside = json.loads(JsonFormatter().format(_record("inside")))
        outside = json.loads(JsonFormatter().format(_record("outside")))

        assert inside["index"] == "docs"
        assert inside["trace_id"] == "c" * 32
        assert "index" not in outside

    def test_trace_context_is_created_on_demand(self):
        ctx = get_trace_context()
        assert len(ctx["trace_id"]) == 32
        assert len(ctx["span_id"]) == 16
        assert get_trace_context() is ctx


@pytest.mark.unit
class TestConfigureLogging:
    def test_json_output_installs_json_formatter(self, restore_root_logger):
        configure_logging(level="warning", json_output=True, logger_levels={"docs_index.search": "debug"})

        assert restore_root_logger.level == logging.WARNING
        assert isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("docs_index.search").level == logging.DEBUG

    def test_records_are_written_to_stream(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging(level="info", json_output=True, service_name="docs-index", stream=stream)

        logging.getLogger("docs_index.index_manager").info("indexed %s", "doc-1", extra={"document_id": "doc-1"})

        payload = json.loads(stream.getvalue().splitlines()[-1])
        assert payload["message"] == "indexed doc-1"
        assert payload["document_id"] == "doc-1"
        assert payload["service"] == "docs-index"

    def test_configure_observability_applies_settings(self, restore_root_logger):
        applied = configure_observability(IndexSettings(log_level="debug", log_json=False))

        assert applied.log_level == "debug"
        assert restore_root_logger.level == logging.DEBUG
        (handler,) = restore_root_logger.handlers
        assert not isinstance(handler.formatter, JsonFormatter)


@pytest.mark.unit
class TestMetrics:
    def test_track_latency_observes_histogram(self):
        labels = {"index": "latency-test"}
        before = REGISTRY.get_sample_value("docs_index_search_latency_seconds_count", labels) or 0.0

        with track_latency(SEARCH_LATENCY, **labels):
            pass

        assert REGISTRY.get_sample_value("docs_index_search_latency_seconds_count", labels) == before + 1

    def test_index_manager_records_mutations_and_gauges(self):
        manager = IndexManager(IndexSettings(), name="metrics-test")
        manager.add_document(Document(id="a", content="alpha"))
        manager.add_document(Document(id="b", content="beta"))
        manager.remove_document("a")

        def sample(name: str, **labels: str) -> float | None:
            return REGISTRY.get_sample_value(name, {"index": "metrics-test", **labels})

        assert sample("docs_index_mutations_total", operation="add", status="ok") == 2
        assert sample("docs_index_mutations_total", operation="remove", status="ok") == 1
        assert sample("docs_index_document_count") == 1
        assert sample("docs_index_version") == 4

    def test_unknown_metric_kind_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown metric kind"):
            MetricBridge("summary", "docs_index_unused", "unused", ("index",))

    def test_exposition_output(self):
        assert b"docs_index_mutations_total" in get_metrics()
        assert get_metrics_content_type().startswith("text/plain")


@pytest.mark.unit
class TestTracing:
    def test_create_span_records_attributes(self, span_exporter):
        with create_span("unit.span", attributes={"index.name": "t"}):
            pass

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "unit.span"
        assert span.attributes["index.name"] == "t"

    def test_create_span_marks_errors(self, span_exporter):
        with pytest.raises(ValueError), create_span("unit.failing"):
            raise ValueError("bad input")

        (span,) = span_exporter.get_finished_spans()
        assert span.status.status_code is StatusCode.ERROR
        assert any(event.name == "exception" for event in span.events)

    def test_bound_index_and_error_code_become_attributes(self, span_exporter):
        with pytest.raises(NotFoundError), bind_index("docs"), create_span("unit.lookup"):
            raise NotFoundError("missing")

        (span,) = span_exporter.get_finished_spans()
        assert span.attributes["index.name"] == "docs"
        assert span.attributes["error.code"] == "NOT_FOUND"

    def test_search_and_rebuild_emit_spans(self, span_exporter):
        manager = IndexManager(IndexSettings(), name="traced")
        manager.add_document(Document(id="a", content="alpha"))
        manager.search("alpha", 5)
        manager.rebuild()

        names = [span.name for span in span_exporter.get_finished_spans()]
        assert names == ["index.search", "index.rebuild"]
