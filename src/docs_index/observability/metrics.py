"""Index metrics: Prometheus collectors mirrored to OpenTelemetry instruments.

Each ``MetricBridge`` owns one Prometheus collector (scraped through
``get_metrics``) and lazily creates the matching OTel instrument on the
process meter, so both pipelines see the same observations.
"""

from __future__ import annotations

from contextlib import contextmanager
import threading
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator, Sequence


_meter_holder: dict[str, Any] = {"meter": None, "provider": None}

_PROMETHEUS_TYPES = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}


def init_metrics(
    service_name: str = "docs-index",
    resource_attributes: dict[str, str] | None = None,
    metric_readers: list[MetricReader] | None = None,
) -> MeterProvider:
    """Initialize the OpenTelemetry meter provider once per process."""
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = MeterProvider(resource=resource, metric_readers=metric_readers or [])
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = provider.get_meter("docs_index")
    return provider


def _get_meter():
    if _meter_holder.get("meter") is None:
        init_metrics()
    return _meter_holder["meter"]


class _BoundMetric:
    __slots__ = ("_bridge", "_labels")

    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.observe(self._labels, value)

    def set(self, value: float) -> None:
        self._bridge.set(self._labels, value)


class MetricBridge:
    """One named metric recorded to Prometheus and OpenTelemetry together.

    Gauges are exported to OTel as up-down counters, so ``set`` forwards the
    delta from the last value seen for the same label set.
    """

    def __init__(
        self,
        kind: str,
        name: str,
        description: str,
        labelnames: Sequence[str],
        *,
        buckets: Sequence[float] | None = None,
    ) -> None:
        if kind not in _PROMETHEUS_TYPES:
            raise ValueError(f"Unknown metric kind: {kind}")
        options: dict[str, Any] = {"buckets": tuple(buckets)} if buckets else {}
        self.kind = kind
        self.name = name
        self.description = description
        self.prometheus = _PROMETHEUS_TYPES[kind](name, description, list(labelnames), **options)
        self._instrument = None
        self._gauge_values: dict[tuple[tuple[str, str], ...], float] = {}
        self._gauge_lock = threading.Lock()

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _otel(self):
        if self._instrument is None:
            meter = _get_meter()
            if self.kind == "counter":
                self._instrument = meter.create_counter(self.name, description=self.description)
            elif self.kind == "histogram":
                self._instrument = meter.create_histogram(self.name, description=self.description)
            else:
                self._instrument = meter.create_up_down_counter(self.name, description=self.description)
        return self._instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self.prometheus.labels(**labels).inc(amount)
        self._otel().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self.prometheus.labels(**labels).observe(value)
        self._otel().record(value, labels)

    def set(self, labels: dict[str, str], value: float) -> None:
        self.prometheus.labels(**labels).set(value)
        key = tuple(sorted(labels.items()))
        with self._gauge_lock:
            delta = value - self._gauge_values.get(key, 0.0)
            self._gauge_values[key] = value
        if delta:
            self._otel().add(delta, labels)


INDEX_MUTATIONS = MetricBridge(
    "counter",
    "docs_index_mutations_total",
    "Structural index mutations by operation and outcome",
    ("index", "operation", "status"),
)

SEARCH_LATENCY = MetricBridge(
    "histogram",
    "docs_index_search_latency_seconds",
    "Search query latency",
    ("index",),
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)

REBUILD_DURATION = MetricBridge(
    "histogram",
    "docs_index_rebuild_duration_seconds",
    "Full index rebuild duration",
    ("index",),
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0),
)

DOCUMENT_COUNT = MetricBridge("gauge", "docs_index_document_count", "Live documents in the index", ("index",))

INDEX_VERSION = MetricBridge("gauge", "docs_index_version", "Current index generation", ("index",))


@contextmanager
def track_latency(metric: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Observe the wall-clock duration of the block, including failures."""
    start = time.perf_counter()
    try:
        yield
    finally:
        metric.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Prometheus exposition output for the default registry."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
