# app/observability/runtime.py
# Backend Prometheus + spans OTel e bootstrap. Registro centralizado de métricas.
import logging
import os
from typing import Dict, Any, Tuple, Optional

import yaml
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter as PromCounter,
    Gauge as PromGauge,
    Histogram as PromHistogram,
    generate_latest,
)
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

from app.observability import instrumentation as obs

LOGGER = logging.getLogger(__name__)


# ---------------- Config -----------------------------------------------------

DEFAULT_OBSERVABILITY_CONFIG: Dict[str, Any] = {
    "global": {"exporters": {"otlp_endpoint": "otel-collector:4317"}},
    "services": {"gateway": {"tracing": {"enabled": False}}},
}


def load_config():
    cfg_path = os.environ.get("OBSERVABILITY_CONFIG", "data/ops/observability.yaml")
    if not os.path.exists(cfg_path):
        LOGGER.warning("Config de observability ausente em %s; usando default", cfg_path)
        return DEFAULT_OBSERVABILITY_CONFIG
    with open(cfg_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or DEFAULT_OBSERVABILITY_CONFIG


# ---------------- Tracing (opcional) ----------------------------------------

_TRACING_READY = False


def init_tracing(service_name: str, cfg: dict):
    global _TRACING_READY
    tracing = ((cfg.get("services") or {}).get("gateway") or {}).get("tracing") or {}
    if _TRACING_READY or not tracing.get("enabled"):
        return
    otlp_endpoint = os.getenv(
        "OTEL_EXPORTER_OTLP_ENDPOINT", cfg["global"]["exporters"]["otlp_endpoint"]
    )
    if not str(otlp_endpoint).startswith(("http://", "https://")):
        otlp_endpoint = f"http://{otlp_endpoint}"
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)
    _TRACING_READY = True


# ---------------- Backend Prometheus (injeção) -------------------------------

_COUNTERS: Dict[Tuple[str, Tuple[str, ...]], PromCounter] = {}
_HISTOS: Dict[Tuple[str, Tuple[str, ...]], PromHistogram] = {}
_GAUGES: Dict[Tuple[str, Tuple[str, ...]], PromGauge] = {}

_DEFAULT_BUCKETS_MS = (
    5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 45000, 60000, 120000
)
_RATIO_BUCKETS = (0.0, 0.01, 0.05, 0.1, 0.2, 0.3, 0.5, 0.75, 1.0)
_SECONDS_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)

# Esquemas CANÔNICOS de métricas → força labelnames e tipo, evita cardinalidade acidental
_METRIC_SCHEMAS = {
    # Gateway
    "qa_http_request_duration_seconds": ("histogram", ("route", "method"), _SECONDS_BUCKETS),
    "qa_http_requests_total": ("counter", ("route", "method", "code")),
    # Sink de monitoramento (execuções, refinamentos, shadow)
    "qa_monitor_events_total": ("counter", ("metric", "outcome")),
    "qa_monitor_value": ("histogram", ("metric",)),
    # Shadow validation
    "qa_shadow_validations_total": ("counter", ("stage", "outcome")),
    "qa_shadow_divergence": ("histogram", ("stage",), _RATIO_BUCKETS),
    "qa_shadow_divergence_rate": ("gauge", ()),
    # Saúde do pipeline
    "qa_pipeline_health_status": ("gauge", ("status",)),
    "qa_pipeline_success_rate": ("gauge", ()),
    "qa_pipeline_avg_execution_ms": ("gauge", ()),
    "qa_pipeline_avg_quality_score": ("gauge", ()),
    "qa_ledger_size": ("gauge", ("ledger",)),
}


def _get_counter(name: str, labelnames: Tuple[str, ...]) -> PromCounter:
    key = (name, labelnames)
    if key not in _COUNTERS:
        _COUNTERS[key] = PromCounter(
            name, name.replace("_", " "), labelnames=labelnames
        )
    return _COUNTERS[key]


def _get_histogram(
    name: str, labelnames: Tuple[str, ...], buckets=None
) -> PromHistogram:
    key = (name, labelnames)
    if key not in _HISTOS:
        _HISTOS[key] = PromHistogram(
            name,
            name.replace("_", " "),
            labelnames=labelnames,
            buckets=(buckets or _DEFAULT_BUCKETS_MS),
        )
    return _HISTOS[key]


def _get_gauge(name: str, labelnames: Tuple[str, ...]) -> PromGauge:
    key = (name, labelnames)
    if key not in _GAUGES:
        _GAUGES[key] = PromGauge(name, name.replace("_", " "), labelnames=labelnames)
    return _GAUGES[key]


def _ensure_metric(name: str, labels: Dict[str, str]):
    """
    Garante tipo e labels conforme schema canônico.
    """
    if name not in _METRIC_SCHEMAS:
        raise ValueError(f"Métrica '{name}' não declarada no schema canônico.")
    kind, labelnames = _METRIC_SCHEMAS[name][:2]
    lbls_tuple = tuple(sorted((labels or {}).keys()))
    if tuple(sorted(labelnames)) != lbls_tuple:
        raise ValueError(
            f"Labels inválidos para '{name}'. Esperado {labelnames}, recebido {lbls_tuple}."
        )
    return kind, labelnames


def _buckets_for(name: str):
    schema = _METRIC_SCHEMAS.get(name) or ()
    return schema[2] if len(schema) > 2 else None


class _SpanHandle:
    __slots__ = ("span", "_cm")

    def __init__(self, span, cm=None):
        self.span = span
        self._cm = cm


class _PromBackend(obs._Backend):
    def __init__(self) -> None:
        self._tracer = trace.get_tracer("app")

    def inc(self, name: str, labels: Dict[str, str], value: float = 1.0) -> None:
        kind, labelnames = _ensure_metric(name, labels)
        if kind != "counter":
            raise ValueError(f"'{name}' não é counter.")
        ctr = _get_counter(name, labelnames)
        if labelnames:
            ctr.labels(**labels).inc(float(value))
        else:
            ctr.inc(float(value))

    def observe(self, name: str, value: float, labels: Dict[str, str]) -> None:
        kind, labelnames = _ensure_metric(name, labels)
        if kind != "histogram":
            raise ValueError(f"'{name}' não é histogram.")
        h = _get_histogram(name, labelnames, buckets=_buckets_for(name))
        if labelnames:
            h.labels(**labels).observe(float(value))
        else:
            h.observe(float(value))

    def set_gauge(self, name: str, value: float, labels: Dict[str, str]) -> None:
        kind, labelnames = _ensure_metric(name, labels)
        if kind != "gauge":
            raise ValueError(f"'{name}' não é gauge.")
        g = _get_gauge(name, labelnames)
        if labelnames:
            g.labels(**labels).set(float(value))
        else:
            g.set(float(value))

    def start_span(self, name: str, attributes: Dict[str, Any]):
        cm = self._tracer.start_as_current_span(name)
        span = cm.__enter__()
        handle = _SpanHandle(span, cm)
        for key, value in attributes.items():
            if value is not None:
                self.set_span_attr(handle, key, value)
        return handle

    def end_span(
        self,
        span,
        exc_type: Optional[type] = None,
        exc_value: Optional[BaseException] = None,
        exc_tb: Any = None,
    ) -> None:
        cm = getattr(span, "_cm", None)
        if cm is not None:
            cm.__exit__(exc_type, exc_value, exc_tb)

    def set_span_attr(self, span, key: str, value: Any) -> None:
        raw = getattr(span, "span", span)
        if raw is None:
            return
        setter = getattr(raw, "set_attribute", None)
        if callable(setter):
            setter(key, value)


def render_prometheus_latest():
    return generate_latest(), CONTENT_TYPE_LATEST


def bootstrap(service_name: str = "api", cfg: dict = None) -> None:
    """
    Chamar no bootstrap do processo: inicializa tracing (opcional) e injeta
    backend Prometheus na facade.
    """
    if cfg is None:
        cfg = load_config()
    init_tracing(service_name, cfg)
    obs.set_backend(_PromBackend())
