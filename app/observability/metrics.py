# app/observability/metrics.py

from __future__ import annotations

import os
from typing import Any, Dict, Mapping

from app.observability.instrumentation import counter as _counter
from app.observability.instrumentation import gauge as _gauge
from app.observability.instrumentation import histogram as _histogram

STRICT = os.getenv("QA_METRICS_STRICT", "false").strip().lower() in (
    "1",
    "true",
    "yes",
)

# Catálogo canônico: nome -> {type, labels}
_METRICS_SCHEMA: Dict[str, Dict[str, Any]] = {
    # HTTP
    "qa_http_request_duration_seconds": {
        "type": "histogram",
        "labels": {"route", "method"},
    },
    "qa_http_requests_total": {
        "type": "counter",
        "labels": {"route", "method", "code"},
    },
    # Sink de monitoramento
    "qa_monitor_events_total": {
        "type": "counter",
        "labels": {"metric", "outcome"},
    },  # metric=agent.<stage>|agent.refinement|shadow_validation.<stage>, outcome=ok|error
    "qa_monitor_value": {"type": "histogram", "labels": {"metric"}},
    # Shadow validation
    "qa_shadow_validations_total": {
        "type": "counter",
        "labels": {"stage", "outcome"},
    },  # outcome=passed|diverged|shadow_error
    "qa_shadow_divergence": {"type": "histogram", "labels": {"stage"}},
    "qa_shadow_divergence_rate": {"type": "gauge", "labels": set()},
    # Saúde
    "qa_pipeline_health_status": {"type": "gauge", "labels": {"status"}},
    "qa_pipeline_success_rate": {"type": "gauge", "labels": set()},
    "qa_pipeline_avg_execution_ms": {"type": "gauge", "labels": set()},
    "qa_pipeline_avg_quality_score": {"type": "gauge", "labels": set()},
    "qa_ledger_size": {"type": "gauge", "labels": {"ledger"}},
}

HEALTH_STATUSES = ("unknown", "healthy", "degraded", "unhealthy")


def _validate_and_normalize(name: str, labels: Mapping[str, Any]) -> Mapping[str, str]:
    spec = _METRICS_SCHEMA.get(name)
    if spec is None:
        if STRICT:
            raise ValueError(f"[metrics] Métrica não cadastrada: {name}")
        # Em modo não-estrito, permite qualquer label, mas ainda normaliza
        return {k: str(v) for k, v in labels.items() if v is not None}

    allowed = spec.get("labels", set())
    unknown = set(labels.keys()) - set(allowed)
    if unknown and STRICT:
        raise ValueError(
            f"[metrics] Labels não permitidos para {name}: {sorted(unknown)}; permitidos={sorted(allowed)}"
        )

    # filtra desconhecidos em modo brando
    return {k: str(v) for k, v in labels.items() if (k in allowed and v is not None)}


def emit_counter(name: str, **labels: Any) -> None:
    value = float(labels.pop("_value", 1.0))
    labs = _validate_and_normalize(name, labels)
    _counter(name, _value=value, **labs)


def emit_histogram(name: str, value: float, **labels: Any) -> None:
    labs = _validate_and_normalize(name, labels)
    _histogram(name, float(value), **labs)


def emit_gauge(name: str, value: float, **labels: Any) -> None:
    labs = _validate_and_normalize(name, labels)
    _gauge(name, float(value), **labs)


# Opcional: utilidade para consultar o catálogo (debug/admin)
def list_metrics_catalog() -> Dict[str, Dict[str, Any]]:
    return {
        k: {"type": v["type"], "labels": sorted(list(v["labels"]))}
        for k, v in _METRICS_SCHEMA.items()
    }


def register_health_metrics(health: Mapping[str, Any]) -> None:
    """
    health = saída de HealthClassifier.get_system_health():
      {"status": str, "message": str, "details": {...}}
    Publica status como gauge one-hot + agregados da janela recente.
    """
    status = str(health.get("status") or "unknown")
    for candidate in HEALTH_STATUSES:
        emit_gauge(
            "qa_pipeline_health_status", 1.0 if candidate == status else 0.0, status=candidate
        )
    details = health.get("details") or {}
    emit_gauge("qa_pipeline_success_rate", float(details.get("success_rate", 0.0)))
    emit_gauge(
        "qa_pipeline_avg_execution_ms", float(details.get("avg_execution_time_ms", 0.0))
    )
    emit_gauge(
        "qa_pipeline_avg_quality_score", float(details.get("avg_quality_score", 0.0))
    )


def register_ledger_metrics(executions: int, refinements: int) -> None:
    emit_gauge("qa_ledger_size", float(executions), ledger="executions")
    emit_gauge("qa_ledger_size", float(refinements), ledger="refinements")


def register_shadow_metrics(divergence_rate: float) -> None:
    emit_gauge("qa_shadow_divergence_rate", float(divergence_rate))
