# app/telemetry/sink.py
"""Sink de monitoramento: destino best-effort dos resumos de execução.

Contrato: aceita o evento, nunca propaga exceção para quem registra e não
devolve confirmação.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

from app.observability.metrics import (
    emit_counter as counter,
    emit_histogram as histogram,
)

LOGGER = logging.getLogger(__name__)


class MonitoringSink(Protocol):
    def record_metric(
        self,
        name: str,
        value: float,
        success: bool,
        error: Optional[str] = None,
        tags: Optional[Mapping[str, Any]] = None,
    ) -> None: ...


class NullSink:
    def record_metric(
        self,
        name: str,
        value: float,
        success: bool,
        error: Optional[str] = None,
        tags: Optional[Mapping[str, Any]] = None,
    ) -> None:
        return None


class PrometheusSink:
    """Traduz eventos do sink para o catálogo Prometheus via facade.

    Tags não viram labels (cardinalidade); ficam apenas no log de debug.
    """

    def record_metric(
        self,
        name: str,
        value: float,
        success: bool,
        error: Optional[str] = None,
        tags: Optional[Mapping[str, Any]] = None,
    ) -> None:
        outcome = "ok" if success else "error"
        tags = dict(tags or {})
        counter("qa_monitor_events_total", metric=name, outcome=outcome)
        histogram("qa_monitor_value", float(value), metric=name)
        if name.startswith("shadow_validation."):
            stage = str(tags.get("stage") or name.split(".", 1)[1])
            shadow_outcome = str(tags.get("outcome") or outcome)
            counter("qa_shadow_validations_total", stage=stage, outcome=shadow_outcome)
            if shadow_outcome != "shadow_error":
                histogram("qa_shadow_divergence", float(value), stage=stage)
        LOGGER.debug(
            "monitor %s value=%s outcome=%s error=%s tags=%r",
            name,
            value,
            outcome,
            error,
            tags,
        )


def safe_record(
    sink: Optional[MonitoringSink],
    name: str,
    value: float,
    success: bool,
    error: Optional[str] = None,
    tags: Optional[Mapping[str, Any]] = None,
) -> None:
    if sink is None:
        return
    clean_tags = {k: v for k, v in (tags or {}).items() if v is not None}
    try:
        sink.record_metric(name, value, success, error, clean_tags)
    except Exception:
        LOGGER.debug("Ignorando métrica %s por sink indisponível", name, exc_info=True)


__all__ = ["MonitoringSink", "NullSink", "PrometheusSink", "safe_record"]
