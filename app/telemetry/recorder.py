# app/telemetry/recorder.py
"""Ledger em memória das execuções de estágio e dos ciclos de refinamento.

Dois deques limitados (FIFO): ao passar do limite, os registros mais antigos
saem primeiro. Todas as mutações passam pelo mesmo lock; leituras devolvem
cópias.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Deque, Dict, List, Optional

from app.telemetry.records import AgentExecutionRecord, RefinementRecord, as_utc
from app.telemetry.sink import MonitoringSink, safe_record

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_LEDGER_SIZE = 500
DEFAULT_SLOW_EXECUTION_MS = 30000.0


class MetricsRecorder:
    def __init__(
        self,
        *,
        max_ledger_size: int = DEFAULT_MAX_LEDGER_SIZE,
        slow_execution_ms: float = DEFAULT_SLOW_EXECUTION_MS,
        sink: Optional[MonitoringSink] = None,
    ) -> None:
        if max_ledger_size < 1:
            raise ValueError(f"max_ledger_size deve ser >= 1: {max_ledger_size}")
        self.max_ledger_size = int(max_ledger_size)
        self.slow_execution_ms = float(slow_execution_ms)
        self._sink = sink
        self._lock = threading.Lock()
        self._executions: Deque[AgentExecutionRecord] = deque(maxlen=self.max_ledger_size)
        self._refinements: Deque[RefinementRecord] = deque(maxlen=self.max_ledger_size)

    def record_execution(self, record: AgentExecutionRecord) -> None:
        with self._lock:
            self._executions.append(record)

        context = record.context
        results = record.results
        safe_record(
            self._sink,
            f"agent.{record.stage_name}",
            record.execution_time_ms,
            record.success,
            record.error,
            {
                "product": context.product if context else None,
                "sources_found": results.sources_found if results else None,
                "quality_score": results.quality_score if results else None,
            },
        )

        if record.execution_time_ms > self.slow_execution_ms:
            LOGGER.warning(
                "[AGENT METRICS] %s levou %.0fms (execução lenta)",
                record.stage_name,
                record.execution_time_ms,
            )

    def record_refinement(self, record: RefinementRecord) -> None:
        with self._lock:
            self._refinements.append(record)

        safe_record(
            self._sink,
            "agent.refinement",
            record.duration_ms,
            True,
            None,
            {
                "attempt": record.attempt,
                "quality_score": record.quality_score,
                "issues_found": len(record.issues_found),
            },
        )

    def clear_old_metrics(
        self, older_than_hours: float = 24, now: Optional[datetime] = None
    ) -> Dict[str, int]:
        """Remove registros com timestamp anterior a ``now - older_than_hours``."""
        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=older_than_hours)
        with self._lock:
            before_exec = len(self._executions)
            before_ref = len(self._refinements)
            self._executions = deque(
                (r for r in self._executions if r.timestamp >= cutoff),
                maxlen=self.max_ledger_size,
            )
            self._refinements = deque(
                (r for r in self._refinements if r.timestamp >= cutoff),
                maxlen=self.max_ledger_size,
            )
            removed = {
                "executions": before_exec - len(self._executions),
                "refinements": before_ref - len(self._refinements),
            }
        if removed["executions"] or removed["refinements"]:
            LOGGER.info(
                "Métricas antigas removidas (>%sh): %r", older_than_hours, removed
            )
        return removed

    def executions(self) -> List[AgentExecutionRecord]:
        with self._lock:
            return list(self._executions)

    def refinements(self) -> List[RefinementRecord]:
        with self._lock:
            return list(self._refinements)

    def stage_names(self) -> List[str]:
        """Estágios vistos no ledger, na ordem do primeiro registro."""
        seen: Dict[str, None] = {}
        for record in self.executions():
            seen.setdefault(record.stage_name, None)
        return list(seen)


__all__ = ["DEFAULT_MAX_LEDGER_SIZE", "DEFAULT_SLOW_EXECUTION_MS", "MetricsRecorder"]
