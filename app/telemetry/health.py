# app/telemetry/health.py
"""Classificação de saúde do pipeline e snapshot exportável.

Olha apenas a janela recente (default 1h) e aplica os limiares em ordem:
success rate baixo => unhealthy; execução lenta => degraded; qualidade
baixa => degraded; caso contrário healthy. Sem atividade recente => unknown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from app.telemetry.records import as_utc, iso_timestamp
from app.telemetry.recorder import MetricsRecorder
from app.telemetry.stats import StatsAggregator
from app.validation.shadow import ShadowValidator

LOGGER = logging.getLogger(__name__)

DEFAULT_STAGES = ("research", "code", "structure", "critic")

STATUS_UNKNOWN = "unknown"
STATUS_HEALTHY = "healthy"
STATUS_DEGRADED = "degraded"
STATUS_UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class HealthThresholds:
    window: timedelta = timedelta(hours=1)
    min_success_rate: float = 80.0
    max_avg_execution_ms: float = 45000.0
    min_quality_score: float = 70.0


class HealthClassifier:
    def __init__(
        self,
        recorder: MetricsRecorder,
        aggregator: StatsAggregator,
        *,
        stages: Sequence[str] = DEFAULT_STAGES,
        thresholds: Optional[HealthThresholds] = None,
        validator: Optional[ShadowValidator] = None,
    ) -> None:
        self._recorder = recorder
        self._aggregator = aggregator
        self.stages = tuple(stages)
        self.thresholds = thresholds or HealthThresholds()
        self._validator = validator

    def _stage_breakdown(self) -> Dict[str, Dict[str, Any]]:
        return {stage: self._aggregator.get_stage_stats(stage) for stage in self.stages}

    def get_system_health(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        since = now - self.thresholds.window
        recent = [r for r in self._recorder.executions() if r.timestamp >= since]

        if not recent:
            return {
                "status": STATUS_UNKNOWN,
                "message": "No recent pipeline activity",
                "details": {},
            }

        total = len(recent)
        success_rate = sum(1 for r in recent if r.success) / total * 100.0
        avg_execution_time_ms = sum(r.execution_time_ms for r in recent) / total
        scored: List[float] = [r.quality_score for r in recent if r.quality_score is not None]
        avg_quality_score = sum(scored) / len(scored) if scored else 0.0

        t = self.thresholds
        if success_rate < t.min_success_rate:
            status = STATUS_UNHEALTHY
            message = f"Low success rate: {success_rate:.1f}%"
        elif avg_execution_time_ms > t.max_avg_execution_ms:
            status = STATUS_DEGRADED
            message = f"Slow execution: {avg_execution_time_ms / 1000:.1f}s average"
        elif 0 < avg_quality_score < t.min_quality_score:
            status = STATUS_DEGRADED
            message = f"Low quality scores: {avg_quality_score:.1f} average"
        else:
            status = STATUS_HEALTHY
            message = (
                f"Healthy: {success_rate:.1f}% success, "
                f"{avg_execution_time_ms / 1000:.1f}s avg, quality {avg_quality_score:.1f}"
            )

        if status != STATUS_HEALTHY:
            LOGGER.warning("Pipeline %s: %s", status, message)

        return {
            "status": status,
            "message": message,
            "details": {
                "success_rate": success_rate,
                "avg_execution_time_ms": avg_execution_time_ms,
                "avg_quality_score": avg_quality_score,
                "total_executions": total,
                "stage_breakdown": self._stage_breakdown(),
            },
        }

    def export_metrics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        stats: Dict[str, Any] = self._stage_breakdown()
        stats["overall"] = self._aggregator.get_stage_stats()
        stats["refinement"] = self._aggregator.get_refinement_stats()

        snapshot: Dict[str, Any] = {
            "generated_at": iso_timestamp(now),
            "executions": [r.to_dict() for r in self._recorder.executions()],
            "refinements": [r.to_dict() for r in self._recorder.refinements()],
            "stats": stats,
            "system_health": self.get_system_health(now),
        }
        if self._validator is not None:
            snapshot["shadow_validation"] = self._validator.describe()
        return snapshot


__all__ = [
    "DEFAULT_STAGES",
    "HealthClassifier",
    "HealthThresholds",
    "STATUS_DEGRADED",
    "STATUS_HEALTHY",
    "STATUS_UNHEALTHY",
    "STATUS_UNKNOWN",
]
