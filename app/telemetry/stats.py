# app/telemetry/stats.py
"""Estatísticas derivadas do ledger (por estágio, geral e de refinamento)."""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from app.telemetry.records import AgentExecutionRecord, iso_timestamp
from app.telemetry.recorder import MetricsRecorder

RECENT_ERRORS_LIMIT = 5
COMMON_ISSUES_LIMIT = 10


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def summarize_executions(records: Sequence[AgentExecutionRecord]) -> Dict[str, Any]:
    if not records:
        return {
            "total_executions": 0,
            "success_rate": 0.0,
            "average_execution_time_ms": 0.0,
            "average_quality_score": 0.0,
            "error_count": 0,
            "recent_errors": [],
        }

    failures = [r for r in records if not r.success]
    # registros sem quality_score ficam fora da média
    quality = [r.quality_score for r in records if r.quality_score is not None]

    return {
        "total_executions": len(records),
        "success_rate": (len(records) - len(failures)) / len(records) * 100.0,
        "average_execution_time_ms": _mean([r.execution_time_ms for r in records]),
        "average_quality_score": _mean(quality),
        "error_count": len(failures),
        "recent_errors": [
            {"stage": r.stage_name, "error": r.error, "timestamp": iso_timestamp(r.timestamp)}
            for r in failures[-RECENT_ERRORS_LIMIT:]
        ],
    }


class StatsAggregator:
    def __init__(self, recorder: MetricsRecorder) -> None:
        self._recorder = recorder

    def get_stage_stats(self, stage_name: Optional[str] = None) -> Dict[str, Any]:
        records = self._recorder.executions()
        if stage_name is not None:
            records = [r for r in records if r.stage_name == stage_name]
        return summarize_executions(records)

    def get_refinement_stats(self) -> Dict[str, Any]:
        records = self._recorder.refinements()
        if not records:
            return {
                "total_refinements": 0,
                "average_attempts": 0.0,
                "average_quality_improvement": 0.0,
                "common_issues": [],
            }

        # Counter.most_common preserva a ordem de inserção nos empates
        issues = Counter(issue for r in records for issue in r.issues_found)
        common: List[Dict[str, Any]] = [
            {"issue": issue, "count": count}
            for issue, count in issues.most_common(COMMON_ISSUES_LIMIT)
        ]

        # média das notas das tentativas > 1, não um delta antes/depois
        late_scores = [r.quality_score for r in records if r.attempt > 1]

        return {
            "total_refinements": len(records),
            "average_attempts": _mean([r.attempt for r in records]),
            "average_quality_improvement": _mean(late_scores),
            "common_issues": common,
        }


__all__ = ["StatsAggregator", "summarize_executions"]
