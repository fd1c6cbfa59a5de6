# app/telemetry/records.py
"""Registros imutáveis de execução de estágio e de ciclos de refinamento."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(ts: datetime) -> str:
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def as_utc(ts: datetime) -> datetime:
    # timestamps sem timezone são tratados como UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class ExecutionContext:
    product: Optional[str] = None
    url: Optional[str] = None
    complexity: Optional[str] = None


@dataclass(frozen=True)
class ExecutionResults:
    items_processed: Optional[int] = None
    sources_found: Optional[int] = None
    quality_score: Optional[float] = None


@dataclass(frozen=True)
class AgentExecutionRecord:
    stage_name: str
    execution_time_ms: float
    success: bool
    error: Optional[str] = None
    context: Optional[ExecutionContext] = None
    results: Optional[ExecutionResults] = None
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))

    @property
    def quality_score(self) -> Optional[float]:
        if self.results is None:
            return None
        return self.results.quality_score

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "stage_name": self.stage_name,
            "execution_time_ms": self.execution_time_ms,
            "success": self.success,
            "error": self.error,
            "timestamp": iso_timestamp(self.timestamp),
        }
        if self.context is not None:
            payload["context"] = _drop_none(
                {
                    "product": self.context.product,
                    "url": self.context.url,
                    "complexity": self.context.complexity,
                }
            )
        if self.results is not None:
            payload["results"] = _drop_none(
                {
                    "items_processed": self.results.items_processed,
                    "sources_found": self.results.sources_found,
                    "quality_score": self.results.quality_score,
                }
            )
        return payload


@dataclass(frozen=True)
class RefinementRecord:
    attempt: int
    quality_score: float
    issues_found: Tuple[str, ...] = ()
    fixes_applied: Tuple[str, ...] = ()
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.attempt < 1:
            raise ValueError(f"attempt deve ser >= 1: {self.attempt}")
        # aceita listas do chamador, mas guarda tuplas
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))
        object.__setattr__(self, "issues_found", tuple(self.issues_found))
        object.__setattr__(self, "fixes_applied", tuple(self.fixes_applied))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.attempt,
            "quality_score": self.quality_score,
            "issues_found": list(self.issues_found),
            "fixes_applied": list(self.fixes_applied),
            "duration_ms": self.duration_ms,
            "timestamp": iso_timestamp(self.timestamp),
        }


__all__ = [
    "AgentExecutionRecord",
    "ExecutionContext",
    "ExecutionResults",
    "RefinementRecord",
    "as_utc",
    "iso_timestamp",
]
