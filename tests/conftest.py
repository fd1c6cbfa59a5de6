# /tests/conftest.py

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from app.telemetry.records import (
    AgentExecutionRecord,
    ExecutionContext,
    ExecutionResults,
    RefinementRecord,
)

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class RecordingSink:
    """Sink em memória para inspecionar o que foi encaminhado."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, float, bool, Optional[str], Dict[str, Any]]] = []

    def record_metric(self, name, value, success, error=None, tags=None):
        self.events.append((name, value, success, error, dict(tags or {})))


class ExplodingSink:
    def record_metric(self, *args, **kwargs):
        raise ConnectionError("monitoring backend down")


def make_execution(
    stage: str = "research",
    *,
    ms: float = 1000.0,
    success: bool = True,
    error: Optional[str] = None,
    quality: Optional[float] = None,
    product: Optional[str] = None,
    sources: Optional[int] = None,
    minutes_ago: float = 1.0,
    now: datetime = FIXED_NOW,
) -> AgentExecutionRecord:
    results = None
    if quality is not None or sources is not None:
        results = ExecutionResults(sources_found=sources, quality_score=quality)
    context = ExecutionContext(product=product) if product else None
    return AgentExecutionRecord(
        stage_name=stage,
        execution_time_ms=ms,
        success=success,
        error=error,
        context=context,
        results=results,
        timestamp=now - timedelta(minutes=minutes_ago),
    )


def make_refinement(
    attempt: int,
    quality: float,
    issues=(),
    fixes=(),
    *,
    duration_ms: float = 500.0,
    minutes_ago: float = 1.0,
    now: datetime = FIXED_NOW,
) -> RefinementRecord:
    return RefinementRecord(
        attempt=attempt,
        quality_score=quality,
        issues_found=list(issues),
        fixes_applied=list(fixes),
        duration_ms=duration_ms,
        timestamp=now - timedelta(minutes=minutes_ago),
    )


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture(scope="session")
def client():
    from fastapi.testclient import TestClient

    from app.main import app

    return TestClient(app)


@pytest.fixture
def qa_services():
    """Instâncias do processo zeradas antes e depois de cada teste de API."""
    from app.core import context as ctx

    def _wipe():
        ctx.recorder.clear_old_metrics(0, now=datetime.now(timezone.utc) + timedelta(days=1))
        ctx.validator.reset()

    _wipe()
    try:
        yield ctx
    finally:
        _wipe()
