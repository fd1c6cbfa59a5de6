# app/api/ops/metrics.py
from fastapi import APIRouter

from app.core.context import health, validator
from app.observability.metrics import (
    list_metrics_catalog,
    register_health_metrics,
    register_shadow_metrics,
)

router = APIRouter(prefix="/ops/metrics", tags=["ops-metrics"])


@router.get("/catalog")
def ops_metrics_catalog():
    return list_metrics_catalog()


@router.post("/health/register")
def ops_health_register_metrics():
    verdict = health.get_system_health()
    register_health_metrics(verdict)
    stats = validator.get_stats()
    register_shadow_metrics(stats.divergence_rate)
    return {
        "status": "ok",
        "health": verdict["status"],
        "shadow_divergence_rate": stats.divergence_rate,
    }
