import os

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from app.core.context import QA_POLICY_STATUS, health
from app.observability.runtime import render_prometheus_latest

router = APIRouter()


@router.get("/healthz")
def healthz():
    build_id = os.getenv("BUILD_ID", "dev")
    pipeline = health.get_system_health()
    # processo de pé => ok; o veredito do pipeline vai em services
    return {
        "status": "ok",
        "build_id": build_id,
        "services": {
            "pipeline": pipeline["status"],
            "qa_policy": QA_POLICY_STATUS,
        },
    }


@router.get("/metrics")
def metrics():
    payload, media_type = render_prometheus_latest()
    return PlainTextResponse(payload, media_type=media_type)
