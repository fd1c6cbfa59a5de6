# app/api/ops/qa.py
import logging
import os
from typing import Optional

from fastapi import APIRouter, Header, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.common.http import json_sanitize
from app.core.context import RETENTION_HOURS, aggregator, health, recorder, validator
from app.observability.instrumentation import trace
from app.observability.metrics import register_ledger_metrics

router = APIRouter(prefix="/ops/qa", tags=["ops-qa"])
LOGGER = logging.getLogger(__name__)


def _forbidden(x_ops_token: Optional[str]) -> Optional[JSONResponse]:
    token_env = os.getenv("QA_OPS_TOKEN", "")
    if not token_env or (x_ops_token or "") != token_env:
        return JSONResponse({"error": "forbidden"}, status_code=403)
    return None


@router.get("/health")
def ops_qa_health():
    return json_sanitize(health.get_system_health())


@router.get("/export")
def ops_qa_export():
    with trace("ops.qa.export"):
        snapshot = health.export_metrics()
        register_ledger_metrics(len(snapshot["executions"]), len(snapshot["refinements"]))
    return json_sanitize(snapshot)


@router.get("/stages")
def ops_qa_stages(stage: Optional[str] = Query(default=None)):
    return json_sanitize(aggregator.get_stage_stats(stage))


@router.get("/refinement")
def ops_qa_refinement():
    return json_sanitize(aggregator.get_refinement_stats())


@router.get("/shadow/stats")
def ops_qa_shadow_stats():
    return json_sanitize(validator.describe())


@router.post("/shadow/reset")
def ops_qa_shadow_reset(x_ops_token: Optional[str] = Header(default=None)):
    denied = _forbidden(x_ops_token)
    if denied is not None:
        return denied
    validator.reset()
    LOGGER.info("Contadores de shadow validation zerados via /ops")
    return {"status": "ok", "stats": validator.describe()}


class CleanupPayload(BaseModel):
    older_than_hours: Optional[float] = Field(default=None, gt=0)


@router.post("/cleanup")
def ops_qa_cleanup(
    payload: Optional[CleanupPayload] = None,
    x_ops_token: Optional[str] = Header(default=None),
):
    denied = _forbidden(x_ops_token)
    if denied is not None:
        return denied
    hours = RETENTION_HOURS
    if payload is not None and payload.older_than_hours is not None:
        hours = payload.older_than_hours
    removed = recorder.clear_old_metrics(hours)
    return {"status": "ok", "older_than_hours": hours, "removed": removed}
