# app/api/__init__.py
from fastapi import FastAPI

from app.api.health import router as health_router
from app.api.ops.metrics import router as ops_metrics_router
from app.api.ops.qa import router as ops_qa_router
from app.common.http import metrics_middleware


def get_app() -> FastAPI:
    # bootstrap de observability e instâncias de QA acontecem em app.core.context
    app = FastAPI(title="Pipeline QA API")
    app.middleware("http")(metrics_middleware)

    app.include_router(health_router)
    app.include_router(ops_qa_router)
    app.include_router(ops_metrics_router)
    return app
