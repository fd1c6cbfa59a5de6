# app/core/context.py
import logging

from app.core.config import (
    build_health_thresholds,
    build_validation_config,
    load_qa_policy,
)
from app.observability.runtime import bootstrap, load_config
from app.telemetry.health import HealthClassifier
from app.telemetry.recorder import MetricsRecorder
from app.telemetry.sink import PrometheusSink
from app.telemetry.stats import StatsAggregator
from app.validation.shadow import ShadowValidator

LOGGER = logging.getLogger(__name__)

cfg = load_config()
bootstrap(service_name="api", cfg=cfg)

QA_POLICY, QA_POLICY_STATUS, QA_POLICY_ERROR = load_qa_policy()

# ----------------------------
# SERVIÇOS DE QA (instâncias únicas do processo)
# ----------------------------
# Consumidores recebem estas instâncias por referência; nada de estado
# estático nas classes.
sink = PrometheusSink()

validator = ShadowValidator(build_validation_config(QA_POLICY), sink=sink)

recorder = MetricsRecorder(
    max_ledger_size=int(QA_POLICY["metrics"]["max_ledger_size"]),
    slow_execution_ms=float(QA_POLICY["metrics"]["slow_execution_ms"]),
    sink=sink,
)
aggregator = StatsAggregator(recorder)
health = HealthClassifier(
    recorder,
    aggregator,
    stages=QA_POLICY["health"].get("stages") or (),
    thresholds=build_health_thresholds(QA_POLICY),
    validator=validator,
)

RETENTION_HOURS = float(QA_POLICY["retention"]["retention_hours"])

__all__ = [
    "aggregator",
    "cfg",
    "health",
    "recorder",
    "sink",
    "validator",
    "QA_POLICY",
    "QA_POLICY_STATUS",
    "QA_POLICY_ERROR",
    "RETENTION_HOURS",
]
