from datetime import timedelta

import pytest

from app.telemetry.health import HealthClassifier, HealthThresholds
from app.telemetry.recorder import MetricsRecorder
from app.telemetry.stats import StatsAggregator
from app.validation.shadow import ShadowValidator, ValidationConfig
from tests.conftest import make_execution, make_refinement


def _classifier(executions=(), refinements=(), **kwargs):
    recorder = MetricsRecorder()
    for record in executions:
        recorder.record_execution(record)
    for record in refinements:
        recorder.record_refinement(record)
    return HealthClassifier(recorder, StatsAggregator(recorder), **kwargs)


def test_no_records_is_unknown(fixed_now):
    health = _classifier().get_system_health(fixed_now)
    assert health["status"] == "unknown"
    assert health["message"] == "No recent pipeline activity"
    assert health["details"] == {}


def test_only_stale_records_is_unknown(fixed_now):
    health = _classifier([make_execution(minutes_ago=61)]).get_system_health(fixed_now)
    assert health["status"] == "unknown"


def test_low_success_rate_is_unhealthy(fixed_now):
    records = [make_execution() for _ in range(3)]
    records.append(make_execution(success=False, error="x"))
    health = _classifier(records).get_system_health(fixed_now)
    assert health["status"] == "unhealthy"
    assert health["message"] == "Low success rate: 75.0%"


def test_unhealthy_wins_over_slow(fixed_now):
    records = [
        make_execution(ms=60000),
        make_execution(ms=60000, success=False, error="x"),
    ]
    assert _classifier(records).get_system_health(fixed_now)["status"] == "unhealthy"


def test_slow_average_is_degraded(fixed_now):
    records = [make_execution(ms=50000, quality=90.0), make_execution(ms=46000, quality=90.0)]
    health = _classifier(records).get_system_health(fixed_now)
    assert health["status"] == "degraded"
    assert health["message"] == "Slow execution: 48.0s average"


def test_low_quality_is_degraded(fixed_now):
    records = [make_execution(quality=60.0), make_execution(quality=70.0), make_execution()]
    health = _classifier(records).get_system_health(fixed_now)
    assert health["status"] == "degraded"
    assert health["details"]["avg_quality_score"] == pytest.approx(65.0)
    assert health["message"] == "Low quality scores: 65.0 average"


def test_no_quality_scores_is_healthy(fixed_now):
    health = _classifier([make_execution(ms=2000)]).get_system_health(fixed_now)
    assert health["status"] == "healthy"
    assert health["details"]["avg_quality_score"] == 0.0
    assert health["message"].startswith("Healthy: 100.0% success, 2.0s avg")


def test_details_carry_stage_breakdown(fixed_now):
    records = [
        make_execution("research", quality=90.0),
        make_execution("critic", quality=85.0),
        make_execution("research", minutes_ago=120),
    ]
    health = _classifier(records).get_system_health(fixed_now)
    details = health["details"]
    assert details["total_executions"] == 2
    assert set(details["stage_breakdown"]) == {"research", "code", "structure", "critic"}
    assert details["stage_breakdown"]["research"]["total_executions"] == 2
    assert details["stage_breakdown"]["code"]["total_executions"] == 0


def test_custom_thresholds_and_window(fixed_now):
    thresholds = HealthThresholds(window=timedelta(minutes=10), min_success_rate=95.0)
    records = [make_execution(minutes_ago=5) for _ in range(19)]
    records.append(make_execution(minutes_ago=5, success=False, error="x"))
    records.append(make_execution(minutes_ago=30, success=False, error="y"))
    classifier = _classifier(records, thresholds=thresholds, stages=("research",))
    health = classifier.get_system_health(fixed_now)
    assert health["status"] == "healthy"
    assert health["details"]["total_executions"] == 20
    assert list(health["details"]["stage_breakdown"]) == ["research"]


def test_export_metrics_bundles_everything(fixed_now):
    validator = ShadowValidator(ValidationConfig(enabled=True))
    classifier = _classifier(
        [make_execution("research", quality=90.0)],
        [make_refinement(2, 80.0, issues=["thin"])],
        validator=validator,
    )
    snapshot = classifier.export_metrics(fixed_now)

    assert snapshot["generated_at"] == "2026-10-19T12:00:00.000Z"
    assert snapshot["executions"][0]["stage_name"] == "research"
    assert snapshot["executions"][0]["results"] == {"quality_score": 90.0}
    assert snapshot["refinements"][0]["issues_found"] == ["thin"]
    assert {"research", "code", "structure", "critic", "overall", "refinement"} <= set(
        snapshot["stats"]
    )
    assert snapshot["stats"]["refinement"]["average_quality_improvement"] == 80.0
    assert snapshot["system_health"]["status"] == "healthy"
    assert snapshot["shadow_validation"]["total_validations"] == 0


def test_export_metrics_without_validator(fixed_now):
    snapshot = _classifier().export_metrics(fixed_now)
    assert "shadow_validation" not in snapshot
    assert snapshot["system_health"]["status"] == "unknown"


def test_naive_now_is_treated_as_utc(fixed_now):
    naive_now = fixed_now.replace(tzinfo=None)
    classifier = _classifier([make_execution(quality=90.0)])
    assert classifier.get_system_health(naive_now)["status"] == "healthy"
    snapshot = classifier.export_metrics(naive_now)
    assert snapshot["generated_at"] == "2026-10-19T12:00:00.000Z"
