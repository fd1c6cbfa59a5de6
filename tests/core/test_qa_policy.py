# tests/core/test_qa_policy.py
from datetime import timedelta
from pathlib import Path

import pytest

from app.core import config as qa_config
from app.core.config import (
    DEFAULT_POLICY,
    build_health_thresholds,
    build_validation_config,
    load_qa_policy,
)

REPO_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in qa_config._ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("QA_POLICY_PATH", raising=False)


def test_missing_file_falls_back_to_defaults(tmp_path):
    policy, status, error = load_qa_policy(str(tmp_path / "nope.yaml"))
    assert status == "missing"
    assert "nope.yaml" in error
    assert policy == DEFAULT_POLICY
    assert policy is not DEFAULT_POLICY


def test_yaml_values_override_defaults(tmp_path):
    path = tmp_path / "qa.yaml"
    path.write_text(
        "qa:\n"
        "  shadow_validation:\n"
        "    enabled: true\n"
        "    sample_rate: 0.5\n"
        "  metrics:\n"
        "    max_ledger_size: 50\n",
        encoding="utf-8",
    )
    policy, status, error = load_qa_policy(str(path))
    assert (status, error) == ("ok", None)
    assert policy["shadow_validation"]["enabled"] is True
    assert policy["shadow_validation"]["sample_rate"] == 0.5
    assert policy["shadow_validation"]["divergence_threshold"] == 0.1
    assert policy["metrics"]["max_ledger_size"] == 50
    assert policy["metrics"]["slow_execution_ms"] == 30000


def test_env_takes_precedence_over_file(tmp_path, monkeypatch):
    path = tmp_path / "qa.yaml"
    path.write_text("qa:\n  shadow_validation:\n    sample_rate: 0.5\n", encoding="utf-8")
    monkeypatch.setenv("SHADOW_SAMPLE_RATE", "0.25")
    monkeypatch.setenv("SHADOW_VALIDATION_ENABLED", "true")
    monkeypatch.setenv("SHADOW_MODEL", "claude-alt")
    monkeypatch.setenv("QA_RETENTION_HOURS", "6")
    policy, status, _ = load_qa_policy(str(path))
    assert status == "ok"
    assert policy["shadow_validation"]["sample_rate"] == 0.25
    assert policy["shadow_validation"]["enabled"] is True
    assert policy["shadow_validation"]["shadow_model"] == "claude-alt"
    assert policy["retention"]["retention_hours"] == 6.0


def test_invalid_env_value_is_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("QA_MAX_LEDGER_SIZE", "muitos")
    policy, _, _ = load_qa_policy(str(tmp_path / "missing.yaml"))
    assert policy["metrics"]["max_ledger_size"] == 500


def test_policy_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("qa:\n  retention:\n    retention_hours: 12\n", encoding="utf-8")
    monkeypatch.setenv("QA_POLICY_PATH", str(path))
    policy, status, _ = load_qa_policy()
    assert status == "ok"
    assert policy["retention"]["retention_hours"] == 12


@pytest.mark.parametrize(
    "content",
    [
        "qa: [unclosed\n",
        "- just\n- a list\n",
        "qa:\n  metrics: 12\n",
    ],
)
def test_invalid_file_is_reported(tmp_path, content):
    path = tmp_path / "qa.yaml"
    path.write_text(content, encoding="utf-8")
    policy, status, error = load_qa_policy(str(path))
    assert status == "invalid"
    assert error
    assert policy == DEFAULT_POLICY


def test_build_validation_config_from_policy():
    policy, _, _ = load_qa_policy("does/not/exist.yaml")
    policy["shadow_validation"].update(enabled=True, divergence_threshold=0.2, timeout_s=5)
    cfg = build_validation_config(policy)
    assert cfg.enabled is True
    assert cfg.divergence_threshold == 0.2
    assert cfg.timeout_s == 5.0
    assert cfg.shadow_model == "gpt-4"


def test_build_validation_config_rejects_bad_threshold():
    policy = {"shadow_validation": {"divergence_threshold": 2}}
    with pytest.raises(ValueError):
        build_validation_config(policy)


def test_build_health_thresholds_from_policy():
    thresholds = build_health_thresholds({"health": {"window_minutes": 15, "min_quality_score": 60}})
    assert thresholds.window == timedelta(minutes=15)
    assert thresholds.min_quality_score == 60.0
    assert thresholds.min_success_rate == 80.0


def test_repo_policy_file_loads():
    policy, status, _ = load_qa_policy(str(REPO_ROOT / "data/policies/qa.yaml"))
    assert status == "ok"
    assert policy["health"]["stages"] == ["research", "code", "structure", "critic"]
    assert policy["shadow_validation"]["enabled"] is False
