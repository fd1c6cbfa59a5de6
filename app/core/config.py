# app/core/config.py
"""Política declarativa do núcleo de QA (data/policies/qa.yaml).

Estrutura esperada:

    terms:
      - name: "qa"
        kind: "policy"
        scope: "qa"
        version: 1

    qa:
      shadow_validation:
        enabled: false
        divergence_threshold: 0.1
        sample_rate: 0.1
        shadow_model: gpt-4
        timeout_s: 30
      metrics:
        max_ledger_size: 500
        slow_execution_ms: 30000
      health:
        window_minutes: 60
        stages: [research, code, structure, critic]
      retention:
        retention_hours: 24

Variáveis de ambiente têm precedência sobre o arquivo. Arquivo ausente ou
inválido => DEFAULT_POLICY (com status "missing"/"invalid").
"""

from __future__ import annotations

import copy
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

from app.telemetry.health import DEFAULT_STAGES, HealthThresholds
from app.utils.filecache import load_yaml_cached
from app.validation.shadow import ValidationConfig

LOGGER = logging.getLogger(__name__)

_QA_POLICY_PATH = "data/policies/qa.yaml"

DEFAULT_SHADOW_POLICY: Dict[str, Any] = {
    "enabled": False,
    "divergence_threshold": 0.1,
    "sample_rate": 0.1,
    "shadow_model": "gpt-4",
    "timeout_s": 30.0,
    "stats_log_interval": 100,
    "drift_alert_rate": 0.1,
}

DEFAULT_METRICS_POLICY: Dict[str, Any] = {
    "max_ledger_size": 500,
    "slow_execution_ms": 30000,
}

DEFAULT_HEALTH_POLICY: Dict[str, Any] = {
    "window_minutes": 60,
    "min_success_rate": 80.0,
    "max_avg_execution_ms": 45000.0,
    "min_quality_score": 70.0,
    "stages": list(DEFAULT_STAGES),
}

DEFAULT_RETENTION_POLICY: Dict[str, Any] = {
    "retention_hours": 24,
}

DEFAULT_POLICY: Dict[str, Any] = {
    "shadow_validation": DEFAULT_SHADOW_POLICY,
    "metrics": DEFAULT_METRICS_POLICY,
    "health": DEFAULT_HEALTH_POLICY,
    "retention": DEFAULT_RETENTION_POLICY,
}

# (bloco, chave, conversor)
_ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "SHADOW_VALIDATION_ENABLED": (
        "shadow_validation",
        "enabled",
        lambda raw: raw.strip().lower() in ("1", "true", "yes"),
    ),
    "SHADOW_DIVERGENCE_THRESHOLD": ("shadow_validation", "divergence_threshold", float),
    "SHADOW_SAMPLE_RATE": ("shadow_validation", "sample_rate", float),
    "SHADOW_MODEL": ("shadow_validation", "shadow_model", str),
    "SHADOW_TIMEOUT_S": ("shadow_validation", "timeout_s", float),
    "QA_MAX_LEDGER_SIZE": ("metrics", "max_ledger_size", int),
    "QA_SLOW_EXECUTION_MS": ("metrics", "slow_execution_ms", float),
    "QA_RETENTION_HOURS": ("retention", "retention_hours", float),
}


def _merge_blocks(raw: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(DEFAULT_POLICY)
    for block, defaults in DEFAULT_POLICY.items():
        value = raw.get(block)
        if value is None:
            continue
        if not isinstance(value, dict):
            raise ValueError(f"qa.{block} deve ser um mapeamento")
        merged[block] = {**defaults, **value}
    return merged


def _apply_env(policy: Dict[str, Any]) -> Dict[str, Any]:
    for env_name, (block, key, convert) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw.strip() == "":
            continue
        try:
            policy[block][key] = convert(raw)
        except (TypeError, ValueError):
            LOGGER.warning("Ignorando %s=%r (valor inválido)", env_name, raw)
    return policy


def load_qa_policy(
    path: Optional[str] = None,
) -> Tuple[Dict[str, Any], str, Optional[str]]:
    """Devolve (policy, status, erro); status em ``ok|missing|invalid``."""
    policy_path = Path(path or os.getenv("QA_POLICY_PATH", _QA_POLICY_PATH))
    if not policy_path.exists():
        error = f"Política de QA ausente em {policy_path}"
        LOGGER.warning("%s; usando DEFAULT_POLICY", error)
        return _apply_env(copy.deepcopy(DEFAULT_POLICY)), "missing", error

    try:
        raw = load_yaml_cached(str(policy_path)) or {}
        if not isinstance(raw, dict):
            raise ValueError("qa.yaml deve ser um mapeamento")
        block = raw.get("qa") or {}
        if not isinstance(block, dict):
            raise ValueError("Bloco 'qa' deve ser um mapeamento")
        policy = _apply_env(_merge_blocks(block))
        LOGGER.info("Política de QA carregada de %s: %r", policy_path, policy)
        return policy, "ok", None
    except (yaml.YAMLError, OSError, ValueError) as exc:
        LOGGER.error(
            "Falha ao carregar política de QA de %s; usando DEFAULT_POLICY",
            policy_path,
            exc_info=True,
        )
        return _apply_env(copy.deepcopy(DEFAULT_POLICY)), "invalid", str(exc)


def build_validation_config(policy: Dict[str, Any]) -> ValidationConfig:
    cfg = policy.get("shadow_validation") or {}
    return ValidationConfig(
        enabled=bool(cfg.get("enabled")),
        divergence_threshold=float(cfg.get("divergence_threshold", 0.1)),
        sample_rate=float(cfg.get("sample_rate", 0.1)),
        shadow_model=str(cfg.get("shadow_model") or "gpt-4"),
        timeout_s=float(cfg.get("timeout_s", 30.0)),
        stats_log_interval=int(cfg.get("stats_log_interval", 100)),
        drift_alert_rate=float(cfg.get("drift_alert_rate", 0.1)),
    )


def build_health_thresholds(policy: Dict[str, Any]) -> HealthThresholds:
    cfg = policy.get("health") or {}
    return HealthThresholds(
        window=timedelta(minutes=float(cfg.get("window_minutes", 60))),
        min_success_rate=float(cfg.get("min_success_rate", 80.0)),
        max_avg_execution_ms=float(cfg.get("max_avg_execution_ms", 45000.0)),
        min_quality_score=float(cfg.get("min_quality_score", 70.0)),
    )


__all__ = [
    "DEFAULT_POLICY",
    "build_health_thresholds",
    "build_validation_config",
    "load_qa_policy",
]
