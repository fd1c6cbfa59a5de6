# app/validation/shadow.py
"""Shadow Validator.

Compara o resultado primário com uma computação alternativa (shadow) sem
nunca bloquear nem alterar o resultado entregue ao usuário. Falhas do lado
shadow viram um "pass" não-bloqueante; divergências acima do limiar são
contabilizadas e logadas.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, TypeVar

from app.telemetry.sink import MonitoringSink, safe_record
from app.validation.divergence import Difference, diff

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

ShadowCompute = Callable[[], Any]


@dataclass(frozen=True)
class ValidationConfig:
    enabled: bool = False
    divergence_threshold: float = 0.1
    sample_rate: float = 0.1
    shadow_model: str = "gpt-4"
    timeout_s: float = 30.0
    stats_log_interval: int = 100
    drift_alert_rate: float = 0.1

    def __post_init__(self) -> None:
        if not 0.0 < float(self.divergence_threshold) <= 1.0:
            raise ValueError(
                f"divergence_threshold deve estar em (0, 1]: {self.divergence_threshold}"
            )
        if not 0.0 <= float(self.sample_rate) <= 1.0:
            raise ValueError(f"sample_rate deve estar em [0, 1]: {self.sample_rate}")
        if float(self.timeout_s) <= 0:
            raise ValueError(f"timeout_s deve ser positivo: {self.timeout_s}")


@dataclass(frozen=True)
class ValidationContext:
    stage: str
    input: Any = None


@dataclass(frozen=True)
class ValidationResult:
    primary: Any
    shadow: Any
    divergence: float
    differences: Tuple[Difference, ...]
    passed: bool
    shadow_error: Optional[BaseException] = None
    context: Optional[ValidationContext] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.context.stage if self.context else None,
            "divergence": self.divergence,
            "passed": self.passed,
            "differences": [d.to_dict() for d in self.differences],
            "shadow_error": repr(self.shadow_error) if self.shadow_error else None,
        }


@dataclass(frozen=True)
class ValidationStats:
    total_validations: int
    divergence_count: int
    divergence_rate: float


class ShadowValidator:
    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        *,
        sink: Optional[MonitoringSink] = None,
    ) -> None:
        self.config = config or ValidationConfig()
        self._sink = sink
        self._lock = threading.Lock()
        self._total_validations = 0
        self._divergence_count = 0

    def should_run_shadow_validation(self) -> bool:
        if not self.config.enabled:
            return False
        return random.random() < self.config.sample_rate

    def _tags(self, context: ValidationContext, outcome: str) -> Dict[str, Any]:
        return {
            "stage": context.stage,
            "shadow_model": self.config.shadow_model,
            "outcome": outcome,
        }

    async def _run_shadow(self, shadow_compute: ShadowCompute) -> Any:
        timeout = self.config.timeout_s
        if inspect.iscoroutinefunction(shadow_compute):
            return await asyncio.wait_for(shadow_compute(), timeout=timeout)

        # callable síncrono roda fora do loop; o prazo vale para a chamada inteira
        loop = asyncio.get_running_loop()
        started = loop.time()
        outcome = await asyncio.wait_for(
            loop.run_in_executor(None, shadow_compute), timeout=timeout
        )
        if inspect.isawaitable(outcome):
            remaining = max(timeout - (loop.time() - started), 0.0)
            return await asyncio.wait_for(outcome, timeout=remaining)
        return outcome

    async def validate(
        self,
        primary: Any,
        shadow_compute: ShadowCompute,
        context: ValidationContext,
    ) -> ValidationResult:
        with self._lock:
            self._total_validations += 1
            total = self._total_validations

        try:
            shadow = await self._run_shadow(shadow_compute)
        except Exception as exc:
            LOGGER.error(
                "Shadow validation falhou (stage=%s); seguindo com o primário",
                context.stage,
                exc_info=True,
            )
            safe_record(
                self._sink,
                f"shadow_validation.{context.stage}",
                0.0,
                False,
                repr(exc),
                self._tags(context, "shadow_error"),
            )
            self._maybe_log_stats(total)
            return ValidationResult(
                primary=primary,
                shadow=None,
                divergence=0.0,
                differences=(),
                passed=True,
                shadow_error=exc,
                context=context,
            )

        report = diff(primary, shadow)
        divergence = report.divergence_score
        passed = divergence <= self.config.divergence_threshold

        if not passed:
            with self._lock:
                self._divergence_count += 1
            LOGGER.warning(
                "Shadow validation detectou divergência acima do limiar: "
                "stage=%s divergence=%.4f threshold=%.4f rate=%.4f differences=%r",
                context.stage,
                divergence,
                self.config.divergence_threshold,
                self.get_divergence_rate(),
                [d.to_dict() for d in report.differences[:10]],
            )

        safe_record(
            self._sink,
            f"shadow_validation.{context.stage}",
            divergence,
            passed,
            None if passed else f"divergence {divergence:.4f}",
            self._tags(context, "passed" if passed else "diverged"),
        )
        self._maybe_log_stats(total)

        return ValidationResult(
            primary=primary,
            shadow=shadow,
            divergence=divergence,
            differences=report.differences,
            passed=passed,
            shadow_error=None,
            context=context,
        )

    def _maybe_log_stats(self, total: int) -> None:
        interval = self.config.stats_log_interval
        if interval <= 0 or total % interval != 0:
            return
        stats = self.get_stats()
        LOGGER.info("Shadow validation stats: %r", stats)
        if stats.divergence_rate > self.config.drift_alert_rate:
            LOGGER.warning(
                "Taxa de divergência do shadow %.4f acima de %.4f - possível drift do modelo",
                stats.divergence_rate,
                self.config.drift_alert_rate,
            )

    def get_divergence_rate(self) -> float:
        with self._lock:
            if self._total_validations == 0:
                return 0.0
            return self._divergence_count / self._total_validations

    def get_stats(self) -> ValidationStats:
        with self._lock:
            total = self._total_validations
            count = self._divergence_count
        return ValidationStats(
            total_validations=total,
            divergence_count=count,
            divergence_rate=(count / total) if total else 0.0,
        )

    def describe(self) -> Dict[str, Any]:
        """Stats + config ativa, no formato exportado pelo /ops."""
        payload = asdict(self.get_stats())
        payload["config"] = asdict(self.config)
        return payload

    def reset(self) -> None:
        with self._lock:
            self._total_validations = 0
            self._divergence_count = 0


_BACKGROUND_TASKS: Set[asyncio.Task] = set()


def _on_shadow_done(stage: str, task: asyncio.Task) -> None:
    _BACKGROUND_TASKS.discard(task)
    if task.cancelled():
        LOGGER.info("Shadow validation cancelada (stage=%s)", stage)
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.error(
            "Erro na shadow validation em background (stage=%s)",
            stage,
            exc_info=(type(exc), exc, exc.__traceback__),
        )


async def run_with_shadow(
    stage: str,
    primary_fn: Callable[[], Awaitable[T]],
    shadow_fn: Callable[[], Awaitable[Any]],
    input: Any,
    validator: ShadowValidator,
) -> T:
    """Executa o primário e, se amostrado, dispara o shadow sem aguardá-lo."""
    if not validator.should_run_shadow_validation():
        return await primary_fn()

    primary = await primary_fn()
    task = asyncio.get_running_loop().create_task(
        validator.validate(primary, shadow_fn, ValidationContext(stage=stage, input=input))
    )
    _BACKGROUND_TASKS.add(task)
    task.add_done_callback(lambda t: _on_shadow_done(stage, t))
    return primary


__all__ = [
    "ShadowValidator",
    "ValidationConfig",
    "ValidationContext",
    "ValidationResult",
    "ValidationStats",
    "run_with_shadow",
]
