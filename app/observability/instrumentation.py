# app/observability/instrumentation.py
# Facade de Observability: sem dependência de prometheus_client aqui.
# Implementação/registro ficam em app/observability/runtime.py, via set_backend().

from contextlib import contextmanager
from typing import Dict, Any, Optional
import time


# ---------------- Backend plugável (injetado por runtime.bootstrap) ---------


class _Backend:
    def inc(self, name: str, labels: Dict[str, str], value: float = 1.0) -> None: ...

    def observe(self, name: str, value: float, labels: Dict[str, str]) -> None: ...

    def set_gauge(self, name: str, value: float, labels: Dict[str, str]) -> None: ...

    def start_span(self, name: str, attributes: Dict[str, Any]): ...

    def end_span(
        self,
        span,
        exc_type: Optional[type] = None,
        exc_value: Optional[BaseException] = None,
        exc_tb: Any = None,
    ) -> None: ...

    def set_span_attr(self, span, key: str, value: Any) -> None: ...


_backend: Optional[_Backend] = None


def set_backend(backend: _Backend) -> None:
    global _backend
    _backend = backend


def _ensure():
    if _backend is None:
        raise RuntimeError(
            "Observability backend not initialized. Call runtime.bootstrap()."
        )


# ----------------- API genérica --------------------------------------------


def counter(name: str, **labels) -> None:
    _ensure()
    # Suporte a incremento arbitrário sem virar label
    value = float(labels.pop("_value", 1.0))
    _backend.inc(name, labels, value=value)


def histogram(name: str, value: float, **labels) -> None:
    _ensure()
    _backend.observe(name, value, labels)


def gauge(name: str, value: float, **labels) -> None:
    _ensure()
    _backend.set_gauge(name, float(value), labels)


@contextmanager
def trace(op: str, **attributes):
    _ensure()
    span = _backend.start_span(op, attributes)
    t0 = time.perf_counter()
    exc: Optional[BaseException] = None
    try:
        yield span
    except Exception as e:
        exc = e
        _backend.set_span_attr(span, "error", True)
        _backend.set_span_attr(span, "exception", repr(e))
        raise
    finally:
        _backend.set_span_attr(span, "latency_ms", (time.perf_counter() - t0) * 1000.0)
        if exc is not None:
            _backend.end_span(span, type(exc), exc, exc.__traceback__)
        else:
            _backend.end_span(span, None, None, None)
