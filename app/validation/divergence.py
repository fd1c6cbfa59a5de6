# app/validation/divergence.py
"""Diff estrutural entre o resultado primário e o shadow.

Percorre os dois valores em paralelo e conta as posições-folha comparadas.
Cada folha divergente vira uma ``Difference`` com o caminho
(``secao.itens[2].titulo``) e os dois valores. O score é a fração de folhas
divergentes sobre o total comparado.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Tuple


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<missing>"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


@dataclass(frozen=True)
class Difference:
    path: str
    primary_value: Any
    shadow_value: Any

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "primary_value": None if self.primary_value is MISSING else self.primary_value,
            "shadow_value": None if self.shadow_value is MISSING else self.shadow_value,
            "missing": (
                "primary"
                if self.primary_value is MISSING
                else ("shadow" if self.shadow_value is MISSING else None)
            ),
        }


@dataclass(frozen=True)
class DivergenceReport:
    differences: Tuple[Difference, ...]
    divergence_score: float
    leaves_compared: int


def _is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def _is_sequence(value: Any) -> bool:
    # str/bytes são folhas, não sequências
    return isinstance(value, (list, tuple))


def _key_path(base: str, key: Any) -> str:
    return f"{base}.{key}" if base else str(key)


def _index_path(base: str, index: int) -> str:
    return f"{base}[{index}]"


def _scalars_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    try:
        return bool(a == b)
    except Exception:
        return False


class _Walker:
    """Percurso em profundidade com pilha explícita.

    Payloads aninhados além do limite de recursão do interpretador são
    comparados normalmente; a ordem das diferenças segue a ordem das chaves
    do primário (e depois as do shadow) e dos índices.
    """

    def __init__(self) -> None:
        self.differences: List[Difference] = []
        self.leaves = 0

    def _leaf(self, path: str, a: Any, b: Any, differs: bool) -> None:
        self.leaves += 1
        if differs:
            self.differences.append(Difference(path, a, b))

    def walk(self, path: str, a: Any, b: Any) -> None:
        # cada item: (caminho, primário, shadow, folha_forçada)
        stack: List[Tuple[str, Any, Any, bool]] = [(path, a, b, False)]
        while stack:
            cur_path, x, y, forced = stack.pop()
            if forced:
                self._leaf(cur_path, x, y, True)
            elif _is_mapping(x) and _is_mapping(y):
                stack.extend(reversed(self._mapping_children(cur_path, x, y)))
            elif _is_sequence(x) and _is_sequence(y):
                stack.extend(reversed(self._sequence_children(cur_path, x, y)))
            elif _is_mapping(x) or _is_mapping(y) or _is_sequence(x) or _is_sequence(y):
                # tipos estruturais incompatíveis contam como uma única folha
                self._leaf(cur_path, x, y, True)
            else:
                self._leaf(cur_path, x, y, not _scalars_equal(x, y))

    @staticmethod
    def _mapping_children(
        path: str, a: Mapping, b: Mapping
    ) -> List[Tuple[str, Any, Any, bool]]:
        keys = list(a.keys())
        keys.extend(k for k in b.keys() if k not in a)
        children = []
        for key in keys:
            child = _key_path(path, key)
            if key not in b:
                children.append((child, a[key], MISSING, True))
            elif key not in a:
                children.append((child, MISSING, b[key], True))
            else:
                children.append((child, a[key], b[key], False))
        return children

    @staticmethod
    def _sequence_children(
        path: str, a: Sequence, b: Sequence
    ) -> List[Tuple[str, Any, Any, bool]]:
        shared = min(len(a), len(b))
        children = [(_index_path(path, idx), a[idx], b[idx], False) for idx in range(shared)]
        children.extend(
            (_index_path(path, idx), a[idx], MISSING, True) for idx in range(shared, len(a))
        )
        children.extend(
            (_index_path(path, idx), MISSING, b[idx], True) for idx in range(shared, len(b))
        )
        return children


def diff(primary: Any, shadow: Any) -> DivergenceReport:
    """Compara ``primary`` e ``shadow`` e devolve diferenças + score em [0, 1]."""
    walker = _Walker()
    walker.walk("", primary, shadow)
    score = len(walker.differences) / walker.leaves if walker.leaves else 0.0
    return DivergenceReport(
        differences=tuple(walker.differences),
        divergence_score=score,
        leaves_compared=walker.leaves,
    )


__all__ = ["MISSING", "Difference", "DivergenceReport", "diff"]
