from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Toggle global
_DISABLE = bool(int(os.getenv("FILECACHE_DISABLE", "0") or "0"))

_lock = threading.Lock()
_cache: Dict[str, Dict[str, Any]] = {}


def _stat_mtime(path: str) -> float:
    try:
        return Path(path).stat().st_mtime
    except OSError:
        return -1.0


def _get(path: str) -> Optional[Dict[str, Any]]:
    return _cache.get(path)


def _set(path: str, mtime: float, data: Any) -> None:
    _cache[path] = {"mtime": mtime, "data": data}


def load_yaml_cached(path: str) -> Dict[str, Any]:
    """Carrega YAML com cache por mtime.

    Erros de leitura/parse propagam (``OSError``/``yaml.YAMLError``); quem
    chama decide o fallback.
    """
    p_path = Path(path).resolve()
    if _DISABLE:
        return yaml.safe_load(p_path.read_text(encoding="utf-8")) or {}
    p = str(p_path)
    m = _stat_mtime(p)
    with _lock:
        entry = _get(p)
        if entry and entry.get("mtime") == m and entry.get("data") is not None:
            return entry["data"]
        data = yaml.safe_load(p_path.read_text(encoding="utf-8")) or {}
        _set(p, m, data)
        return data


def clear_cache() -> None:
    with _lock:
        _cache.clear()
