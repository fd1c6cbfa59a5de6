#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Script: clear_old_metrics.py
Purpose: Job de retenção — remove do ledger em memória as métricas mais
antigas que a janela configurada, via POST /ops/qa/cleanup.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from typing import Any, Dict, Optional, Tuple
from urllib import error, request

DEFAULT_API_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = max(1, int(os.getenv("QA_CLEANUP_TIMEOUT_S", "10")))
CLEANUP_RETRIES = max(1, int(os.getenv("QA_CLEANUP_RETRIES", "3")))
CLEANUP_RETRY_BACKOFF = max(0.0, float(os.getenv("QA_CLEANUP_RETRY_BACKOFF_S", "2")))


def build_request(
    api_url: str, token: str, older_than_hours: Optional[float]
) -> request.Request:
    body: Dict[str, Any] = {}
    if older_than_hours is not None:
        body["older_than_hours"] = older_than_hours
    return request.Request(
        f"{api_url.rstrip('/')}/ops/qa/cleanup",
        data=json.dumps(body).encode("utf-8"),
        headers={"Content-Type": "application/json", "X-Ops-Token": token},
        method="POST",
    )


def post_cleanup(
    api_url: str,
    token: str,
    older_than_hours: Optional[float],
    *,
    timeout: int = DEFAULT_TIMEOUT,
    retries: int = CLEANUP_RETRIES,
    backoff: float = CLEANUP_RETRY_BACKOFF,
) -> Tuple[bool, Dict[str, Any]]:
    last_error = ""
    for attempt in range(1, retries + 1):
        req = build_request(api_url, token, older_than_hours)
        try:
            with request.urlopen(req, timeout=timeout) as resp:
                payload = json.loads(resp.read().decode("utf-8") or "{}")
            return True, payload
        except error.HTTPError as exc:
            # 4xx não melhora com retry
            if 400 <= exc.code < 500:
                return False, {"error": f"HTTP {exc.code}", "attempt": attempt}
            last_error = f"HTTP {exc.code}"
        except (error.URLError, TimeoutError, ValueError) as exc:
            last_error = str(exc)
        if attempt < retries:
            time.sleep(backoff * attempt)
    return False, {"error": last_error, "attempt": retries}


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Limpa métricas antigas do núcleo de QA")
    parser.add_argument("--api-url", default=os.getenv("QA_API_URL", DEFAULT_API_URL))
    parser.add_argument(
        "--older-than-hours",
        type=float,
        default=None,
        help="Janela de retenção; default = retention_hours da política",
    )
    args = parser.parse_args(argv)

    token = os.getenv("QA_OPS_TOKEN", "")
    if not token:
        print("QA_OPS_TOKEN não definido", file=sys.stderr)
        return 2

    ok, payload = post_cleanup(args.api_url, token, args.older_than_hours)
    print(json.dumps(payload, ensure_ascii=False))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
