# src/accounts_oidc/app/core/trace.py
from __future__ import annotations

import logging
import os
import time
from typing import Any, Mapping, Optional

_log = logging.getLogger("accounts_oidc.auth")

_TRUTHY = ("1", "true", "yes", "on")


def trace_enabled() -> bool:
    # OIDC_TRACE may change at runtime
    return (os.getenv("OIDC_TRACE", "")).lower() in _TRUTHY


def mask(secret: Optional[str], keep: int = 6) -> str:
    """Shorten a token/code/secret for log output."""
    if not secret:
        return "<none>"
    if len(secret) <= keep:
        return "***"
    return secret[:keep] + "..."


def _fmt_kv(d: Mapping[str, Any]) -> str:
    return " ".join(f"{k}={d[k]}" for k in d)


def auth_trace(event: str, **kv: Any) -> None:
    """
    Emit a single-line structured log ONLY when OIDC_TRACE=true.
    Example:
      [oidc] token.exchange.ok ts=... slug=keycloak status=200
    """
    if not trace_enabled():
        return
    kv2 = {"ts": int(time.time()), **kv}
    _log.info("[oidc] %s %s", event, _fmt_kv(kv2))
