# src/accounts_oidc/app/core/aio.py
from __future__ import annotations

import inspect
from typing import Any


async def maybe_await(value: Any) -> Any:
    """Hooks and stores supplied by the host may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value
