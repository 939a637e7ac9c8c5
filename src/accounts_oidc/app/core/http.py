# src/accounts_oidc/app/core/http.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx


@asynccontextmanager
async def http_client(client: Optional[httpx.AsyncClient], timeout: float) -> AsyncIterator[httpx.AsyncClient]:
    """
    Use the host's shared client when one was injected; otherwise open a
    short-lived one and close it afterwards. A shared client is never closed here.
    """
    own = client or httpx.AsyncClient(timeout=timeout)
    try:
        yield own
    finally:
        if client is None:
            await own.aclose()
