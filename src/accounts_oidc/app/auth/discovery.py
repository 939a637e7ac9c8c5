# src/accounts_oidc/app/auth/discovery.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

import httpx
from pydantic import ValidationError

from accounts_oidc.app.core.errors import ConfigError, DiscoveryError
from accounts_oidc.app.core.http import http_client
from accounts_oidc.app.core.trace import auth_trace
from accounts_oidc.app.models import DiscoveryDocument

_log = logging.getLogger(__name__)

WELL_KNOWN_PATH = ".well-known/openid-configuration"


def well_known_url(base_url: str) -> str:
    sep = "" if base_url.endswith("/") else "/"
    return f"{base_url}{sep}{WELL_KNOWN_PATH}"


class WellKnownCache:
    """
    Discovery documents keyed by the exact `base_url` string.

    - No TTL: a document stays until clear()/forget() is called.
    - Failures are not cached; the next resolve() tries again.
    - Concurrent first calls for one key share a single in-flight fetch.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 15.0):
        self._client = client
        self._timeout = timeout
        self._docs: Dict[str, DiscoveryDocument] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    def __contains__(self, base_url: str) -> bool:
        return base_url in self._docs

    def __len__(self) -> int:
        return len(self._docs)

    def clear(self) -> None:
        self._docs.clear()

    def forget(self, base_url: Optional[str]) -> None:
        if base_url:
            self._docs.pop(base_url, None)

    async def resolve(self, base_url: Optional[str]) -> DiscoveryDocument:
        if not base_url:
            raise ConfigError("`baseUrl` is not set in service configuration; unable to auto-detect endpoints.")

        doc = self._docs.get(base_url)
        if doc is not None:
            return doc

        task = self._inflight.get(base_url)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(base_url))
            self._inflight[base_url] = task
        else:
            auth_trace("discovery.join_inflight", base_url=base_url)
        # one cancelled waiter must not cancel the fetch the others are waiting on
        return await asyncio.shield(task)

    async def _fetch_and_store(self, base_url: str) -> DiscoveryDocument:
        try:
            doc = await self._fetch(base_url)
            self._docs[base_url] = doc
            return doc
        finally:
            self._inflight.pop(base_url, None)

    async def _fetch(self, base_url: str) -> DiscoveryDocument:
        url = well_known_url(base_url)
        auth_trace("discovery.fetch", url=url)
        try:
            async with http_client(self._client, self._timeout) as client:
                r = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as ex:
            _log.warning("OIDC discovery request to %s failed: %s", url, ex)
            raise DiscoveryError(f"discovery request to {url} failed: {ex}") from ex

        if r.status_code // 100 != 2:
            auth_trace("discovery.bad_status", url=url, status=r.status_code)
            raise DiscoveryError(f"discovery at {url} returned HTTP {r.status_code}")

        try:
            payload = r.json()
        except ValueError as ex:
            raise DiscoveryError(f"discovery at {url} did not return JSON") from ex
        if not isinstance(payload, dict):
            raise DiscoveryError(f"discovery at {url} did not return a JSON object")

        try:
            doc = DiscoveryDocument.model_validate(payload)
        except ValidationError as ex:
            raise DiscoveryError(f"discovery at {url} is malformed: {ex}") from ex

        _log.info("Fetched OIDC discovery document from %s", url)
        auth_trace("discovery.ok", url=url)
        return doc
