# src/accounts_oidc/app/auth/userinfo.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from accounts_oidc.app.auth.endpoints import EndpointResolver
from accounts_oidc.app.core.errors import ProtocolError
from accounts_oidc.app.core.http import http_client
from accounts_oidc.app.core.trace import auth_trace
from accounts_oidc.app.models import ProviderConfig

_log = logging.getLogger(__name__)


class IdentityFetcher:
    """
    Calls the UserInfo endpoint with the access token and returns whatever
    JSON object the IdP sends back. The shape is IdP-specific.
    """

    def __init__(self, resolver: EndpointResolver, client: Optional[httpx.AsyncClient] = None, timeout: float = 15.0):
        self.resolver = resolver
        self._client = client
        self._timeout = timeout

    async def fetch(self, config: ProviderConfig, access_token: str) -> Dict[str, Any]:
        userinfo_ep = await self.resolver.userinfo_endpoint(config)
        try:
            async with http_client(self._client, self._timeout) as client:
                r = await client.post(
                    userinfo_ep,
                    data={"access_token": access_token},
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as ex:
            _log.warning("userinfo request to %s failed: %s", userinfo_ep, ex)
            raise ProtocolError(f"userinfo request failed: {ex}") from ex

        if r.status_code != 200:
            auth_trace("userinfo.failed", endpoint=userinfo_ep, status=r.status_code)
            raise ProtocolError(f"userinfo request failed: {r.status_code}", detail=r.text, status_code=r.status_code)

        try:
            identity = r.json()
        except ValueError as ex:
            raise ProtocolError("userinfo endpoint did not return JSON", detail=r.text, status_code=200) from ex
        if not isinstance(identity, dict):
            raise ProtocolError("userinfo endpoint did not return a JSON object", detail=r.text, status_code=200)

        auth_trace("userinfo.ok", endpoint=userinfo_ep, fields=",".join(sorted(identity)))
        return identity
