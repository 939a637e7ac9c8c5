# src/accounts_oidc/app/auth/tokens.py
from __future__ import annotations

import binascii
import json
import logging
from typing import Any, Dict, Optional

import httpx
from jwt.utils import base64url_decode
from pydantic import ValidationError

from accounts_oidc.app.auth.endpoints import EndpointResolver, redirection_uri
from accounts_oidc.app.core.errors import MalformedTokenError, ProtocolError
from accounts_oidc.app.core.http import http_client
from accounts_oidc.app.core.trace import auth_trace, mask
from accounts_oidc.app.models import DecodedJWT, ProviderConfig, TokenResponse

_log = logging.getLogger(__name__)


# ------------------------
# ID token decoding (NO signature check)
# ------------------------
def _decode_segment(segment: str, which: str) -> Dict[str, Any]:
    try:
        # base64url_decode pads with "=" to a multiple of 4 before decoding
        raw = base64url_decode(segment.encode("ascii"))
        obj = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as ex:
        raise MalformedTokenError(f"JWT {which} is not base64url-encoded JSON") from ex
    if not isinstance(obj, dict):
        raise MalformedTokenError(f"JWT {which} is not a JSON object")
    return obj


def decode_jwt(token: str) -> DecodedJWT:
    """
    Decode a JWT **without** checking its signature.

    Only acceptable for an ID token we fetched ourselves from the IdP's token
    endpoint over TLS: we witnessed its issuance, so it was not forged in
    transit. Never use this on a token relayed by a browser.
    """
    if not isinstance(token, str):
        raise MalformedTokenError("JWT must be a string")
    parts = token.split(".")
    if len(parts) != 3:
        raise MalformedTokenError(f"JWT must have 3 dot-separated segments, got {len(parts)}")
    header_b64, payload_b64, signature = parts
    header = _decode_segment(header_b64, "header")
    payload = _decode_segment(payload_b64, "payload")
    return DecodedJWT(header=header, payload=payload, signature=signature)


# ------------------------
# Authorization code -> tokens
# ------------------------
class TokenExchanger:
    def __init__(
        self,
        resolver: EndpointResolver,
        root_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.resolver = resolver
        self.root_url = root_url
        self._client = client
        self._timeout = timeout

    def form(self, config: ProviderConfig, slug: str, code: str) -> Dict[str, str]:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": config.client_id,
            # must match the authorization request; Entra and others check it
            "redirect_uri": redirection_uri(self.root_url, slug),
        }
        if config.client_secret:
            data["client_secret"] = config.client_secret
        return data

    async def exchange(self, config: ProviderConfig, slug: str, code: str) -> TokenResponse:
        if not code:
            raise ProtocolError("missing authorization code")

        token_ep = await self.resolver.token_endpoint(config)
        data = self.form(config, slug, code)
        auth_trace("token.exchange.begin", slug=slug, endpoint=token_ep,
                   code=mask(code), secret_set=bool(config.client_secret))

        try:
            async with http_client(self._client, self._timeout) as client:
                tr = await client.post(token_ep, data=data, headers={"Accept": "application/json"})
        except httpx.HTTPError as ex:
            _log.warning("token request to %s failed: %s", token_ep, ex)
            raise ProtocolError(f"token request failed: {ex}") from ex

        if tr.status_code != 200:
            auth_trace("token.exchange.failed", slug=slug, status=tr.status_code)
            # IdPs usually send a JSON error here; keep it verbatim for diagnostics
            raise ProtocolError(
                f"token exchange failed: {tr.status_code}",
                detail=tr.text,
                status_code=tr.status_code,
            )

        try:
            body = tr.json()
        except ValueError as ex:
            raise ProtocolError("token endpoint did not return JSON", detail=tr.text, status_code=200) from ex
        if not isinstance(body, dict):
            raise ProtocolError("token endpoint did not return a JSON object", detail=tr.text, status_code=200)

        missing = [k for k in ("id_token", "access_token") if not body.get(k)]
        if missing:
            raise ProtocolError(f"no {' / '.join(missing)} in token response", status_code=200)
        try:
            tok = TokenResponse.model_validate(body)
        except ValidationError as ex:
            raise ProtocolError("malformed token response", detail=str(ex), status_code=200) from ex

        auth_trace("token.exchange.ok", slug=slug, token_type=tok.token_type, expires_in=tok.expires_in)
        return tok
