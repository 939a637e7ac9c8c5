# src/accounts_oidc/app/auth/authorize.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

from accounts_oidc.app.auth.endpoints import EndpointResolver, app_root_uri, redirection_uri
from accounts_oidc.app.auth.state import StateCodec
from accounts_oidc.app.core.trace import auth_trace
from accounts_oidc.app.models import DEFAULT_SCOPE, LoginAttempt, LoginOptions, ProviderConfig

# encoded exactly once even in legacy mode
_FIXED_ENCODING_KEYS = ("redirect_uri", "scope", "state")
# what encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "!*'()"


def scope_string(scope: Union[str, List[str], None]) -> str:
    if scope is None:
        scope = DEFAULT_SCOPE
    if isinstance(scope, (list, tuple)):
        return " ".join(s for s in scope if s)
    return scope


def resolve_login_style(config: ProviderConfig, options: Optional[LoginOptions] = None) -> str:
    if options is not None and options.login_style:
        return options.login_style
    return config.login_style or "popup"


def _legacy_quote(s: str) -> str:
    return quote(s, safe=_URI_COMPONENT_SAFE)


def encode_query(params: Dict[str, str], *, legacy: bool = False) -> str:
    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        if legacy and key not in _FIXED_ENCODING_KEYS:
            pairs.append((_legacy_quote(key), _legacy_quote(value)))
        else:
            pairs.append((key, value))
    return urlencode(pairs)


def append_query(url: str, query: str) -> str:
    """Append to whatever query the endpoint URL already carries."""
    if not query:
        return url
    parts = urlsplit(url)
    merged = f"{parts.query}&{query}" if parts.query else query
    return urlunsplit((parts.scheme, parts.netloc, parts.path, merged, parts.fragment))


class AuthorizationRequestBuilder:
    """
    Builds the authorization-endpoint URL for one login attempt.

    Extra parameters come first (configured, then per-call), then the
    protocol parameters, which always win:
      response_type=code, client_id, scope, redirect_uri, state
    Falsy values are dropped rather than sent as empty query members.
    """

    def __init__(self, resolver: EndpointResolver, state_codec: StateCodec, root_url: str):
        self.resolver = resolver
        self.state_codec = state_codec
        self.root_url = root_url

    def parameters(
        self,
        config: ProviderConfig,
        slug: str,
        credential_token: str,
        options: Optional[LoginOptions] = None,
    ) -> Dict[str, str]:
        opts = options or LoginOptions()
        scope = opts.scope if opts.scope else config.scope
        login_style = resolve_login_style(config, opts)

        params: Dict[str, Any] = {**config.login_url_parameters, **opts.login_url_parameters}
        params.update({
            "response_type": "code",
            "client_id": config.client_id,
            "scope": scope_string(scope),
            "redirect_uri": redirection_uri(self.root_url, slug),
            # redirectUrl is the *final* landing page of a redirect-style
            # login, not the callback; popup logins ignore it
            "state": self.state_codec.encode(login_style, credential_token, app_root_uri(self.root_url)),
        })
        return {k: str(v) for k, v in params.items() if v}

    async def build(
        self,
        config: ProviderConfig,
        slug: str,
        credential_token: str,
        options: Optional[LoginOptions] = None,
    ) -> str:
        attempt = await self.attempt(config, slug, credential_token, options)
        return attempt.authorization_url

    async def attempt(
        self,
        config: ProviderConfig,
        slug: str,
        credential_token: str,
        options: Optional[LoginOptions] = None,
    ) -> LoginAttempt:
        endpoint = await self.resolver.authorization_endpoint(config)
        params = self.parameters(config, slug, credential_token, options)
        url = append_query(endpoint, encode_query(params, legacy=config.legacy_param_encoding))
        auth_trace("authorize.url_built", slug=slug, endpoint=endpoint, params=",".join(params))
        return LoginAttempt(
            slug=slug,
            credential_token=credential_token,
            login_style=resolve_login_style(config, options),
            redirect_uri=params["redirect_uri"],
            state=params["state"],
            authorization_url=url,
        )
