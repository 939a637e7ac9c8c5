# src/accounts_oidc/app/auth/endpoints.py
from __future__ import annotations

from typing import Dict
from urllib.parse import urlsplit

from accounts_oidc.app.auth.discovery import WellKnownCache
from accounts_oidc.app.core.errors import ConfigError, DiscoveryError
from accounts_oidc.app.core.trace import auth_trace
from accounts_oidc.app.models import EndpointName, ProviderConfig

# which -> field on ProviderConfig holding the explicit override
_EXPLICIT_FIELD: Dict[str, str] = {
    "authorization": "authorize_endpoint",
    "token": "token_endpoint",
    "userinfo": "userinfo_endpoint",
}

CALLBACK_PREFIX = "/_oauth"


# ------------------------
# Redirect URIs (fixed, not configurable)
# ------------------------
def absolute_url(root_url: str, path: str = "") -> str:
    root = root_url if root_url.endswith("/") else root_url + "/"
    return root + path.lstrip("/")


def app_root_uri(root_url: str) -> str:
    """Where the browser finally lands after a redirect-style login."""
    return absolute_url(root_url)


def callback_path(slug: str) -> str:
    return f"{CALLBACK_PREFIX}/{slug}"


def redirection_uri(root_url: str, slug: str) -> str:
    """
    The OAuth redirect_uri for `slug`: <root>/_oauth/<slug>.

    The callback route is wired to exactly this path, so it cannot be
    overridden through configuration or login options.
    """
    return absolute_url(root_url, callback_path(slug))


def join_base(base_url: str, path: str) -> str:
    if base_url.endswith("/"):
        return base_url + path.lstrip("/")
    return base_url + "/" + path.lstrip("/")


def _is_absolute(url: str) -> bool:
    parts = urlsplit(url)
    return bool(parts.scheme and parts.netloc)


# ------------------------
# Endpoint resolution
# ------------------------
class EndpointResolver:
    """Explicit configuration first, then the IdP's discovery document."""

    def __init__(self, well_known: WellKnownCache):
        self.well_known = well_known

    async def resolve_endpoint(self, config: ProviderConfig, which: EndpointName) -> str:
        field = _EXPLICIT_FIELD.get(which)
        if field is None:
            raise ValueError(f"unknown endpoint {which!r}; expected one of {sorted(_EXPLICIT_FIELD)}")

        explicit = getattr(config, field)
        if explicit:
            return explicit

        if not config.base_url:
            raise ConfigError(
                f"neither `{field}` nor `baseUrl` is set in service configuration; "
                f"unable to resolve the {which} endpoint"
            )

        doc = await self.well_known.resolve(config.base_url)
        discovered = getattr(doc, f"{which}_endpoint", None)
        if not discovered or not isinstance(discovered, str):
            raise DiscoveryError(f"discovery document for {config.base_url} has no {which}_endpoint")

        url = discovered if _is_absolute(discovered) else join_base(config.base_url, discovered)
        auth_trace("endpoint.resolved", which=which, url=url)
        return url

    async def authorization_endpoint(self, config: ProviderConfig) -> str:
        return await self.resolve_endpoint(config, "authorization")

    async def token_endpoint(self, config: ProviderConfig) -> str:
        return await self.resolve_endpoint(config, "token")

    async def userinfo_endpoint(self, config: ProviderConfig) -> str:
        return await self.resolve_endpoint(config, "userinfo")
