# src/accounts_oidc/app/registry.py
from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, List, Optional, Union

import httpx

from accounts_oidc.app.auth.authorize import AuthorizationRequestBuilder
from accounts_oidc.app.auth.client import AccountsClient, BrowserTransport, OIDCClient
from accounts_oidc.app.auth.discovery import WellKnownCache
from accounts_oidc.app.auth.endpoints import EndpointResolver
from accounts_oidc.app.auth.server import OIDCServer
from accounts_oidc.app.auth.state import StateCodec
from accounts_oidc.app.auth.tokens import TokenExchanger
from accounts_oidc.app.auth.userinfo import IdentityFetcher
from accounts_oidc.app.core.config import Settings
from accounts_oidc.app.core.errors import ConfigError, DuplicateSlugError
from accounts_oidc.app.core.trace import auth_trace
from accounts_oidc.app.models import ProviderConfig
from accounts_oidc.app.services.config_store import ConfigStore, InMemoryConfigStore, YamlConfigStore
from accounts_oidc.app.services.identity import DefaultProjection, IdentityProjection

_log = logging.getLogger(__name__)

DEFAULT_SLUG = "oidc"
# slugs end up as a URL path segment: /_oauth/<slug>
SLUG_RE = re.compile(r"[A-Za-z0-9_-]+")

Facade = Union[OIDCServer, OIDCClient]


class ProviderRegistry:
    """slug -> facade. Write-once per slug; register at start-up."""

    def __init__(self, context: "OIDCContext"):
        self._context = context
        self._providers: Dict[str, Facade] = {}

    def __contains__(self, slug: str) -> bool:
        return slug in self._providers

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    def slugs(self) -> List[str]:
        return list(self._providers)

    def get(self, slug: str) -> Facade:
        facade = self._providers.get(slug)
        if facade is None:
            raise ConfigError(f"no OIDC provider registered under {slug!r}")
        return facade

    def register(
        self,
        slug: str,
        *,
        projection: Optional[IdentityProjection] = None,
        transport: Optional[BrowserTransport] = None,
        accounts: Optional[AccountsClient] = None,
    ) -> Facade:
        if not isinstance(slug, str) or not SLUG_RE.fullmatch(slug):
            raise ConfigError(f"invalid slug {slug!r}; use letters, digits, '-' or '_'")
        if slug in self._providers:
            # two integrations on one namespace would silently share users
            raise DuplicateSlugError(slug)

        ctx = self._context
        facade: Facade
        if ctx.role == "server":
            facade = OIDCServer(ctx, slug, projection or DefaultProjection())
        else:
            if projection is not None:
                raise ConfigError("identity projections run server-side; not valid for a client context")
            facade = OIDCClient(ctx, slug, transport or ctx.transport, accounts or ctx.accounts)

        self._providers[slug] = facade
        auth_trace("registry.registered", slug=slug, role=ctx.role)
        return facade


class OIDCContext:
    """
    Everything one host process needs for OIDC logins, built explicitly and
    passed around instead of living in module globals. Two contexts in one
    process share nothing (caches, registry, secrets).
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        config_store: Optional[ConfigStore] = None,
        *,
        role: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[BrowserTransport] = None,
        accounts: Optional[AccountsClient] = None,
        register_default: bool = True,
    ):
        self.settings = settings or Settings()
        self.role = role or self.settings.role
        if self.role not in ("server", "client"):
            raise ConfigError(f"Unsupported role: {self.role}")
        self.config_store: ConfigStore = config_store if config_store is not None else InMemoryConfigStore()
        self.http_client = http_client
        self.transport = transport
        self.accounts = accounts

        timeout = self.settings.http_timeout
        self.well_known = WellKnownCache(http_client, timeout=timeout)
        self.resolver = EndpointResolver(self.well_known)
        self.state_codec = StateCodec(self.settings.state_secret)
        self.authorization_builder = AuthorizationRequestBuilder(self.resolver, self.state_codec, self.settings.root_url)
        self.token_exchanger = TokenExchanger(self.resolver, self.settings.root_url, http_client, timeout=timeout)
        self.identity_fetcher = IdentityFetcher(self.resolver, http_client, timeout=timeout)
        self.registry = ProviderRegistry(self)

        add_listener = getattr(self.config_store, "add_listener", None)
        if add_listener is not None:
            add_listener(self._on_config_change)

        if register_default:
            self.registry.register(DEFAULT_SLUG)

    @classmethod
    def from_env(cls, **kwargs) -> "OIDCContext":
        settings = Settings.from_env()
        store: ConfigStore
        if settings.providers_file:
            store = YamlConfigStore(settings.providers_file)
        else:
            store = InMemoryConfigStore()
        _log.info("OIDC context: role=%s root_url=%s", settings.role, settings.root_url)
        return cls(settings, store, **kwargs)

    @property
    def default(self) -> Facade:
        return self.registry.get(DEFAULT_SLUG)

    def register(self, slug: str, **kwargs) -> Facade:
        return self.registry.register(slug, **kwargs)

    def provider(self, slug: str) -> Facade:
        return self.registry.get(slug)

    def _on_config_change(self, slug: str, old: Optional[ProviderConfig], new: Optional[ProviderConfig]) -> None:
        if old is None or not old.base_url:
            return
        if new is None or new.base_url != old.base_url:
            self.well_known.forget(old.base_url)
            auth_trace("discovery.forget", slug=slug, base_url=old.base_url)
