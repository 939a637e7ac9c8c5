# src/accounts_oidc/app/auth/server.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Tuple

from accounts_oidc.app.auth.tokens import decode_jwt
from accounts_oidc.app.core.aio import maybe_await
from accounts_oidc.app.core.errors import ProtocolError
from accounts_oidc.app.core.trace import auth_trace
from accounts_oidc.app.models import CreateUserOptions, LoginResult, LoginState, ProjectionContext, ProviderConfig
from accounts_oidc.app.services.identity import IdentityProjection

if TYPE_CHECKING:
    from accounts_oidc.app.registry import OIDCContext

_log = logging.getLogger(__name__)


class OIDCServer:
    """
    Server-side facade for one slug.

    Once the IdP is happy and the callback has `code` and `state`:
      exchange code -> decode ID token + fetch UserInfo -> project
    Any failure aborts the login; nothing is retried (codes are single-use).
    """

    role = "server"

    def __init__(self, context: "OIDCContext", slug: str, projection: IdentityProjection):
        self.context = context
        self.slug = slug
        self.projection = projection

    async def get_config(self) -> ProviderConfig:
        return await maybe_await(self.context.config_store.get_config(self.slug))

    async def get_user_service_data(self, ctx: ProjectionContext) -> Dict[str, Any]:
        data = await maybe_await(self.projection.get_user_service_data(ctx))
        if not isinstance(data, dict) or not data.get("id"):
            raise ProtocolError(f"user service data for {self.slug!r} has no `id`")
        return data

    async def get_new_user_profile(self, ctx: ProjectionContext) -> Dict[str, Any]:
        return dict(await maybe_await(self.projection.get_new_user_profile(ctx)))

    async def complete_login(self, code: str) -> LoginResult:
        config = await self.get_config()
        tokens = await self.context.token_exchanger.exchange(config, self.slug, code)

        claims = decode_jwt(tokens.id_token).payload
        identity = await self.context.identity_fetcher.fetch(config, tokens.access_token)

        ctx = ProjectionContext(
            id_token=tokens.id_token,
            access_token=tokens.access_token,
            claims=claims,
            identity=identity,
        )
        service_data = await self.get_user_service_data(ctx)
        profile = await self.get_new_user_profile(ctx)
        auth_trace("server.login.projected", slug=self.slug, sub=claims.get("sub"))

        return LoginResult(
            service_data=service_data,
            options=CreateUserOptions(service=self.slug, profile=profile, **ctx.model_dump()),
        )

    async def handle_callback(self, code: str, state: str) -> Tuple[LoginState, LoginResult]:
        """Check `state` before spending the code on the token endpoint."""
        login_state = self.context.state_codec.decode(state)
        result = await self.complete_login(code)
        _log.info("OIDC login completed for service %s (style=%s)", self.slug, login_state.login_style)
        return login_state, result
