# src/accounts_oidc/app/auth/client.py
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Dict, Mapping, Optional, Protocol, Union

from accounts_oidc.app.auth.state import new_credential_token
from accounts_oidc.app.core.aio import maybe_await
from accounts_oidc.app.core.errors import LoginError, LoginTimeoutError
from accounts_oidc.app.core.trace import auth_trace, mask
from accounts_oidc.app.models import LaunchRequest, LoginAttempt, LoginOptions, ProviderConfig

if TYPE_CHECKING:
    from accounts_oidc.app.registry import OIDCContext

_log = logging.getLogger(__name__)


class BrowserTransport(Protocol):
    """
    Opens the popup or navigates away. When the flow ends it must call
    pending.resolve(credential_token, login_token) or
    pending.reject(credential_token, error) on the client's PendingLogins.
    """

    def launch_login(self, request: LaunchRequest) -> Union[None, Awaitable[None]]: ...


class AccountsClient(Protocol):
    """Turns the short-lived login token into a logged-in session."""

    def login_with_token(self, login_token: str) -> Union[None, Awaitable[None]]: ...


class PendingLogins:
    """
    credential_token -> Future of the login token.

    Must be resolved/rejected from the event loop that created the entry.
    """

    def __init__(self) -> None:
        self._futures: Dict[str, asyncio.Future] = {}

    def __contains__(self, credential_token: str) -> bool:
        return credential_token in self._futures

    def __len__(self) -> int:
        return len(self._futures)

    def open(self, credential_token: str) -> asyncio.Future:
        if credential_token in self._futures:
            raise ValueError("credential token already pending")
        fut = asyncio.get_running_loop().create_future()
        self._futures[credential_token] = fut
        return fut

    def resolve(self, credential_token: str, login_token: str) -> bool:
        fut = self._futures.get(credential_token)
        if fut is None or fut.done():
            auth_trace("client.pending.unknown", credential_token=mask(credential_token))
            return False
        fut.set_result(login_token)
        return True

    def reject(self, credential_token: str, error: BaseException) -> bool:
        fut = self._futures.get(credential_token)
        if fut is None or fut.done():
            return False
        fut.set_exception(error)
        return True

    def discard(self, credential_token: str) -> None:
        fut = self._futures.pop(credential_token, None)
        if fut is not None and not fut.done():
            fut.cancel()


class OIDCClient:
    """
    Client-side facade for one slug: login() and nothing else.

    login() resolves once the popup has closed and the session is logged in.
    For redirect-style logins the page navigates away, so in a browser it
    never resolves; here it simply waits for the transport like any other.
    """

    role = "client"

    def __init__(
        self,
        context: "OIDCContext",
        slug: str,
        transport: Optional[BrowserTransport] = None,
        accounts: Optional[AccountsClient] = None,
    ):
        self.context = context
        self.slug = slug
        self.transport = transport
        self.accounts = accounts
        self.pending = PendingLogins()

    async def get_config(self) -> ProviderConfig:
        return await maybe_await(self.context.config_store.get_config(self.slug))

    async def prepare(self, options: Union[LoginOptions, Mapping[str, Any], None] = None) -> LoginAttempt:
        """Build the authorization URL for a fresh attempt without launching anything."""
        opts = options if isinstance(options, LoginOptions) else LoginOptions.model_validate(dict(options or {}))
        config = await self.get_config()
        return await self.context.authorization_builder.attempt(
            config, self.slug, new_credential_token(), opts
        )

    async def login(self, options: Union[LoginOptions, Mapping[str, Any], None] = None) -> None:
        if self.transport is None or self.accounts is None:
            raise LoginError(f"no browser transport/accounts client wired for service {self.slug!r}")

        opts = options if isinstance(options, LoginOptions) else LoginOptions.model_validate(dict(options or {}))
        config = await self.get_config()
        attempt = await self.context.authorization_builder.attempt(
            config, self.slug, new_credential_token(), opts
        )
        request = LaunchRequest(
            slug=self.slug,
            login_url=attempt.authorization_url,
            login_style=attempt.login_style,
            credential_token=attempt.credential_token,
            popup_options=opts.popup_options or config.popup_options,
        )

        timeout = self.context.settings.login_timeout
        fut = self.pending.open(attempt.credential_token)
        auth_trace("client.login.launch", slug=self.slug, style=attempt.login_style,
                   credential_token=mask(attempt.credential_token))
        try:
            await maybe_await(self.transport.launch_login(request))
            login_token = await asyncio.wait_for(fut, timeout=timeout)
        except asyncio.TimeoutError:
            _log.warning("OIDC login for %s abandoned after %ss", self.slug, timeout)
            raise LoginTimeoutError(f"no callback for service {self.slug!r} within {timeout}s") from None
        finally:
            self.pending.discard(attempt.credential_token)

        await maybe_await(self.accounts.login_with_token(login_token))
        auth_trace("client.login.ok", slug=self.slug)
