# src/accounts_oidc/app/core/errors.py
from __future__ import annotations

from typing import Optional


class OIDCError(Exception):
    """Base class for everything this package raises on purpose."""


class ConfigError(OIDCError):
    """Provider configuration is missing or unusable."""


class DuplicateSlugError(ConfigError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"slug {slug!r} is already taken")


class DiscoveryError(OIDCError):
    """The IdP's .well-known/openid-configuration could not be used."""


class ProtocolError(OIDCError):
    """
    The IdP answered something we cannot proceed with.

    `detail` carries the raw diagnostic (e.g. the token endpoint's response
    body, verbatim); `status_code` is the HTTP status when there was one.
    """

    def __init__(self, message: str, *, detail: Optional[str] = None, status_code: Optional[int] = None):
        self.detail = detail if detail is not None else message
        self.status_code = status_code
        super().__init__(message)


class StateError(ProtocolError):
    """The `state` round-tripped through the IdP is forged or unreadable."""


class MalformedTokenError(OIDCError):
    """The ID token is not three base64url-encoded JSON segments."""


class LoginTimeoutError(OIDCError):
    """A pending login was abandoned (no browser callback in time)."""


class LoginError(OIDCError):
    """A client-side login failed: nothing wired to run it, or the browser flow reported an error."""
