# Maps IdP tokens/claims/identity -> what gets stored for the user.
from __future__ import annotations

from typing import Any, Awaitable, Dict, Mapping, Protocol, Union

from accounts_oidc.app.core.errors import ProtocolError
from accounts_oidc.app.models import ProjectionContext

# https://openid.net/specs/openid-connect-core-1_0.html#StandardClaims
# (the personal-info subset that makes sense in a new user's profile)
PERSONAL_INFO_CLAIMS = (
    "name", "given_name", "family_name", "middle_name", "nickname", "preferred_username",
    "website", "email", "email_verified", "gender", "birthdate",
    "zoneinfo", "locale", "phone_number", "phone_number_verified", "address",
)

MaybeAwaitable = Union[Dict[str, Any], Awaitable[Dict[str, Any]]]


def standard_profile(identity: Mapping[str, Any], claims: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Per claim: the UserInfo value if present, else the ID-token value if
    present, else nothing. `False` counts as present (email_verified=False
    is information); `None` does not.
    """
    profile: Dict[str, Any] = {}
    for k in PERSONAL_INFO_CLAIMS:
        if identity.get(k) is not None:
            profile[k] = identity[k]
        elif claims.get(k) is not None:
            profile[k] = claims[k]
    return profile


class IdentityProjection(Protocol):
    """
    Per-provider strategy, given at registration time.

    get_user_service_data runs on every successful login; its `id` is the
    lookup key for an existing user under this provider and must be stable
    and unique per end-user. get_new_user_profile runs too, but its result
    only matters when a new user gets created.
    Either method may be sync or async.
    """

    def get_user_service_data(self, ctx: ProjectionContext) -> MaybeAwaitable: ...

    def get_new_user_profile(self, ctx: ProjectionContext) -> MaybeAwaitable: ...


class DefaultProjection:
    """
    Assumes the IdP returns at least `email` from UserInfo and uses it as the
    foreign key. Subclass and call super() to add fields:

        class WithGroups(DefaultProjection):
            def get_user_service_data(self, ctx):
                data = super().get_user_service_data(ctx)
                data["groups"] = ctx.claims.get("groups", [])
                return data
    """

    id_field = "email"

    def get_user_service_data(self, ctx: ProjectionContext) -> Dict[str, Any]:
        user_id = ctx.identity.get(self.id_field)
        if not user_id:
            raise ProtocolError(f"UserInfo response has no {self.id_field!r}; cannot identify the user")
        return {"id": user_id, "claims": ctx.claims}

    def get_new_user_profile(self, ctx: ProjectionContext) -> Dict[str, Any]:
        return standard_profile(ctx.identity, ctx.claims)


class ClaimProjection(DefaultProjection):
    """Keys users on an arbitrary UserInfo field instead, e.g. `sub`."""

    def __init__(self, id_field: str = "sub"):
        self.id_field = id_field
