# src/accounts_oidc/app/models.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

LoginStyle = Literal["popup", "redirect"]
EndpointName = Literal["authorization", "token", "userinfo"]

DEFAULT_SCOPE: List[str] = ["openid"]


class _CamelModel(BaseModel):
    # configuration documents are usually written in camelCase (clientId, baseUrl, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ProviderSecret(_CamelModel):
    client_secret: Optional[str] = None


class ProviderConfig(_CamelModel):
    """
    Per-slug provider configuration.

    Either `base_url` (the discovery root) or all three explicit endpoints
    must be set. Explicit endpoints always win over discovered ones.
    """

    client_id: str
    secret: Optional[ProviderSecret] = None
    scope: Union[str, List[str]] = Field(default_factory=lambda: list(DEFAULT_SCOPE))
    login_style: LoginStyle = "popup"
    login_url_parameters: Dict[str, Any] = Field(default_factory=dict)
    base_url: Optional[str] = None
    authorize_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    userinfo_endpoint: Optional[str] = None
    popup_options: Optional[Dict[str, Any]] = None
    # reproduce the historical double percent-encoding of extra login URL parameters
    legacy_param_encoding: bool = False

    @model_validator(mode="after")
    def _check_resolvable(self) -> "ProviderConfig":
        if not self.client_id:
            raise ValueError("clientId must not be empty")
        explicit = (self.authorize_endpoint, self.token_endpoint, self.userinfo_endpoint)
        if not self.base_url and not all(explicit):
            raise ValueError(
                "baseUrl is not set and authorizeEndpoint/tokenEndpoint/userinfoEndpoint "
                "are not all given; unable to resolve endpoints"
            )
        return self

    @property
    def client_secret(self) -> Optional[str]:
        return self.secret.client_secret if self.secret else None


class DiscoveryDocument(BaseModel):
    """The subset of .well-known/openid-configuration we read; anything else is kept."""

    model_config = ConfigDict(extra="allow", frozen=True)

    issuer: Optional[str] = None
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    userinfo_endpoint: Optional[str] = None


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id_token: str
    # opaque: some IdPs (Keycloak) issue JWTs here, many do not
    access_token: str
    token_type: Optional[str] = None
    expires_in: Optional[int] = None


class DecodedJWT(BaseModel):
    header: Dict[str, Any]
    payload: Dict[str, Any]
    signature: str

    @property
    def claims(self) -> Dict[str, Any]:
        return self.payload


class LoginState(BaseModel):
    model_config = ConfigDict(frozen=True)

    login_style: LoginStyle
    credential_token: str
    redirect_url: str


class LoginOptions(_CamelModel):
    """Per-call overrides accepted by the client-side login()."""

    scope: Optional[Union[str, List[str]]] = None
    login_url_parameters: Dict[str, Any] = Field(default_factory=dict)
    login_style: Optional[LoginStyle] = None
    popup_options: Optional[Dict[str, Any]] = None


class LaunchRequest(BaseModel):
    """What the browser transport needs to open the popup or navigate away."""

    model_config = ConfigDict(frozen=True)

    slug: str
    login_url: str
    login_style: LoginStyle
    credential_token: str
    popup_options: Optional[Dict[str, Any]] = None


class LoginAttempt(BaseModel):
    model_config = ConfigDict(frozen=True)

    slug: str
    credential_token: str
    login_style: LoginStyle
    redirect_uri: str
    state: str
    authorization_url: str


class ProjectionContext(BaseModel):
    id_token: str
    access_token: str
    claims: Dict[str, Any]
    identity: Dict[str, Any]


class CreateUserOptions(BaseModel):
    service: str
    id_token: str
    access_token: str
    claims: Dict[str, Any]
    identity: Dict[str, Any]
    profile: Dict[str, Any]


class LoginResult(BaseModel):
    service_data: Dict[str, Any]
    options: CreateUserOptions
