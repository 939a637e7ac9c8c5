import urllib.parse as urlparse

import pytest

from accounts_oidc.app.auth.authorize import append_query, encode_query, scope_string
from accounts_oidc.app.models import LoginOptions, ProviderConfig

from conftest import AUTH_URL, CLIENT_ID, REDIRECT_URI, ROOT_URL


@pytest.fixture
def config(explicit_config) -> ProviderConfig:
    return ProviderConfig.model_validate(explicit_config)


def _query(url: str) -> dict:
    return dict(urlparse.parse_qsl(urlparse.urlparse(url).query))


def test_scope_string():
    assert scope_string(["openid", "email", "profile"]) == "openid email profile"
    assert scope_string("openid email") == "openid email"
    assert scope_string(None) == "openid"


def test_parameters_fixed_keys_win_and_falsy_dropped(context, config):
    opts = LoginOptions(login_url_parameters={
        "redirect_uri": "https://evil.example.com/steal",
        "client_id": "someone-else",
        "prompt": "login",
        "login_hint": "",
        "acr_values": None,
    })
    params = context.authorization_builder.parameters(config, "oidc", "cred-1", opts)

    assert params["redirect_uri"] == REDIRECT_URI
    assert params["client_id"] == CLIENT_ID
    assert params["response_type"] == "code"
    assert params["scope"] == "openid"
    assert params["prompt"] == "login"
    assert "login_hint" not in params
    assert "acr_values" not in params
    assert list(params)[-1] == "state"


@pytest.mark.asyncio
async def test_build_url(context, config):
    url = await context.authorization_builder.build(config, "oidc", "cred-1")

    assert url.startswith(AUTH_URL + "?")
    qs = _query(url)
    assert qs["response_type"] == "code"
    assert qs["client_id"] == CLIENT_ID
    assert qs["redirect_uri"] == REDIRECT_URI

    state = context.state_codec.decode(qs["state"])
    assert state.login_style == "popup"
    assert state.credential_token == "cred-1"
    # final landing page is the app root, not the callback
    assert state.redirect_url == ROOT_URL + "/"


@pytest.mark.asyncio
async def test_options_override_scope_and_style(context, config):
    opts = LoginOptions(scope=["openid", "email"], login_style="redirect")
    attempt = await context.authorization_builder.attempt(config, "oidc", "cred-2", opts)

    assert attempt.login_style == "redirect"
    assert _query(attempt.authorization_url)["scope"] == "openid email"
    assert context.state_codec.decode(attempt.state).login_style == "redirect"


@pytest.mark.asyncio
async def test_config_extras_then_option_extras(context, explicit_config):
    config = ProviderConfig.model_validate({
        **explicit_config,
        "loginUrlParameters": {"prompt": "consent", "kc_idp_hint": "github"},
    })
    opts = LoginOptions(login_url_parameters={"prompt": "login"})
    qs = _query(await context.authorization_builder.build(config, "oidc", "c", opts))

    assert qs["prompt"] == "login"
    assert qs["kc_idp_hint"] == "github"


@pytest.mark.asyncio
async def test_existing_endpoint_query_preserved(context, explicit_config):
    config = ProviderConfig.model_validate({**explicit_config, "authorizeEndpoint": AUTH_URL + "?tenant=acme"})
    url = await context.authorization_builder.build(config, "oidc", "c")

    assert urlparse.urlparse(url).query.startswith("tenant=acme&")
    assert _query(url)["client_id"] == CLIENT_ID


@pytest.mark.asyncio
async def test_redirect_uri_uses_slug(context, config):
    attempt = await context.authorization_builder.attempt(config, "entra", "c")
    assert attempt.redirect_uri == f"{ROOT_URL}/_oauth/entra"


def test_single_encoding_by_default():
    q = encode_query({"login_hint": "a b@c", "redirect_uri": "http://h/_oauth/x"})
    assert "login_hint=a+b%40c" in q
    assert "redirect_uri=http%3A%2F%2Fh%2F_oauth%2Fx" in q


def test_legacy_double_encoding_only_for_extras():
    q = encode_query(
        {"login_hint": "a b@c", "redirect_uri": "http://h/_oauth/x", "scope": "openid email", "state": "s"},
        legacy=True,
    )
    assert "login_hint=a%2520b%2540c" in q
    assert "redirect_uri=http%3A%2F%2Fh%2F_oauth%2Fx" in q
    assert "scope=openid+email" in q


@pytest.mark.asyncio
async def test_legacy_flag_on_config(context, explicit_config):
    config = ProviderConfig.model_validate({**explicit_config, "legacyParamEncoding": True})
    opts = LoginOptions(login_url_parameters={"login_hint": "a b"})
    url = await context.authorization_builder.build(config, "oidc", "c", opts)
    assert "login_hint=a%2520b" in url


def test_append_query():
    assert append_query("https://h/auth", "a=1") == "https://h/auth?a=1"
    assert append_query("https://h/auth?x=0", "a=1") == "https://h/auth?x=0&a=1"
    assert append_query("https://h/auth", "") == "https://h/auth"
