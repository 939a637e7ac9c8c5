import pytest

from accounts_oidc.app.auth.client import OIDCClient
from accounts_oidc.app.auth.server import OIDCServer
from accounts_oidc.app.core.errors import ConfigError, DuplicateSlugError
from accounts_oidc.app.registry import DEFAULT_SLUG, OIDCContext
from accounts_oidc.app.services.config_store import InMemoryConfigStore
from accounts_oidc.app.services.identity import ClaimProjection, DefaultProjection


def test_default_slug_is_registered(context):
    assert DEFAULT_SLUG in context.registry
    assert isinstance(context.default, OIDCServer)
    assert context.default.slug == "oidc"
    assert isinstance(context.default.projection, DefaultProjection)


def test_default_registration_can_be_skipped(settings):
    ctx = OIDCContext(settings, register_default=False)
    assert len(ctx.registry) == 0
    ctx.register("oidc")
    assert ctx.registry.slugs() == ["oidc"]


def test_duplicate_slug_is_fatal(context):
    context.register("entra")
    with pytest.raises(DuplicateSlugError):
        context.register("entra")
    with pytest.raises(DuplicateSlugError):
        context.register("oidc")


def test_duplicate_slug_is_a_config_error(context):
    with pytest.raises(ConfigError):
        context.register("oidc")


@pytest.mark.parametrize("slug", ["", "with space", "a/b", "../x"])
def test_invalid_slug(context, slug):
    with pytest.raises(ConfigError):
        context.register(slug)


def test_unknown_slug(context):
    with pytest.raises(ConfigError):
        context.provider("nope")


@pytest.mark.asyncio
async def test_distinct_slugs_have_isolated_config(settings, discovery_config, explicit_config):
    store = InMemoryConfigStore({
        "oidc": discovery_config,
        "entra": {**explicit_config, "clientId": "entra-client"},
    })
    ctx = OIDCContext(settings, store)
    entra = ctx.register("entra")

    assert (await ctx.default.get_config()).client_id == discovery_config["clientId"]
    assert (await entra.get_config()).client_id == "entra-client"


def test_projection_is_per_provider(context):
    keyed_on_sub = ClaimProjection("sub")
    gitlab = context.register("gitlab", projection=keyed_on_sub)

    assert gitlab.projection is keyed_on_sub
    assert isinstance(context.default.projection, DefaultProjection)
    assert context.default.projection is not keyed_on_sub


def test_contexts_are_isolated(settings, store):
    a = OIDCContext(settings, store)
    b = OIDCContext(settings, store)
    a.register("only-in-a")

    assert "only-in-a" in a.registry
    assert "only-in-a" not in b.registry
    assert a.well_known is not b.well_known


def test_client_role_gives_client_facades(settings, store):
    ctx = OIDCContext(settings, store, role="client")
    assert isinstance(ctx.default, OIDCClient)
    assert isinstance(ctx.register("entra"), OIDCClient)


def test_client_role_rejects_projection(settings, store):
    ctx = OIDCContext(settings, store, role="client")
    with pytest.raises(ConfigError):
        ctx.register("entra", projection=DefaultProjection())


def test_unsupported_role(settings, store):
    with pytest.raises(ConfigError):
        OIDCContext(settings, store, role="sidecar")
