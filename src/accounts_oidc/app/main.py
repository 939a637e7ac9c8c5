# src/accounts_oidc/app/main.py
from __future__ import annotations

from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI

# Load .env before settings read the environment
load_dotenv()

from accounts_oidc.app.core.logging import setup_logging  # noqa: E402

setup_logging()

from accounts_oidc.app.api.routes.oauth import build_oauth_router  # noqa: E402
from accounts_oidc.app.registry import OIDCContext  # noqa: E402
from accounts_oidc.app.services.users import InMemoryUserStore, UserStore  # noqa: E402


def create_app(context: Optional[OIDCContext] = None, user_store: Optional[UserStore] = None) -> FastAPI:
    """
    Minimal host: the /_oauth callback routes plus a health check.
    Real hosts usually just include build_oauth_router() in their own app.
    """
    ctx = context or OIDCContext.from_env()
    users = user_store if user_store is not None else InMemoryUserStore()

    app = FastAPI(title="accounts-oidc", version="0.1.0")
    app.state.oidc = ctx
    app.state.users = users

    @app.get("/healthz")
    def health():
        return {"status": "ok", "services": ctx.registry.slugs()}

    app.include_router(build_oauth_router(ctx, users))
    return app


app = create_app()
