# src/accounts_oidc/app/api/routes/oauth.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from accounts_oidc.app.auth.endpoints import CALLBACK_PREFIX
from accounts_oidc.app.auth.server import OIDCServer
from accounts_oidc.app.auth.state import new_credential_token
from accounts_oidc.app.core.aio import maybe_await
from accounts_oidc.app.core.errors import (
    ConfigError,
    DiscoveryError,
    MalformedTokenError,
    ProtocolError,
    StateError,
)
from accounts_oidc.app.core.trace import auth_trace
from accounts_oidc.app.models import LoginOptions
from accounts_oidc.app.registry import OIDCContext
from accounts_oidc.app.services.users import UserStore

_log = logging.getLogger(__name__)


def build_oauth_router(context: OIDCContext, user_store: UserStore) -> APIRouter:
    """
    Callback surface for every registered slug:

      GET       /_oauth/{slug}/authorize  -> 302 to the IdP (server-initiated login)
      GET|POST  /_oauth/{slug}            <- IdP redirect with code/state (or error)
    """
    router = APIRouter(tags=["oauth"])

    def _server(slug: str) -> OIDCServer:
        try:
            facade = context.registry.get(slug)
        except ConfigError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"unknown service: {slug}")
        if not isinstance(facade, OIDCServer):
            raise HTTPException(status_code=500, detail="OIDC context is not running in server role")
        return facade

    @router.get(CALLBACK_PREFIX + "/{slug}/authorize")
    async def oauth_authorize(slug: str, login_style: Optional[str] = None):
        server = _server(slug)
        if login_style not in (None, "popup", "redirect"):
            raise HTTPException(status_code=400, detail=f"unsupported login_style: {login_style}")
        try:
            config = await server.get_config()
            attempt = await context.authorization_builder.attempt(
                config, slug, new_credential_token(), LoginOptions(login_style=login_style or "redirect"),
            )
        except ConfigError as ex:
            raise HTTPException(status_code=500, detail=f"OIDC not configured: {ex}")
        except DiscoveryError as ex:
            raise HTTPException(status_code=502, detail=str(ex))

        auth_trace("route.authorize.redirect", slug=slug, style=attempt.login_style)
        return RedirectResponse(attempt.authorization_url, status_code=302)

    @router.api_route(CALLBACK_PREFIX + "/{slug}", methods=["GET", "POST"])
    async def oauth_callback(slug: str, request: Request):
        server = _server(slug)

        params: Dict[str, Any] = dict(request.query_params)
        if request.method == "POST":
            # response_mode=form_post
            form = await request.form()
            params.update({k: v for k, v in form.items() if isinstance(v, str)})

        if params.get("error"):
            auth_trace("route.callback.idp_error", slug=slug, error=params["error"])
            detail = params["error"]
            if params.get("error_description"):
                detail = f"{detail}: {params['error_description']}"
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

        code = params.get("code") or ""
        state = params.get("state") or ""
        if not code or not state:
            raise HTTPException(status_code=400, detail="missing code/state")

        try:
            login_state, result = await server.handle_callback(code, state)
        except StateError as ex:
            raise HTTPException(status_code=400, detail=str(ex))
        except ConfigError as ex:
            raise HTTPException(status_code=500, detail=f"OIDC not configured: {ex}")
        except ProtocolError as ex:
            _log.warning("OIDC callback for %s failed: %s (%s)", slug, ex, ex.detail)
            raise HTTPException(status_code=502, detail=f"{ex}: {ex.detail}")
        except (MalformedTokenError, DiscoveryError) as ex:
            _log.warning("OIDC callback for %s failed: %s", slug, ex)
            raise HTTPException(status_code=502, detail=str(ex))

        user = await maybe_await(
            user_store.update_or_create_from_external_service(slug, result.service_data, result.options)
        )
        auth_trace("route.callback.ok", slug=slug, user_id=user["id"], style=login_state.login_style)

        if login_state.login_style == "redirect":
            return RedirectResponse(login_state.redirect_url, status_code=302)
        return {
            "ok": True,
            "service": slug,
            "user": {"id": user["id"], "service_id": result.service_data["id"]},
            "credential_token": login_state.credential_token,
        }

    return router
