# src/accounts_oidc/app/auth/state.py
from __future__ import annotations

import secrets
from typing import Any, Dict

from itsdangerous import BadSignature, URLSafeSerializer
from pydantic import ValidationError

from accounts_oidc.app.core.errors import StateError
from accounts_oidc.app.models import LoginState

STATE_SALT = "accounts-oidc.state"
_LOGIN_STYLES = ("popup", "redirect")


def new_credential_token() -> str:
    """Per-attempt secret; the only key tying the browser callback to its login()."""
    return secrets.token_urlsafe(32)


class StateCodec:
    """
    Encodes {loginStyle, credentialToken, redirectUrl} into the OAuth `state`.

    The value is signed, so the callback can trust the login style and the
    final redirect target it reads back.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("state secret must not be empty")
        self._ser = URLSafeSerializer(secret, salt=STATE_SALT)

    def encode(self, login_style: str, credential_token: str, redirect_url: str) -> str:
        if login_style not in _LOGIN_STYLES:
            raise ValueError(f"login style must be one of {_LOGIN_STYLES}, got {login_style!r}")
        if not credential_token:
            raise ValueError("credential token must not be empty")
        payload: Dict[str, Any] = {
            "loginStyle": login_style,
            "credentialToken": credential_token,
            "redirectUrl": redirect_url,
        }
        return self._ser.dumps(payload)

    def decode(self, state: str) -> LoginState:
        if not state:
            raise StateError("missing state")
        try:
            raw = self._ser.loads(state)
        except BadSignature as ex:
            raise StateError("invalid state", detail="bad signature") from ex
        if not isinstance(raw, dict):
            raise StateError("invalid state", detail="not an object")
        try:
            return LoginState(
                login_style=raw.get("loginStyle"),
                credential_token=raw.get("credentialToken"),
                redirect_url=raw.get("redirectUrl"),
            )
        except ValidationError as ex:
            raise StateError("invalid state", detail=str(ex)) from ex
