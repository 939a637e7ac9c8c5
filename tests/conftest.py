# tests/conftest.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict

import jwt
import pytest
from dotenv import load_dotenv

# ---------- Paths & .env ----------
ROOT = Path(__file__).resolve().parents[1]  # repo root
# local runs may keep overrides in .env; CI injects env separately
if (ROOT / ".env").exists():
    load_dotenv(dotenv_path=ROOT / ".env", override=False)

from accounts_oidc.app.core.config import Settings  # noqa: E402
from accounts_oidc.app.registry import OIDCContext  # noqa: E402
from accounts_oidc.app.services.config_store import InMemoryConfigStore  # noqa: E402

# ---------- Mocked IdP ----------
ROOT_URL = "http://localhost:8000"
CLIENT_ID = "accounts-oidc-test"
CLIENT_SECRET = "dummy-secret"
BASE_URL = "https://idp.example.com/realms/main"
DISCOVERY_URL = f"{BASE_URL}/.well-known/openid-configuration"
AUTH_URL = f"{BASE_URL}/protocol/openid-connect/auth"
TOKEN_URL = f"{BASE_URL}/protocol/openid-connect/token"
USERINFO_URL = f"{BASE_URL}/protocol/openid-connect/userinfo"
REDIRECT_URI = f"{ROOT_URL}/_oauth/oidc"


def discovery_payload(**overrides: Any) -> Dict[str, Any]:
    doc = {
        "issuer": BASE_URL,
        "authorization_endpoint": AUTH_URL,
        "token_endpoint": TOKEN_URL,
        "userinfo_endpoint": USERINFO_URL,
        "jwks_uri": f"{BASE_URL}/protocol/openid-connect/certs",
        "response_types_supported": ["code"],
    }
    doc.update(overrides)
    return doc


# ---------- Pytest controls ----------
def pytest_configure(config: pytest.Config) -> None:
    # trace lines are cheap and make failures easier to read
    os.environ.setdefault("OIDC_TRACE", "true")


# ---------- Fixtures ----------
@pytest.fixture
def settings() -> Settings:
    return Settings(
        root_url=ROOT_URL,
        state_secret="test-state-secret",
        http_timeout=5.0,
        login_timeout=2.0,
    )


@pytest.fixture
def discovery_config() -> Dict[str, Any]:
    """camelCase, the way a stored service configuration document looks."""
    return {
        "clientId": CLIENT_ID,
        "secret": {"clientSecret": CLIENT_SECRET},
        "baseUrl": BASE_URL,
        "scope": ["openid", "email", "profile"],
    }


@pytest.fixture
def explicit_config() -> Dict[str, Any]:
    return {
        "clientId": CLIENT_ID,
        "authorizeEndpoint": AUTH_URL,
        "tokenEndpoint": TOKEN_URL,
        "userinfoEndpoint": USERINFO_URL,
    }


@pytest.fixture
def store(discovery_config: Dict[str, Any]) -> InMemoryConfigStore:
    return InMemoryConfigStore({"oidc": discovery_config})


@pytest.fixture
def context(settings: Settings, store: InMemoryConfigStore) -> OIDCContext:
    return OIDCContext(settings, store, role="server")


@pytest.fixture
def make_id_token() -> Callable[..., str]:
    """Mint a real (HS256-signed) JWT; signatures are never checked by the library."""
    def _make(claims: Dict[str, Any], key: str = "not-the-idp-key") -> str:
        base = {"iss": BASE_URL, "aud": CLIENT_ID, "sub": "1234567890"}
        return jwt.encode({**base, **claims}, key, algorithm="HS256")
    return _make
