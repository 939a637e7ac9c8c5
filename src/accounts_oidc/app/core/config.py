# src/accounts_oidc/app/core/config.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict

from .errors import ConfigError

_log = logging.getLogger(__name__)

DEV_STATE_SECRET = "dev-state-secret-do-not-use-in-prod"


def _env_float(var: str, default: float) -> float:
    raw = (os.getenv(var) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{var} must be a number, got {raw!r}")


class Settings(BaseModel):
    """
    Process-level settings. Provider settings live in the config store.

      ROOT_URL               absolute root of the host app (redirect URIs hang off it)
      OIDC_STATE_SECRET      signs the `state` parameter
      OIDC_HTTP_TIMEOUT_SEC  per-request timeout for IdP calls
      OIDC_LOGIN_TIMEOUT_SEC how long a client login() waits for the browser
      OIDC_PROVIDERS_FILE    optional YAML file with a `providers:` mapping
      OIDC_ROLE              server | client
    """

    model_config = ConfigDict(frozen=True)

    root_url: str = "http://localhost:8000"
    state_secret: str = DEV_STATE_SECRET
    http_timeout: float = 15.0
    login_timeout: float = 600.0
    providers_file: Optional[Path] = None
    role: Literal["server", "client"] = "server"

    @classmethod
    def from_env(cls) -> "Settings":
        secret = (os.getenv("OIDC_STATE_SECRET") or "").strip()
        if not secret:
            _log.warning("OIDC_STATE_SECRET is not set; using the development secret")
            secret = DEV_STATE_SECRET
        providers_file = (os.getenv("OIDC_PROVIDERS_FILE") or "").strip()
        role = (os.getenv("OIDC_ROLE", "server") or "server").strip().lower()
        if role not in ("server", "client"):
            raise ConfigError(f"Unsupported OIDC_ROLE: {role}")
        return cls(
            root_url=(os.getenv("ROOT_URL") or "http://localhost:8000").strip(),
            state_secret=secret,
            http_timeout=_env_float("OIDC_HTTP_TIMEOUT_SEC", 15.0),
            login_timeout=_env_float("OIDC_LOGIN_TIMEOUT_SEC", 600.0),
            providers_file=Path(providers_file) if providers_file else None,
            role=role,
        )


def load_providers_yaml(path: Path) -> Dict[str, Dict[str, Any]]:
    """
    Read a providers file:

      providers:
        oidc:
          clientId: my-app
          baseUrl: https://keycloak.example.com/realms/main
        entra:
          clientId: ...
          secret: {clientSecret: ...}

    Returns the raw slug -> mapping table; validation happens in the store.
    """
    try:
        with Path(path).open("r", encoding="utf-8") as f:
            doc = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(f"providers file not found: {path}")
    except yaml.YAMLError as ex:
        raise ConfigError(f"providers file {path} is not valid YAML: {ex}") from ex

    providers = doc.get("providers") if isinstance(doc, dict) else None
    if providers is None:
        return {}
    if not isinstance(providers, dict):
        raise ConfigError(f"`providers` in {path} must be a mapping of slug -> settings")
    return {str(slug): (cfg or {}) for slug, cfg in providers.items()}
