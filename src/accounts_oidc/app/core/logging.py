# src/accounts_oidc/app/core/logging.py
from __future__ import annotations

import logging
import os

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR":    logging.ERROR,
    "WARNING":  logging.WARNING,
    "INFO":     logging.INFO,
    "DEBUG":    logging.DEBUG,
}

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def level_from_env(var: str = "LOG_LEVEL", default: str = "INFO") -> int:
    val = (os.getenv(var, default) or "").strip().upper()
    return _LEVELS.get(val, _LEVELS[default])


def setup_logging(level: int | None = None) -> None:
    """
    Configure root logging once. Idempotent.

    LOG_LEVEL controls verbosity (default INFO) unless `level` is given.
    When a handler is already installed (pytest, uvicorn, a host app) only
    the level is adjusted and the host's handlers are left alone.
    """
    lvl = level if level is not None else level_from_env()
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(lvl)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root.setLevel(lvl)
    root.addHandler(handler)
