"""
vibechecc.api.deps — FastAPI dependency injection
==================================================

Identity is issued elsewhere; this module only *verifies* the bearer JWT
and hands the ``sub`` claim to the routes as the caller's user id.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from vibechecc.config import VibecheccConfig, load_config
from vibechecc.database.engine import create_db_engine
from vibechecc.engine.cache import ConfigCache

_WEAK_SECRETS = frozenset({
    "vibechecc-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> VibecheccConfig:
    return load_config(os.getenv("VIBECHECC_CONFIG", "config.yaml"))


@lru_cache(maxsize=4)
def _cache_for(engine: Engine) -> ConfigCache:
    cache = ConfigCache(engine)
    cache.load_all()
    return cache


def get_cache(engine: Annotated[Engine, Depends(get_engine)]) -> ConfigCache:
    return _cache_for(engine)


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    with Session(engine) as session:
        yield session


def _decode_bearer(authorization: str | None) -> dict | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1]
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Validate the JWT and return its subject. Raises 401 if missing/invalid."""
    payload = _decode_bearer(authorization)
    if payload is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return str(subject)


def get_optional_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """Like :func:`get_current_user_id` but anonymous callers get ``None``."""
    payload = _decode_bearer(authorization)
    if payload is None or not payload.get("sub"):
        return None
    return str(payload["sub"])
