"""
onsweb.api.deps — FastAPI dependency injection
================================================

Providers for the engine, config and external clients (all overridable via
``app.dependency_overrides`` in tests), plus the access-control
dependencies: :func:`get_current_user`, :func:`optional_user` and
:func:`require_roles`.
"""

from __future__ import annotations

import os
from dataclasses import replace
from datetime import timedelta
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy import Engine

from onsweb.config import OnsConfig, load_config
from onsweb.database.engine import create_db_engine
from onsweb.database.models import User, UserRole
from onsweb.errors import ForbiddenError, UnauthorizedError
from onsweb.services import auth_service
from onsweb.services.identity_bridge import IdentityBridge
from onsweb.services.image_cdn import ImageCdn
from onsweb.services.media_service import MEDIA_POLICY, MediaService
from onsweb.services.storage import ObjectStorage
from onsweb.services.token_service import TokenService

_WEAK_SECRETS = frozenset({
    "your-secret-key",
    "change-me",
    "changeme",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def _load_secret(name: str, *, required: bool = True) -> str:
    """Load and validate a signing secret from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv(name, "")
    if not secret and not required:
        return ""
    if not secret:
        raise RuntimeError(
            f"{name} environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"{name} is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"{name} is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_secret("JWT_SECRET")
JWT_REFRESH_SECRET: str = _load_secret("JWT_REFRESH_SECRET", required=False) or JWT_SECRET


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> OnsConfig:
    return load_config()


def get_token_service(cfg: OnsConfig = Depends(get_config)) -> TokenService:
    return TokenService(
        JWT_SECRET,
        JWT_REFRESH_SECRET,
        access_ttl=timedelta(minutes=cfg.access_token_minutes),
        refresh_ttl=timedelta(days=cfg.refresh_token_days),
    )


@lru_cache(maxsize=1)
def get_storage() -> ObjectStorage:
    return ObjectStorage.from_env()


def get_cdn(storage: ObjectStorage = Depends(get_storage)) -> ImageCdn:
    return ImageCdn.from_env(storage)


def get_media_service(
    engine: Engine = Depends(get_engine),
    storage: ObjectStorage = Depends(get_storage),
    cdn: ImageCdn = Depends(get_cdn),
    cfg: OnsConfig = Depends(get_config),
) -> MediaService:
    policy = replace(MEDIA_POLICY, signed_url_seconds=cfg.signed_url_seconds)
    return MediaService(engine, storage, cdn, policy)


def get_identity_bridge() -> IdentityBridge:
    return IdentityBridge.from_env()


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------
def _bearer_token(request: Request, authorization: str | None) -> str | None:
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return request.cookies.get(ACCESS_COOKIE) or None


def _resolve_user(engine: Engine, tokens: TokenService, token: str) -> User:
    payload = tokens.verify_access_token(token)
    user = auth_service.get_user(engine, payload["sub"])
    if user is None or not user.is_active:
        raise UnauthorizedError("User not found or inactive", code="INVALID_TOKEN")
    return user


def get_current_user(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """Resolve the bearer token (header or ``access_token`` cookie) to a user."""
    token = _bearer_token(request, authorization)
    if token is None:
        raise UnauthorizedError("Authentication required", code="MISSING_TOKEN")
    return _resolve_user(engine, tokens, token)


def optional_user(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
    tokens: TokenService = Depends(get_token_service),
) -> User | None:
    """Like :func:`get_current_user`, but anonymous or bad tokens yield ``None``."""
    token = _bearer_token(request, authorization)
    if token is None:
        return None
    try:
        return _resolve_user(engine, tokens, token)
    except UnauthorizedError:
        return None


def require_roles(*roles: UserRole):
    """Dependency factory: the current user must hold one of *roles*."""
    allowed = frozenset(roles)

    def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise ForbiddenError(
                "Insufficient permissions",
                code="INSUFFICIENT_PERMISSIONS",
                details={"required": sorted(r.value for r in allowed)},
            )
        return user

    return _check


require_member = require_roles(UserRole.MEMBER, UserRole.EDITOR, UserRole.ADMIN)
require_editor = require_roles(UserRole.EDITOR, UserRole.ADMIN)
require_admin = require_roles(UserRole.ADMIN)
