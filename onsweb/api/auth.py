"""
onsweb.api.auth — Password & Social Login, JWT Cookies
========================================================
"""

from __future__ import annotations

import logging
import os
import secrets
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode, urlsplit

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy import Engine, delete

from onsweb.api.deps import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    get_config,
    get_current_user,
    get_engine,
    get_identity_bridge,
    get_token_service,
)
from onsweb.api.rate_limit import rate_limit
from onsweb.api.responses import ok
from onsweb.api.schemas import (
    LoginRequest,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    dump_body,
)
from onsweb.config import OnsConfig
from onsweb.constants import AUTH_LIMIT, GENERAL_LIMIT
from onsweb.database.engine import get_session, run_db
from onsweb.database.models import OAuthState, User
from onsweb.errors import AppError, InputValidationError, UnauthorizedError
from onsweb.services import auth_service
from onsweb.services.identity_bridge import PROVIDERS, IdentityBridge
from onsweb.services.token_service import TokenPair, TokenService

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    dependencies=[Depends(rate_limit(GENERAL_LIMIT))],
)

OAUTH_STATE_TTL_SECONDS = 600


# ---------------------------------------------------------------------------
# Cookies
# ---------------------------------------------------------------------------
def _secure_cookies() -> bool:
    return os.getenv("ENVIRONMENT", "").strip().lower() == "production"


def _set_auth_cookies(response: Response, pair: TokenPair, cfg: OnsConfig) -> None:
    secure = _secure_cookies()
    response.set_cookie(
        ACCESS_COOKIE,
        pair.access_token,
        max_age=pair.expires_in,
        httponly=True,
        secure=secure,
        samesite="lax",
    )
    response.set_cookie(
        REFRESH_COOKIE,
        pair.refresh_token,
        max_age=cfg.refresh_token_days * 86400,
        httponly=True,
        secure=secure,
        samesite="lax",
    )


def _token_body(pair: TokenPair) -> dict:
    return {
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "expires_in": pair.expires_in,
    }


# ---------------------------------------------------------------------------
# OAuth state
# ---------------------------------------------------------------------------
def _store_oauth_state(
    engine: Engine, state: str, provider: str, redirect_uri: str | None
) -> None:
    """Persist an OAuth state token and prune stale entries."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        session.add(OAuthState(state=state, provider=provider, redirect_uri=redirect_uri))


def _consume_oauth_state(engine: Engine, state: str) -> OAuthState | None:
    """Consume a one-time OAuth state token if valid and unexpired."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        row = session.get(OAuthState, state)
        if row is None:
            return None
        session.delete(row)
        return row


def _same_origin(url: str, origin: str) -> bool:
    a, b = urlsplit(url), urlsplit(origin)
    return (a.scheme, a.netloc.lower()) == (b.scheme, b.netloc.lower())


def _frontend_redirect(cfg: OnsConfig, target: str | None, **params: str) -> str:
    """Redirect URL on the frontend; *target* is honoured only on the same origin."""
    base = target if target and _same_origin(target, cfg.frontend_url) else cfg.frontend_url
    sep = "&" if "?" in base else "?"
    return f"{base}{sep}{urlencode(params)}"


# ---------------------------------------------------------------------------
# Password auth
# ---------------------------------------------------------------------------
@router.post("/login", dependencies=[Depends(rate_limit(AUTH_LIMIT))])
def login(
    body: LoginRequest,
    response: Response,
    engine: Engine = Depends(get_engine),
    tokens: TokenService = Depends(get_token_service),
    cfg: OnsConfig = Depends(get_config),
):
    """Email/password login; tokens are returned and set as cookies."""
    access_ttl = timedelta(days=cfg.remember_me_days) if body.remember_me else None
    user, pair = auth_service.login_with_password(
        engine, tokens, body.email, body.password, access_ttl=access_ttl
    )
    _set_auth_cookies(response, pair, cfg)
    return ok({"user": user, "tokens": _token_body(pair)}, message="Login successful")


@router.post(
    "/register", status_code=201, dependencies=[Depends(rate_limit(AUTH_LIMIT))]
)
def register(body: RegisterRequest, engine: Engine = Depends(get_engine)):
    user = auth_service.register_with_password(
        engine, body.email, body.password, body.name, body.phone
    )
    return ok(
        {"user": user},
        message="Registration successful. Your account is pending approval.",
    )


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return ok(None, message="Logout successful")


@router.post("/refresh", dependencies=[Depends(rate_limit(AUTH_LIMIT))])
def refresh(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    engine: Engine = Depends(get_engine),
    tokens: TokenService = Depends(get_token_service),
    cfg: OnsConfig = Depends(get_config),
):
    """Rotate the token pair using the body's or cookie's refresh token."""
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise UnauthorizedError("Refresh token is required", code="MISSING_TOKEN")
    pair = auth_service.refresh_tokens(engine, tokens, token)
    _set_auth_cookies(response, pair, cfg)
    return ok({"tokens": _token_body(pair)})


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------
@router.get("/profile")
def get_profile(
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok(auth_service.get_profile(engine, user.id))


@router.put("/profile")
def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    profile = auth_service.update_profile(engine, user.id, dump_body(body, partial=True))
    return ok(profile, message="Profile updated successfully")


# ---------------------------------------------------------------------------
# Social login
# ---------------------------------------------------------------------------
@router.get("/login/{provider}")
async def oauth_login(
    provider: str,
    redirect_uri: str | None = None,
    engine: Engine = Depends(get_engine),
    bridge: IdentityBridge = Depends(get_identity_bridge),
):
    """Start social login: returns the provider's consent URL."""
    if provider not in PROVIDERS:
        raise InputValidationError(
            "Supported providers: " + ", ".join(sorted(PROVIDERS)),
            code="INVALID_PROVIDER",
        )
    state = secrets.token_urlsafe(32)
    await run_db(_store_oauth_state, engine, state, provider, redirect_uri)
    return ok({"auth_url": bridge.authorization_url(provider, state), "provider": provider})


@router.get("/callback")
async def oauth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    engine: Engine = Depends(get_engine),
    tokens: TokenService = Depends(get_token_service),
    bridge: IdentityBridge = Depends(get_identity_bridge),
    cfg: OnsConfig = Depends(get_config),
):
    """Finish social login and bounce back to the frontend with cookies set."""
    if error:
        logger.warning("OAuth provider returned error: %s", error)
        return RedirectResponse(_frontend_redirect(cfg, None, auth="error", message=error))
    if not code or not state:
        raise InputValidationError("Authorization code is required", code="MISSING_CODE")

    row = await run_db(_consume_oauth_state, engine, state)
    if row is None:
        raise InputValidationError("Invalid or expired OAuth state", code="INVALID_STATE")

    try:
        profile = await bridge.exchange_code(code)
        user, pair, is_new = await run_db(
            auth_service.handle_oauth_callback, engine, tokens, profile
        )
    except AppError as exc:
        logger.warning("OAuth callback failed: %s", exc.message)
        return RedirectResponse(
            _frontend_redirect(
                cfg, row.redirect_uri, auth="error", message="Authentication failed"
            )
        )

    params = {"auth": "success"}
    if is_new:
        params["new_user"] = "true"
    redirect = RedirectResponse(_frontend_redirect(cfg, row.redirect_uri, **params))
    _set_auth_cookies(redirect, pair, cfg)
    return redirect


@router.get("/health")
def auth_health():
    configured = all(
        os.getenv(name, "").strip()
        for name in ("WORKOS_API_KEY", "WORKOS_CLIENT_ID", "WORKOS_REDIRECT_URI")
    )
    return ok({"status": "ok", "oauth_configured": configured})
