"""
onsweb.services.auth_service — Authentication Workflows
=========================================================

Password login and registration, social-login callback mapping, token
refresh and profile edits.  Every function takes the engine plus whichever
collaborators it needs and returns plain dicts, so routes stay thin.

New password accounts start inactive and unverified; an administrator
activates them out of band.  Social-login accounts are trusted as verified.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import bcrypt
from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError

from onsweb.database.engine import get_session
from onsweb.database.models import User, UserRole, utcnow
from onsweb.errors import ConflictError, NotFoundError, UnauthorizedError
from onsweb.services.identity_bridge import RemoteProfile
from onsweb.services.token_service import TokenPair, TokenService
from onsweb.text import sanitize_text

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    return bcrypt.hashpw(
        password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    ).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def serialize_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "phone": user.phone,
        "role": user.role.value,
        "is_active": user.is_active,
        "email_verified": user.email_verified,
        "profile_image": user.profile_image,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _issue(tokens: TokenService, user: User, access_ttl: timedelta | None = None) -> TokenPair:
    return tokens.generate_token_pair(user.id, user.email, user.role, access_ttl=access_ttl)


# ---------------------------------------------------------------------------
# Password flows
# ---------------------------------------------------------------------------
def login_with_password(
    engine: Engine,
    tokens: TokenService,
    email: str,
    password: str,
    *,
    access_ttl: timedelta | None = None,
) -> tuple[dict, TokenPair]:
    """Verify credentials, stamp ``last_login_at`` and issue a token pair.

    Raises :class:`UnauthorizedError` for unknown email, wrong password,
    inactive account, or a social-only account with no password set.
    """
    email = email.strip().lower()
    with get_session(engine) as session:
        user = session.scalar(select(User).where(User.email == email))
        if user is None:
            logger.warning("Login failed: unknown email %s", email)
            raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")
        if not user.is_active:
            logger.warning("Login refused for inactive account %s", user.id)
            raise UnauthorizedError(
                "Account is deactivated. Please contact support.",
                code="ACCOUNT_INACTIVE",
            )
        if not user.password_hash:
            raise UnauthorizedError(
                "Please use social login for this account", code="SOCIAL_LOGIN_REQUIRED"
            )
        if not verify_password(password, user.password_hash):
            logger.warning("Login failed: bad password for %s", user.id)
            raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")

        user.last_login_at = utcnow()
        pair = _issue(tokens, user, access_ttl)
        return serialize_user(user), pair


def register_with_password(
    engine: Engine,
    email: str,
    password: str,
    name: str,
    phone: str | None = None,
) -> dict:
    """Create an inactive, unverified member account.

    No tokens are issued: the account cannot sign in until activated.
    """
    email = email.strip().lower()
    try:
        with get_session(engine) as session:
            if session.scalar(select(User.id).where(User.email == email)) is not None:
                raise ConflictError(
                    "User with this email already exists", code="USER_EXISTS"
                )
            user = User(
                email=email,
                password_hash=hash_password(password),
                name=sanitize_text(name) or email.split("@", 1)[0],
                phone=phone,
                role=UserRole.MEMBER,
                is_active=False,
                email_verified=False,
            )
            session.add(user)
            session.flush()
            result = serialize_user(user)
    except IntegrityError:
        raise ConflictError(
            "User with this email already exists", code="USER_EXISTS"
        ) from None

    logger.info("Registered new account %s (pending activation)", result["id"])
    return result


# ---------------------------------------------------------------------------
# Social login
# ---------------------------------------------------------------------------
def handle_oauth_callback(
    engine: Engine,
    tokens: TokenService,
    profile: RemoteProfile,
) -> tuple[dict, TokenPair, bool]:
    """Map a remote profile to a local user and issue tokens.

    Returns ``(user, tokens, is_new_user)``.  Unseen emails become active,
    verified members; known ones get ``last_login_at`` and the profile
    picture refreshed.
    """
    email = profile.email.strip().lower()
    with get_session(engine) as session:
        user = session.scalar(select(User).where(User.email == email))
        is_new = user is None
        if user is None:
            user = User(
                email=email,
                name=profile.display_name,
                password_hash=None,
                role=UserRole.MEMBER,
                is_active=True,
                email_verified=True,
                profile_image=profile.profile_picture_url,
                last_login_at=utcnow(),
            )
            session.add(user)
            session.flush()
        else:
            user.last_login_at = utcnow()
            if profile.profile_picture_url:
                user.profile_image = profile.profile_picture_url
        pair = _issue(tokens, user)
        result = serialize_user(user)

    logger.info(
        "Social login for %s (%s)", result["id"], "new account" if is_new else "returning"
    )
    return result, pair, is_new


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------
def refresh_tokens(engine: Engine, tokens: TokenService, refresh_token: str) -> TokenPair:
    """Verify *refresh_token* and rotate both tokens.

    The old refresh token is not revoked; it stays valid until it expires.
    """
    payload = tokens.verify_refresh_token(refresh_token)
    with get_session(engine) as session:
        user = session.get(User, payload["sub"])
        if user is None or not user.is_active:
            raise UnauthorizedError("User not found or inactive", code="INVALID_TOKEN")
        return _issue(tokens, user)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------
def get_user(engine: Engine, user_id: str) -> User | None:
    with get_session(engine) as session:
        return session.get(User, user_id)


def get_profile(engine: Engine, user_id: str) -> dict:
    user = get_user(engine, user_id)
    if user is None:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return serialize_user(user)


_PROFILE_FIELDS = ("name", "phone", "profile_image")


def update_profile(engine: Engine, user_id: str, patch: dict[str, Any]) -> dict:
    """Apply the editable profile fields present in *patch*."""
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")
        for field in _PROFILE_FIELDS:
            if field in patch:
                value = patch[field]
                if field == "name":
                    value = sanitize_text(value) or user.name
                setattr(user, field, value)
        session.flush()
        return serialize_user(user)
