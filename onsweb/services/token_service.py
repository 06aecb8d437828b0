"""
onsweb.services.token_service — Access & Refresh Tokens
=========================================================

Stateless HS256 JWTs.  Access and refresh tokens are signed with different
secrets and carry a ``typ`` claim, so neither can stand in for the other.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from onsweb.errors import TokenError

JWT_ALGORITHM = "HS256"
TOKEN_ISSUER = "ons-webapp"
TOKEN_AUDIENCE = "ons-webapp-users"

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True, slots=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access-token lifetime, seconds


class TokenService:
    def __init__(
        self,
        secret: str,
        refresh_secret: str | None = None,
        *,
        access_ttl: timedelta = timedelta(days=1),
        refresh_ttl: timedelta = timedelta(days=30),
    ) -> None:
        self.secret = secret
        self.refresh_secret = refresh_secret or secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    # -- issue ------------------------------------------------------------
    def _encode(self, claims: dict[str, Any], typ: str, ttl: timedelta, key: str) -> str:
        now = datetime.now(UTC)
        payload = {
            **claims,
            "typ": typ,
            "iss": TOKEN_ISSUER,
            "aud": TOKEN_AUDIENCE,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, key, algorithm=JWT_ALGORITHM)

    def generate_token_pair(
        self, user_id: str, email: str, role: str, *, access_ttl: timedelta | None = None
    ) -> TokenPair:
        """Issue a fresh access/refresh pair for a user.

        *access_ttl* overrides the configured access lifetime (remember-me).
        """
        ttl = access_ttl or self.access_ttl
        claims = {"sub": user_id, "email": email, "role": str(role)}
        return TokenPair(
            access_token=self._encode(claims, ACCESS, ttl, self.secret),
            refresh_token=self._encode(
                {"sub": user_id}, REFRESH, self.refresh_ttl, self.refresh_secret
            ),
            expires_in=int(ttl.total_seconds()),
        )

    # -- verify -----------------------------------------------------------
    def _decode(self, token: str, typ: str, key: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[JWT_ALGORITHM],
                audience=TOKEN_AUDIENCE,
                issuer=TOKEN_ISSUER,
            )
        except ExpiredSignatureError:
            raise TokenError("Token has expired", code="TOKEN_EXPIRED") from None
        except InvalidTokenError:
            raise TokenError("Invalid token", code="INVALID_TOKEN") from None
        if payload.get("typ") != typ or not payload.get("sub"):
            raise TokenError("Invalid token", code="INVALID_TOKEN")
        return payload

    def verify_access_token(self, token: str) -> dict[str, Any]:
        return self._decode(token, ACCESS, self.secret)

    def verify_refresh_token(self, token: str) -> dict[str, Any]:
        return self._decode(token, REFRESH, self.refresh_secret)
