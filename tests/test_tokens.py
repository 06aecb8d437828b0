"""
tests/test_tokens.py — Access & Refresh Token Round-Trips
===========================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from onsweb.errors import TokenError
from onsweb.services.token_service import (
    JWT_ALGORITHM,
    TOKEN_AUDIENCE,
    TOKEN_ISSUER,
    TokenService,
)

SECRET = "s" * 48
REFRESH_SECRET = "r" * 48


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(SECRET, REFRESH_SECRET)


class TestRoundTrip:
    def test_access_token_carries_user(self, tokens):
        pair = tokens.generate_token_pair("user-1", "a@example.org", "editor")
        payload = tokens.verify_access_token(pair.access_token)
        assert payload["sub"] == "user-1"
        assert payload["email"] == "a@example.org"
        assert payload["role"] == "editor"
        assert payload["iss"] == TOKEN_ISSUER
        assert payload["aud"] == TOKEN_AUDIENCE

    def test_refresh_token_round_trips(self, tokens):
        pair = tokens.generate_token_pair("user-1", "a@example.org", "member")
        assert tokens.verify_refresh_token(pair.refresh_token)["sub"] == "user-1"

    def test_expires_in_follows_override(self, tokens):
        pair = tokens.generate_token_pair(
            "user-1", "a@example.org", "member", access_ttl=timedelta(days=30)
        )
        assert pair.expires_in == 30 * 86400


class TestRejection:
    def test_tampered_token_is_invalid(self, tokens):
        token = tokens.generate_token_pair("u", "a@example.org", "member").access_token
        claims = jwt.decode(token, options={"verify_signature": False})
        claims["role"] = "admin"
        tampered = jwt.encode(claims, "forged-" + "k" * 40, algorithm=JWT_ALGORITHM)
        with pytest.raises(TokenError) as exc_info:
            tokens.verify_access_token(tampered)
        assert exc_info.value.code == "INVALID_TOKEN"
        assert exc_info.value.status_code == 401

    def test_expired_token_is_reported_distinctly(self, tokens):
        past = datetime.now(UTC) - timedelta(hours=2)
        expired = jwt.encode(
            {
                "sub": "u",
                "typ": "access",
                "iss": TOKEN_ISSUER,
                "aud": TOKEN_AUDIENCE,
                "iat": past,
                "exp": past + timedelta(minutes=5),
            },
            SECRET,
            algorithm=JWT_ALGORITHM,
        )
        with pytest.raises(TokenError) as exc_info:
            tokens.verify_access_token(expired)
        assert exc_info.value.code == "TOKEN_EXPIRED"

    def test_refresh_token_is_not_an_access_token(self, tokens):
        pair = tokens.generate_token_pair("u", "a@example.org", "member")
        with pytest.raises(TokenError):
            tokens.verify_access_token(pair.refresh_token)

    def test_access_token_is_not_a_refresh_token(self):
        same_key = TokenService(SECRET)
        pair = same_key.generate_token_pair("u", "a@example.org", "member")
        with pytest.raises(TokenError) as exc_info:
            same_key.verify_refresh_token(pair.access_token)
        assert exc_info.value.code == "INVALID_TOKEN"

    def test_wrong_audience_is_invalid(self, tokens):
        foreign = jwt.encode(
            {"sub": "u", "typ": "access", "iss": TOKEN_ISSUER, "aud": "someone-else"},
            SECRET,
            algorithm=JWT_ALGORITHM,
        )
        with pytest.raises(TokenError) as exc_info:
            tokens.verify_access_token(foreign)
        assert exc_info.value.code == "INVALID_TOKEN"
