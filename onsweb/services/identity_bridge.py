"""
onsweb.services.identity_bridge — WorkOS Social Login
=======================================================

Thin wrapper around the WorkOS User Management endpoints the backend needs:
building the provider authorization URL and exchanging the returned ``code``
for the remote user profile.  Local account mapping happens in
:func:`onsweb.services.auth_service.handle_oauth_callback`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from onsweb.errors import IdentityProviderError, InputValidationError

logger = logging.getLogger(__name__)

WORKOS_API = "https://api.workos.com"

PROVIDERS: dict[str, str] = {
    "google": "GoogleOAuth",
    "facebook": "FacebookOAuth",
}


@dataclass(frozen=True, slots=True)
class RemoteProfile:
    """The identity provider's view of a user."""

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    profile_picture_url: str | None = None

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p).strip()
        return full or self.email.split("@", 1)[0]


class IdentityBridge:
    def __init__(
        self,
        api_key: str,
        client_id: str,
        redirect_uri: str,
        *,
        base_url: str = WORKOS_API,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @classmethod
    def from_env(cls) -> IdentityBridge:
        """Build from ``WORKOS_*`` env vars; raises a clear error if unset."""
        api_key = os.getenv("WORKOS_API_KEY", "").strip()
        client_id = os.getenv("WORKOS_CLIENT_ID", "").strip()
        redirect_uri = os.getenv("WORKOS_REDIRECT_URI", "").strip()

        missing = [
            name
            for name, value in (
                ("WORKOS_API_KEY", api_key),
                ("WORKOS_CLIENT_ID", client_id),
                ("WORKOS_REDIRECT_URI", redirect_uri),
            )
            if not value
        ]
        if missing:
            raise IdentityProviderError(
                "Social login is not configured: missing " + ", ".join(missing),
                code="OAUTH_NOT_CONFIGURED",
            )
        return cls(api_key, client_id, redirect_uri)

    def authorization_url(self, provider: str, state: str) -> str:
        if provider not in PROVIDERS:
            raise InputValidationError(
                f"Unsupported provider: {provider}",
                code="INVALID_PROVIDER",
                details={"supported": sorted(PROVIDERS)},
            )
        query = urlencode({
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "provider": PROVIDERS[provider],
            "state": state,
        })
        return f"{self.base_url}/user_management/authorize?{query}"

    async def exchange_code(self, code: str) -> RemoteProfile:
        """Swap an authorization *code* for the authenticated user's profile."""
        transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
        async with httpx.AsyncClient(timeout=10, transport=transport) as client:
            try:
                resp = await client.post(
                    f"{self.base_url}/user_management/authenticate",
                    json={
                        "client_id": self.client_id,
                        "client_secret": self.api_key,
                        "grant_type": "authorization_code",
                        "code": code,
                    },
                )
            except httpx.HTTPError as exc:
                logger.warning("WorkOS code exchange failed: %s", exc)
                raise IdentityProviderError("Identity provider unreachable") from exc

        if resp.status_code != 200:
            logger.warning(
                "WorkOS code exchange rejected (%d): %s", resp.status_code, resp.text[:200]
            )
            raise IdentityProviderError("OAuth code exchange failed")

        user = resp.json().get("user") or {}
        if not user.get("id") or not user.get("email"):
            raise IdentityProviderError("Identity provider returned no user")

        return RemoteProfile(
            id=user["id"],
            email=user["email"].strip().lower(),
            first_name=user.get("first_name"),
            last_name=user.get("last_name"),
            profile_picture_url=user.get("profile_picture_url"),
        )
