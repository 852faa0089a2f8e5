"""Identity provider client for the OAuth2 authorization-code flow.

Wraps the three provider interactions the token lifecycle needs: building
the consent redirect, exchanging or refreshing tokens at the token
endpoint, and resolving the authenticated principal's display name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from tokenkeeper.core.config import Settings

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """Raised when the provider rejects a request or cannot be reached."""


@dataclass(frozen=True)
class TokenGrant:
    """Tokens returned from the provider's token endpoint."""

    access_token: str
    refresh_token: str | None
    expires_in: int


class IdentityProviderClient:
    """Build authorization URLs and talk to the provider's token endpoint."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        authorize_url: str,
        token_url: str,
        display_name_field: str = "CharacterName",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._authorize_url = authorize_url
        self._token_url = token_url
        self._display_name_field = display_name_field
        self._http = http_client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> IdentityProviderClient:
        return cls(
            client_id=settings.sso_client_id,
            client_secret=settings.sso_client_secret,
            authorize_url=settings.sso_authorize_url,
            token_url=settings.sso_token_url,
            display_name_field=settings.sso_display_name_field,
            timeout=settings.http_timeout_seconds,
        )

    def close(self) -> None:
        self._http.close()

    def build_authorization_url(self, callback_url: str, scopes: str, state: str) -> str:
        """Construct the provider consent URL for the requested scopes."""
        params = {
            "response_type": "code",
            "redirect_uri": callback_url,
            "client_id": self._client_id,
            "scope": scopes,
            "state": state,
        }
        return f"{self._authorize_url}?{urlencode(params)}"

    def exchange_code(self, code: str, callback_url: str | None = None) -> TokenGrant:
        """Exchange an authorization code for an access/refresh token pair."""
        payload = {"grant_type": "authorization_code", "code": code}
        if callback_url:
            payload["redirect_uri"] = callback_url
        grant = self._token_request(payload)
        if not grant.refresh_token:
            raise IdentityProviderError("Token response did not include a refresh token.")
        return grant

    def refresh(self, refresh_token: str) -> TokenGrant:
        """Obtain a new access token using a stored refresh token."""
        return self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    def verify_identity(self, access_token: str, verify_url: str) -> str:
        """Resolve the display name of the principal owning ``access_token``."""
        try:
            response = self._http.get(
                verify_url, headers={"Authorization": f"Bearer {access_token}"}
            )
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"Verification request failed: {e}") from e

        if not response.is_success:
            raise IdentityProviderError(
                f"Verification returned HTTP {response.status_code}"
            )
        try:
            name = response.json().get(self._display_name_field)
        except ValueError as e:
            raise IdentityProviderError("Verification response was not JSON") from e
        if not name:
            raise IdentityProviderError(
                f"Verification response missing {self._display_name_field}"
            )
        return str(name)

    def _token_request(self, payload: dict[str, str]) -> TokenGrant:
        try:
            response = self._http.post(
                self._token_url,
                data=payload,
                auth=(self._client_id, self._client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            # Timeouts land here too and are treated like a rejection
            raise IdentityProviderError(f"Token request failed: {e}") from e

        if response.status_code != httpx.codes.OK:
            logger.warning(
                f"Token endpoint rejected {payload['grant_type']} grant: "
                f"HTTP {response.status_code}"
            )
            raise IdentityProviderError(response.text)

        try:
            body = response.json()
        except ValueError as e:
            raise IdentityProviderError("Token response was not JSON") from e

        access_token = body.get("access_token")
        expires_in = body.get("expires_in")
        if not access_token or not expires_in:
            raise IdentityProviderError("Incomplete token payload returned from provider.")

        return TokenGrant(
            access_token=access_token,
            refresh_token=body.get("refresh_token"),
            expires_in=int(expires_in),
        )
