"""
Spotify OAuth utilities.

These helpers manage the authorization-code flow and the token refresh
lifecycle against the Spotify accounts service.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from hashlib import sha256
from typing import Any, Dict, Sequence
from urllib.parse import urlencode

import httpx

from spotify_card.core.config import SpotifySettings
from spotify_card.schemas.spotify import TokenGrant
from spotify_card.utils.http import RETRYABLE_STATUS_CODES, RetryConfig, request_with_retry

from .errors import InvalidOAuthState, UpstreamAuthError, UpstreamUnavailable

logger = logging.getLogger(__name__)


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidOAuthState("Malformed OAuth state.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidOAuthState("Invalid OAuth state signature.")
        return json.loads(serialized)


class SpotifyOAuthClient:
    """Build Spotify authorization URLs and call the token endpoint."""

    def __init__(
        self,
        settings: SpotifySettings,
        scopes: Sequence[str],
        *,
        http_client: httpx.AsyncClient,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._settings = settings
        self._scopes = tuple(scopes)
        self._http = http_client
        self._retry = retry_config or RetryConfig()

    @property
    def authorize_url(self) -> str:
        return f"{self._settings.accounts_base_url.rstrip('/')}/authorize"

    @property
    def token_url(self) -> str:
        return f"{self._settings.accounts_base_url.rstrip('/')}/api/token"

    def build_authorization_url(self, state: str, redirect_uri: str) -> str:
        """Construct the Spotify consent URL."""
        params = {
            "client_id": self._settings.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": " ".join(self._scopes),
            "state": state,
            "show_dialog": "true",
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str, redirect_uri: str) -> TokenGrant:
        """
        Exchange an authorization code for an access/refresh token pair.

        Client credentials travel in the form body.
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
        }
        response = await self._post_token(payload)
        grant = self._parse_grant(response)
        if not grant.refresh_token:
            raise UpstreamAuthError("Token response did not include a refresh token.")
        return grant

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Mint a new access token, authenticating with HTTP Basic."""
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        response = await self._post_token(
            payload, auth=(self._settings.client_id, self._settings.client_secret)
        )
        return self._parse_grant(response)

    async def _post_token(self, payload: Dict[str, str], **kwargs: Any) -> httpx.Response:
        try:
            return await request_with_retry(
                self._http.post,
                self.token_url,
                data=payload,
                retry_config=self._retry,
                **kwargs,
            )
        except httpx.TransportError as exc:
            raise UpstreamUnavailable(f"Token endpoint unreachable: {exc}") from exc

    @staticmethod
    def _parse_grant(response: httpx.Response) -> TokenGrant:
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise UpstreamUnavailable(
                f"Token endpoint failed with status {response.status_code}"
            )
        if response.status_code != httpx.codes.OK:
            logger.info("Token endpoint rejected grant with status %d", response.status_code)
            raise UpstreamAuthError(response.text)

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("Token endpoint returned a non-JSON body.") from exc
        if not isinstance(token_payload, dict):
            raise UpstreamUnavailable("Token endpoint returned an unexpected payload.")
        if not token_payload.get("access_token"):
            raise UpstreamAuthError("Incomplete token payload returned from Spotify.")
        return TokenGrant(
            access_token=token_payload["access_token"],
            refresh_token=token_payload.get("refresh_token"),
            expires_in=token_payload.get("expires_in"),
            scope=token_payload.get("scope"),
        )


__all__ = ["OAuthStateEncoder", "SpotifyOAuthClient"]
