"""
Credential lifecycle: link accounts, load stored tokens, refresh on demand.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from spotify_card.clients import (
    AccessTokenRejected,
    CredentialStore,
    SpotifyAPIClient,
    SpotifyOAuthClient,
    UpstreamAuthError,
)
from spotify_card.models.credential import UserCredential, default_profile_url, utcnow
from spotify_card.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

T = TypeVar("T")
TokenCall = Callable[[str], Awaitable[T]]

_TOKEN_FIELDS = ("access_token", "refresh_token")


class CredentialNotFoundError(Exception):
    """Raised when no credential record exists for a user."""


class ReauthorizationRequired(Exception):
    """Raised when stored credentials can no longer mint access tokens."""


class CredentialService:
    """Owns every read and write of stored Spotify credentials.

    Access tokens are validated opportunistically: a stored token is used as
    is, and only an upstream 401 triggers a refresh. Each call performs at
    most one refresh.
    """

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: SpotifyOAuthClient,
        api_client: SpotifyAPIClient,
        token_cipher: TokenCipherService,
        *,
        static_refresh_token: Optional[str] = None,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._api = api_client
        self._cipher = token_cipher
        self._static_refresh_token = static_refresh_token
        self._static_access_token: Optional[str] = None

    @property
    def static_mode_enabled(self) -> bool:
        return bool(self._static_refresh_token)

    @property
    def encryption_enabled(self) -> bool:
        return self._cipher.enabled

    async def link_account(self, code: str, redirect_uri: str) -> UserCredential:
        """Complete the authorization-code grant and persist the credentials.

        The record is keyed by the Spotify profile id, so repeating the flow
        for the same account overwrites the tokens and keeps ``created_at``.
        """
        grant = await self._oauth.exchange_authorization_code(code, redirect_uri)
        profile = await self._api.get_profile(grant.access_token)

        existing = await self._store.get(profile.id)
        now = utcnow()
        credential = UserCredential(
            user_id=profile.id,
            refresh_token=grant.refresh_token or "",
            access_token=grant.access_token,
            display_name=profile.display_name or profile.id,
            profile_url=profile.profile_url or default_profile_url(profile.id),
            created_at=existing.created_at if existing else now,
            last_refreshed_at=now,
        )
        await self._store.put(profile.id, self._encrypt_fields(credential.to_record()))
        logger.info(
            "%s Spotify account %s", "Relinked" if existing else "Linked", profile.id
        )
        return credential

    async def get_credential(self, user_id: str) -> UserCredential:
        stored = await self._store.get(user_id)
        if stored is None:
            raise CredentialNotFoundError(f"No Spotify credentials stored for {user_id}.")
        try:
            return stored.model_copy(
                update={
                    "refresh_token": self._cipher.decrypt(stored.refresh_token),
                    "access_token": (
                        self._cipher.decrypt(stored.access_token)
                        if stored.access_token
                        else None
                    ),
                }
            )
        except ValueError as exc:
            raise ReauthorizationRequired(
                f"Stored credentials for {user_id} cannot be decrypted."
            ) from exc

    async def get_access_token(self, user_id: str) -> str:
        """Return the stored access token, refreshing when none is stored."""
        credential = await self.get_credential(user_id)
        if credential.access_token:
            return credential.access_token
        return await self.refresh(credential)

    async def refresh(self, credential: UserCredential) -> str:
        """Mint and persist a new access token for ``credential``."""
        try:
            grant = await self._oauth.refresh_access_token(credential.refresh_token)
        except UpstreamAuthError as exc:
            logger.info("Refresh token rejected for %s", credential.user_id)
            raise ReauthorizationRequired(
                f"Spotify rejected the refresh token for {credential.user_id}."
            ) from exc

        fields = {
            "access_token": grant.access_token,
            "last_refreshed_at": utcnow().isoformat(),
        }
        if grant.refresh_token and grant.refresh_token != credential.refresh_token:
            fields["refresh_token"] = grant.refresh_token
        await self._store.put(credential.user_id, self._encrypt_fields(fields))
        logger.debug("Refreshed access token for %s", credential.user_id)
        return grant.access_token

    async def call_with_token(self, user_id: str, call: TokenCall[T]) -> T:
        """Run ``call`` with the user's access token, refreshing once on rejection."""
        credential = await self.get_credential(user_id)
        refreshed = False
        token = credential.access_token
        if not token:
            token = await self.refresh(credential)
            refreshed = True

        try:
            return await call(token)
        except AccessTokenRejected as exc:
            if refreshed:
                raise ReauthorizationRequired(
                    f"Fresh access token for {user_id} was rejected."
                ) from exc
            logger.info("Stored access token for %s rejected; refreshing", user_id)

        token = await self.refresh(credential)
        try:
            return await call(token)
        except AccessTokenRejected as exc:
            raise ReauthorizationRequired(
                f"Refreshed access token for {user_id} was rejected."
            ) from exc

    async def call_with_static_token(self, call: TokenCall[T]) -> T:
        """Single-user variant driven by the configured refresh token."""
        if not self._static_refresh_token:
            raise CredentialNotFoundError("No static refresh token configured.")

        refreshed = False
        token = self._static_access_token
        if not token:
            token = await self._refresh_static()
            refreshed = True

        try:
            return await call(token)
        except AccessTokenRejected as exc:
            if refreshed:
                raise ReauthorizationRequired("Fresh static access token was rejected.") from exc

        token = await self._refresh_static()
        try:
            return await call(token)
        except AccessTokenRejected as exc:
            raise ReauthorizationRequired("Refreshed static access token was rejected.") from exc

    async def _refresh_static(self) -> str:
        try:
            grant = await self._oauth.refresh_access_token(self._static_refresh_token or "")
        except UpstreamAuthError as exc:
            self._static_access_token = None
            raise ReauthorizationRequired("Static refresh token was rejected.") from exc
        self._static_access_token = grant.access_token
        return grant.access_token

    def _encrypt_fields(self, fields: Dict[str, str]) -> Dict[str, str]:
        return {
            key: self._cipher.encrypt(value) if key in _TOKEN_FIELDS else value
            for key, value in fields.items()
        }


__all__ = [
    "CredentialNotFoundError",
    "CredentialService",
    "ReauthorizationRequired",
]
