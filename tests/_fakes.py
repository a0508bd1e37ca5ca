"""In-memory stand-ins for the store and Spotify clients."""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from spotify_card.clients import (
    AccessTokenRejected,
    StoreUnavailable,
    UpstreamAuthError,
)
from spotify_card.clients.credential_store import record_to_credential
from spotify_card.models.credential import UserCredential
from spotify_card.schemas.spotify import (
    PlaybackState,
    SpotifyProfile,
    TokenGrant,
    TopItems,
    Track,
)


class InMemoryCredentialStore:
    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, str]] = {}
        self.puts: list[tuple[str, dict]] = []
        self.fail = False

    async def get(self, user_id: str) -> Optional[UserCredential]:
        if self.fail:
            raise StoreUnavailable("store down")
        return record_to_credential(user_id, dict(self.records.get(user_id, {})))

    async def put(self, user_id: str, fields: Mapping[str, str]) -> None:
        if self.fail:
            raise StoreUnavailable("store down")
        self.puts.append((user_id, dict(fields)))
        self.records.setdefault(user_id, {}).update(fields)

    async def ping(self) -> None:
        if self.fail:
            raise StoreUnavailable("store down")

    async def close(self) -> None:
        return None


class FakeOAuthClient:
    def __init__(
        self,
        *,
        access_token: str = "A",
        refresh_token: str = "R",
        refreshed_token: str = "A2",
        rotated_refresh_token: Optional[str] = None,
    ) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.refreshed_token = refreshed_token
        self.rotated_refresh_token = rotated_refresh_token
        self.used_codes: set[str] = set()
        self.exchanges: list[tuple[str, str]] = []
        self.refreshes: list[str] = []
        self.revoked = False

    async def exchange_authorization_code(self, code: str, redirect_uri: str) -> TokenGrant:
        self.exchanges.append((code, redirect_uri))
        if code in self.used_codes:
            raise UpstreamAuthError("invalid_grant")
        self.used_codes.add(code)
        return TokenGrant(access_token=self.access_token, refresh_token=self.refresh_token)

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        self.refreshes.append(refresh_token)
        if self.revoked:
            raise UpstreamAuthError("invalid_grant")
        return TokenGrant(
            access_token=self.refreshed_token, refresh_token=self.rotated_refresh_token
        )


class FakeProfileClient:
    def __init__(self, user_id: str = "u1", display_name: str = "Alice") -> None:
        self.profile = SpotifyProfile(id=user_id, display_name=display_name)
        self.tokens: list[str] = []

    async def get_profile(self, access_token: str) -> SpotifyProfile:
        self.tokens.append(access_token)
        return self.profile


class TokenCheckingCall:
    """Async callable that rejects every token outside ``accepted``."""

    def __init__(self, *accepted: str) -> None:
        self.accepted = set(accepted)
        self.seen: list[str] = []

    async def __call__(self, token: str) -> str:
        self.seen.append(token)
        if token not in self.accepted:
            raise AccessTokenRejected("/me")
        return f"ok:{token}"


class FakeSpotifyAPI:
    """Web API stand-in that accepts a single access token."""

    def __init__(
        self,
        *,
        playback: Optional[PlaybackState] = None,
        last_played: Optional[Track] = None,
        top: Optional[TopItems] = None,
        valid_token: str = "A",
    ) -> None:
        self.playback = playback
        self.last_played = last_played
        self.top = top or TopItems()
        self.valid_token = valid_token
        self.recent_calls = 0

    def _check(self, token: str) -> None:
        if token != self.valid_token:
            raise AccessTokenRejected("/me")

    async def get_currently_playing(self, token: str) -> Optional[PlaybackState]:
        self._check(token)
        return self.playback

    async def get_recently_played(self, token: str) -> Optional[Track]:
        self._check(token)
        self.recent_calls += 1
        return self.last_played

    async def get_top_items(self, token: str) -> TopItems:
        self._check(token)
        return self.top
