"""
Thin async wrapper over the Spotify Web API endpoints used by the widget.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from spotify_card.core.config import SpotifySettings
from spotify_card.schemas.spotify import (
    Artist,
    PlaybackState,
    SpotifyProfile,
    TopItems,
    Track,
)
from spotify_card.utils.http import RetryConfig, request_with_retry

from .errors import AccessTokenRejected, UpstreamUnavailable

logger = logging.getLogger(__name__)


class SpotifyAPIClient:
    """Read-only access to profile, playback and top-items endpoints."""

    def __init__(
        self,
        settings: SpotifySettings,
        *,
        http_client: httpx.AsyncClient,
        retry_config: RetryConfig | None = None,
        top_items_limit: int = 5,
        time_range: str = "short_term",
    ) -> None:
        self._base_url = settings.api_base_url.rstrip("/")
        self._http = http_client
        self._retry = retry_config or RetryConfig()
        self._limit = top_items_limit
        self._time_range = time_range

    async def get_profile(self, access_token: str) -> SpotifyProfile:
        response = await self._get(access_token, "/me")
        if response.status_code != httpx.codes.OK:
            raise UpstreamUnavailable(f"Profile lookup failed with status {response.status_code}")
        payload = _json_or_none(response)
        if not isinstance(payload, dict) or not payload.get("id"):
            raise UpstreamUnavailable("Profile lookup returned no user id.")
        return SpotifyProfile.from_api(payload)

    async def get_currently_playing(self, access_token: str) -> Optional[PlaybackState]:
        """Return the active playback, or ``None`` when nothing is playing."""
        response = await self._get_optional(access_token, "/me/player/currently-playing")
        if response is None:
            return None
        payload = _json_or_none(response)
        item = (payload or {}).get("item")
        if not item:
            return None
        return PlaybackState(
            track=Track.from_api(item),
            is_playing=payload.get("is_playing") is True,
            progress_ms=payload.get("progress_ms") or 0,
            duration_ms=item.get("duration_ms") or 0,
        )

    async def get_recently_played(self, access_token: str) -> Optional[Track]:
        response = await self._get_optional(
            access_token, "/me/player/recently-played", params={"limit": 1}
        )
        if response is None:
            return None
        items = (_json_or_none(response) or {}).get("items") or []
        if not items or not items[0].get("track"):
            return None
        return Track.from_api(items[0]["track"])

    async def get_top_items(self, access_token: str) -> TopItems:
        """Fetch top tracks and artists concurrently.

        A half that fails for a non-auth reason comes back empty instead of
        failing the whole call.
        """
        params = {"time_range": self._time_range, "limit": self._limit}
        results = await asyncio.gather(
            self._get_optional(access_token, "/me/top/tracks", params=params),
            self._get_optional(access_token, "/me/top/artists", params=params),
            return_exceptions=True,
        )
        # Both halves have settled before a token rejection is re-raised.
        for result in results:
            if isinstance(result, BaseException):
                raise result
        tracks_response, artists_response = results
        tracks = [
            Track.from_api(item, prefer_small_image=True)
            for item in _items(tracks_response)
        ]
        artists = [Artist.from_api(item) for item in _items(artists_response)]
        return TopItems(tracks=tracks, artists=artists)

    async def _get(
        self, access_token: str, path: str, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        try:
            response = await request_with_retry(
                self._http.get,
                f"{self._base_url}{path}",
                headers={"Authorization": f"Bearer {access_token}"},
                params=params,
                retry_config=self._retry,
            )
        except httpx.TransportError as exc:
            raise UpstreamUnavailable(f"GET {path} failed: {exc}") from exc
        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise AccessTokenRejected(path)
        return response

    async def _get_optional(
        self, access_token: str, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Optional[httpx.Response]:
        """Like ``_get`` but maps empty or failed responses to ``None``."""
        try:
            response = await self._get(access_token, path, params)
        except UpstreamUnavailable as exc:
            logger.warning("Spotify request degraded: %s", exc)
            return None
        if response.status_code == httpx.codes.NO_CONTENT:
            return None
        if response.status_code != httpx.codes.OK:
            logger.warning("Spotify %s returned %d", path, response.status_code)
            return None
        return response


def _json_or_none(response: httpx.Response) -> Optional[Dict[str, Any]]:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _items(response: Optional[httpx.Response]) -> list[Dict[str, Any]]:
    if response is None:
        return []
    return (_json_or_none(response) or {}).get("items") or []


__all__ = ["SpotifyAPIClient"]
