"""
Assemble everything the widget shows for one request.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Optional

from spotify_card.clients import ImageInliner, SpotifyAPIClient
from spotify_card.models.credential import utcnow
from spotify_card.schemas.spotify import TopItems
from spotify_card.schemas.widget import HeroItem, WidgetCard
from spotify_card.services.credentials import CredentialService

logger = logging.getLogger(__name__)

STATIC_USER_ID = "me"


class LastKnownTopItems:
    """Small LRU of the latest non-empty top lists per user."""

    def __init__(self, max_entries: int = 512) -> None:
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, TopItems]" = OrderedDict()

    def get(self, user_id: str) -> Optional[TopItems]:
        top = self._entries.get(user_id)
        if top is not None:
            self._entries.move_to_end(user_id)
        return top

    def remember(self, user_id: str, top: TopItems) -> None:
        if self._max_entries <= 0 or top.is_empty:
            return
        self._entries[user_id] = top
        self._entries.move_to_end(user_id)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)


class WidgetService:
    """Fetch playback and top lists, then inline their artwork."""

    def __init__(
        self,
        credentials: CredentialService,
        api_client: SpotifyAPIClient,
        images: ImageInliner,
        *,
        last_known: LastKnownTopItems | None = None,
    ) -> None:
        self._credentials = credentials
        self._api = api_client
        self._images = images
        self._last_known = last_known or LastKnownTopItems()

    async def build_card(self, user_id: str) -> WidgetCard:
        hero, top = await self._credentials.call_with_token(user_id, self._fetch)
        return await self._assemble(user_id, hero, top)

    async def build_static_card(self) -> WidgetCard:
        hero, top = await self._credentials.call_with_static_token(self._fetch)
        return await self._assemble(STATIC_USER_ID, hero, top)

    async def _fetch(self, access_token: str) -> tuple[HeroItem, TopItems]:
        results = await asyncio.gather(
            self._api.get_currently_playing(access_token),
            self._api.get_top_items(access_token),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        playback, top = results
        if playback is not None:
            return HeroItem.from_playback(playback), top

        last_played = await self._api.get_recently_played(access_token)
        if last_played is not None:
            return HeroItem.from_last_played(last_played), top
        return HeroItem.offline(), top

    async def _assemble(self, user_id: str, hero: HeroItem, top: TopItems) -> WidgetCard:
        cached = self._last_known.get(user_id)
        if cached is not None and (not top.tracks or not top.artists):
            logger.info("Top items incomplete for %s; filling from last known lists", user_id)
            top = TopItems(
                tracks=top.tracks or cached.tracks,
                artists=top.artists or cached.artists,
            )
        self._last_known.remember(user_id, top)

        hero_url = hero.track.image_url if hero.track else None
        hero_image, track_images, artist_images = await asyncio.gather(
            self._images.to_data_uri(hero_url) if hero_url else _none(),
            self._images.inline_many(track.image_url for track in top.tracks),
            self._images.inline_many(artist.image_url for artist in top.artists),
        )
        return WidgetCard(
            user_id=user_id,
            hero=hero,
            hero_image=hero_image,
            top=top,
            track_images=track_images,
            artist_images=artist_images,
            updated_at=utcnow(),
        )


async def _none() -> None:
    return None


__all__ = ["LastKnownTopItems", "STATIC_USER_ID", "WidgetService"]
