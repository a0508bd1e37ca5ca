from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from _fakes import (
    FakeOAuthClient,
    FakeProfileClient,
    FakeSpotifyAPI,
    InMemoryCredentialStore,
)
from spotify_card.clients import BLANK_IMAGE, ImageInliner
from spotify_card.schemas import Artist, HeroStatus, PlaybackState, TopItems, Track
from spotify_card.services import (
    CredentialService,
    LastKnownTopItems,
    ReauthorizationRequired,
    TokenCipherService,
    WidgetService,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


def _image_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "broken.test":
        return httpx.Response(404)
    if request.url.host == "html.test":
        return httpx.Response(200, content=b"<html>", headers={"content-type": "text/html"})
    return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})


def _service(
    api: FakeSpotifyAPI,
    *,
    store: InMemoryCredentialStore | None = None,
    static_refresh_token: str | None = None,
    last_known: LastKnownTopItems | None = None,
) -> WidgetService:
    if store is None:
        store = InMemoryCredentialStore()
        store.records["u1"] = {"username": "u1", "refresh_token": "R", "access_token": "A"}
    credentials = CredentialService(
        store,
        FakeOAuthClient(refreshed_token="A"),
        FakeProfileClient(),
        TokenCipherService(),
        static_refresh_token=static_refresh_token,
    )
    images = ImageInliner(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_image_handler))
    )
    return WidgetService(credentials, api, images, last_known=last_known)


def _track(title: str, image_url: str | None = "https://img.test/cover.png") -> Track:
    return Track(
        title=title,
        artist="Artist",
        url=f"https://open.spotify.com/track/{title}",
        image_url=image_url,
    )


@pytest.mark.asyncio
async def test_playing_track_becomes_hero_with_inlined_art() -> None:
    api = FakeSpotifyAPI(
        playback=PlaybackState(
            track=_track("Now"), is_playing=True, progress_ms=10, duration_ms=100
        ),
        top=TopItems(tracks=[_track("T1")], artists=[Artist(name="Band", image_url=None)]),
    )

    card = await _service(api).build_card("u1")

    expected = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
    assert card.user_id == "u1"
    assert card.hero.status is HeroStatus.PLAYING
    assert card.hero.track.title == "Now"
    assert card.hero_image == expected
    assert card.track_images == [expected]
    assert card.artist_images == [BLANK_IMAGE]
    assert api.recent_calls == 0


@pytest.mark.asyncio
async def test_paused_track_is_still_the_hero() -> None:
    api = FakeSpotifyAPI(
        playback=PlaybackState(track=_track("Paused"), is_playing=False),
        last_played=_track("Older"),
    )

    card = await _service(api).build_card("u1")

    assert card.hero.status is HeroStatus.PAUSED
    assert card.hero.track.title == "Paused"


@pytest.mark.asyncio
async def test_last_played_is_used_when_nothing_is_playing() -> None:
    api = FakeSpotifyAPI(last_played=_track("Older", image_url="https://broken.test/x.png"))

    card = await _service(api).build_card("u1")

    assert card.hero.status is HeroStatus.LAST_PLAYED
    assert card.hero.track.title == "Older"
    assert card.hero_image == BLANK_IMAGE


@pytest.mark.asyncio
async def test_offline_placeholder_without_history() -> None:
    card = await _service(FakeSpotifyAPI()).build_card("u1")

    assert card.hero.status is HeroStatus.OFFLINE
    assert card.hero.track.title == "Nothing playing"
    assert card.hero_image is None
    assert card.top.tracks == []


@pytest.mark.asyncio
async def test_non_image_artwork_falls_back_to_blank() -> None:
    api = FakeSpotifyAPI(top=TopItems(tracks=[_track("T1", image_url="https://html.test/a")]))

    card = await _service(api).build_card("u1")

    assert card.track_images == [BLANK_IMAGE]


@pytest.mark.asyncio
async def test_oversized_artwork_falls_back_to_blank() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, content=PNG_BYTES + b"\0" * 64, headers={"content-type": "image/png"}
        )

    images = ImageInliner(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        max_bytes=len(PNG_BYTES),
    )

    assert await images.to_data_uri("https://img.test/huge.png") == BLANK_IMAGE


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", ["status", "transport"])
async def test_artwork_fetch_is_tried_once(failure: str) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if failure == "transport":
            raise httpx.ConnectError("cdn down", request=request)
        return httpx.Response(503)

    images = ImageInliner(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    assert await images.to_data_uri("https://img.test/cover.png") == BLANK_IMAGE
    assert calls == ["https://img.test/cover.png"]


@pytest.mark.asyncio
async def test_empty_top_half_is_filled_from_last_known() -> None:
    last_known = LastKnownTopItems()
    api = FakeSpotifyAPI(
        top=TopItems(tracks=[_track("T1")], artists=[Artist(name="Band")]),
    )
    service = _service(api, last_known=last_known)
    await service.build_card("u1")

    api.top = TopItems(tracks=[_track("T2")], artists=[])
    card = await service.build_card("u1")

    assert [track.title for track in card.top.tracks] == ["T2"]
    assert [artist.name for artist in card.top.artists] == ["Band"]


@pytest.mark.asyncio
async def test_static_card_uses_configured_refresh_token() -> None:
    api = FakeSpotifyAPI(last_played=_track("Older"))

    service = _service(api, store=InMemoryCredentialStore(), static_refresh_token="STATIC")

    card = await service.build_static_card()

    assert card.user_id == "me"
    assert card.hero.track.title == "Older"


@pytest.mark.asyncio
async def test_rejected_tokens_surface_as_reauthorization() -> None:
    api = FakeSpotifyAPI(valid_token="never")

    with pytest.raises(ReauthorizationRequired):
        await _service(api).build_card("u1")


class _SlowTopSpotifyAPI(FakeSpotifyAPI):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.events: list[str] = []

    async def get_currently_playing(self, token: str):
        self.events.append(f"playing:{token}")
        return await super().get_currently_playing(token)

    async def get_top_items(self, token: str) -> TopItems:
        await asyncio.sleep(0.01)
        self.events.append(f"top:{token}")
        return await super().get_top_items(token)


@pytest.mark.asyncio
async def test_stale_token_retry_starts_after_both_requests_settle() -> None:
    api = _SlowTopSpotifyAPI(top=TopItems(tracks=[_track("T1")]))
    store = InMemoryCredentialStore()
    store.records["u1"] = {"username": "u1", "refresh_token": "R", "access_token": "stale"}

    card = await _service(api, store=store).build_card("u1")

    assert [track.title for track in card.top.tracks] == ["T1"]
    assert api.events == ["playing:stale", "top:stale", "playing:A", "top:A"]


def test_last_known_cache_evicts_oldest_entry() -> None:
    cache = LastKnownTopItems(max_entries=2)
    top = TopItems(tracks=[_track("T")])

    cache.remember("a", top)
    cache.remember("b", top)
    cache.get("a")
    cache.remember("c", top)

    assert cache.get("a") is not None
    assert cache.get("b") is None
    assert cache.get("c") is not None


def test_last_known_cache_skips_empty_results() -> None:
    cache = LastKnownTopItems()

    cache.remember("a", TopItems())

    assert cache.get("a") is None
