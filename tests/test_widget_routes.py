try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import copy
import xml.etree.ElementTree as ET

import httpx
import pytest

from _fakes import (
    FakeOAuthClient,
    FakeProfileClient,
    FakeSpotifyAPI,
    InMemoryCredentialStore,
)
from spotify_card.clients import ImageInliner
from spotify_card.main import app
from spotify_card.schemas import PlaybackState, TopItems, Track
from spotify_card.services import (
    CredentialService,
    TokenCipherService,
    WidgetService,
)

SVG_NS = "{http://www.w3.org/2000/svg}"


class SlowWidgetService:
    async def build_card(self, user_id: str):
        await asyncio.sleep(5)

    async def build_static_card(self):
        await asyncio.sleep(5)


class Harness:
    def __init__(self, settings) -> None:
        self.settings = settings
        self.store = InMemoryCredentialStore()
        self.oauth = FakeOAuthClient()
        self.api = FakeSpotifyAPI(
            playback=PlaybackState(
                track=Track(title="Song", artist="Band"), is_playing=True, duration_ms=1000
            ),
            top=TopItems(tracks=[Track(title="First", artist="A")]),
        )
        self.static_refresh_token = None

    def widget_service(self) -> WidgetService:
        credentials = CredentialService(
            self.store,
            self.oauth,
            FakeProfileClient(),
            TokenCipherService(),
            static_refresh_token=self.static_refresh_token,
        )
        images = ImageInliner(
            http_client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(404))
            )
        )
        return WidgetService(credentials, self.api, images)

    def link(self, user_id: str = "u1", **fields: str) -> None:
        self.store.records[user_id] = {
            "username": user_id,
            "refresh_token": "R",
            "access_token": "A",
            **fields,
        }


@pytest.fixture()
def harness():
    from spotify_card import dependencies
    from spotify_card.core.config import get_settings

    settings = copy.deepcopy(get_settings())
    settings.public_base_url = None
    settings.widget.cache_seconds = 30
    settings.widget.timeout_seconds = 5
    state = Harness(settings)

    app.dependency_overrides.update(
        {
            dependencies.get_app_settings: lambda: settings,
            dependencies.get_widget_service: state.widget_service,
        }
    )

    yield state

    app.dependency_overrides.clear()


async def _get(path: str) -> httpx.Response:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        return await client.get(path)


def _texts(response: httpx.Response) -> list[str]:
    root = ET.fromstring(response.text)
    return ["".join(node.itertext()) for node in root.iter(f"{SVG_NS}text")]


def _assert_svg_headers(response: httpx.Response) -> None:
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("image/svg+xml")
    assert response.headers["access-control-allow-origin"] == "*"


@pytest.mark.anyio
async def test_linked_user_gets_cacheable_card(harness):
    harness.link()

    response = await _get("/widget/u1")

    _assert_svg_headers(response)
    assert response.headers["cache-control"] == "public, max-age=30, s-maxage=30"
    texts = _texts(response)
    assert "Song" in texts
    assert "First" in texts


@pytest.mark.anyio
async def test_unknown_user_gets_not_found_image(harness):
    response = await _get("/widget/ghost")

    _assert_svg_headers(response)
    assert "no-cache" in response.headers["cache-control"]
    texts = _texts(response)
    assert "🎵 User Not Found" in texts
    assert "Visit: http://testserver/auth/login" in texts
    assert harness.store.puts == []


@pytest.mark.anyio
async def test_revoked_user_gets_expired_image(harness):
    harness.link(access_token="stale")
    harness.oauth.revoked = True

    response = await _get("/widget/u1")

    _assert_svg_headers(response)
    assert "🎵 Authorization Expired" in _texts(response)
    assert harness.oauth.refreshes == ["R"]


@pytest.mark.anyio
async def test_stale_token_is_refreshed_transparently(harness):
    harness.link(access_token="stale")
    harness.oauth.refreshed_token = "A"

    response = await _get("/widget/u1")

    _assert_svg_headers(response)
    assert "Song" in _texts(response)
    assert harness.store.records["u1"]["access_token"] == "A"
    assert harness.oauth.refreshes == ["R"]


@pytest.mark.anyio
async def test_store_outage_gets_error_image(harness):
    harness.store.fail = True

    response = await _get("/widget/u1")

    _assert_svg_headers(response)
    assert "🎵 Error" in _texts(response)


@pytest.mark.anyio
async def test_slow_render_times_out_to_error_image(harness):
    from spotify_card import dependencies

    harness.settings.widget.timeout_seconds = 0.05
    app.dependency_overrides[dependencies.get_widget_service] = lambda: SlowWidgetService()

    response = await _get("/widget/u1")

    _assert_svg_headers(response)
    assert "🎵 Error" in _texts(response)


@pytest.mark.anyio
async def test_cache_can_be_disabled(harness):
    harness.link()
    harness.settings.widget.cache_seconds = 0

    response = await _get("/widget/u1")

    assert "no-cache" in response.headers["cache-control"]


@pytest.mark.anyio
async def test_user_id_is_escaped_in_error_image(harness):
    response = await _get("/widget/%3Cscript%3E")

    _assert_svg_headers(response)
    assert "<script>" not in response.text
    assert any("<script>" in text for text in _texts(response))


@pytest.mark.anyio
async def test_static_widget_without_token_is_not_found(harness):
    response = await _get("/widget")

    _assert_svg_headers(response)
    assert "🎵 User Not Found" in _texts(response)


@pytest.mark.anyio
async def test_static_widget_uses_configured_token(harness):
    harness.static_refresh_token = "STATIC"
    harness.oauth.refreshed_token = "A"

    response = await _get("/widget")

    _assert_svg_headers(response)
    assert "Song" in _texts(response)
    assert harness.oauth.refreshes == ["STATIC"]
