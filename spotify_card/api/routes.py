"""
FastAPI routes for account linking and widget rendering.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Awaitable, Callable, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse

from spotify_card.clients import (
    AccessTokenRejected,
    InvalidOAuthState,
    OAuthStateEncoder,
    SpotifyOAuthClient,
    StoreUnavailable,
    UpstreamAuthError,
    UpstreamUnavailable,
)
from spotify_card.core.config import AppSettings
from spotify_card.dependencies import (
    get_app_settings,
    get_credential_service,
    get_oauth_client,
    get_oauth_state_encoder,
    get_renderer,
    get_widget_service,
)
from spotify_card.schemas.widget import ErrorKind, WidgetCard
from spotify_card.services import (
    CredentialNotFoundError,
    CredentialService,
    ReauthorizationRequired,
    WidgetRenderer,
    WidgetService,
)
from spotify_card.services.widget import STATIC_USER_ID

router = APIRouter()
logger = logging.getLogger(__name__)

SVG_MEDIA_TYPE = "image/svg+xml; charset=utf-8"
NO_CACHE = "no-cache, no-store, max-age=0, must-revalidate"

Settings = Annotated[AppSettings, Depends(get_app_settings)]
Renderer = Annotated[WidgetRenderer, Depends(get_renderer)]


def _public_base_url(request: Request, settings: AppSettings) -> str:
    if settings.public_base_url:
        return str(settings.public_base_url).rstrip("/")
    return str(request.base_url).rstrip("/")


def _redirect_uri(request: Request, settings: AppSettings) -> str:
    if settings.spotify.redirect_uri:
        return str(settings.spotify.redirect_uri)
    return f"{_public_base_url(request, settings)}/auth/callback"


def _login_url(request: Request, settings: AppSettings) -> str:
    return f"{_public_base_url(request, settings)}/auth/login"


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/login")
async def start_spotify_login(
    request: Request,
    oauth_client: Annotated[SpotifyOAuthClient, Depends(get_oauth_client)],
    state_encoder: Annotated[OAuthStateEncoder, Depends(get_oauth_state_encoder)],
    settings: Settings,
) -> RedirectResponse:
    """Redirect the browser to the Spotify consent screen."""
    state = state_encoder.encode(
        {
            "nonce": uuid.uuid4().hex,
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    authorization_url = oauth_client.build_authorization_url(
        state=state, redirect_uri=_redirect_uri(request, settings)
    )
    return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)


def _verify_state(
    state: Optional[str], state_encoder: OAuthStateEncoder, settings: AppSettings
) -> None:
    if not state:
        if settings.oauth.require_state:
            raise InvalidOAuthState("Missing OAuth state.")
        return

    state_data = state_encoder.decode(state)
    issued_at_raw = state_data.get("issued_at")
    if not issued_at_raw:
        raise InvalidOAuthState("Missing issued_at in state token.")
    try:
        issued_at = datetime.fromisoformat(issued_at_raw)
    except ValueError as exc:
        raise InvalidOAuthState("Invalid issued_at in state token.") from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    if datetime.now(timezone.utc) - issued_at > timedelta(
        seconds=settings.oauth.state_ttl_seconds
    ):
        raise InvalidOAuthState("OAuth state token has expired.")


@router.get("/auth/callback", response_class=HTMLResponse)
async def handle_spotify_callback(
    request: Request,
    credential_service: Annotated[CredentialService, Depends(get_credential_service)],
    state_encoder: Annotated[OAuthStateEncoder, Depends(get_oauth_state_encoder)],
    renderer: Renderer,
    settings: Settings,
    code: Optional[str] = Query(default=None, description="Authorization code from Spotify."),
    state: Optional[str] = Query(default=None, description="State issued by /auth/login."),
    error: Optional[str] = Query(default=None, description="Error reported by Spotify."),
) -> HTMLResponse:
    """Complete the OAuth exchange, store credentials and show the widget URL."""
    login_url = _login_url(request, settings)

    def failure(status: HTTPStatus, message: str, title: str = "Authorization Failed") -> HTMLResponse:
        return HTMLResponse(
            renderer.render_auth_error(message, login_url, title=title), status_code=status
        )

    if error:
        return failure(HTTPStatus.BAD_REQUEST, f"Error: {error}")
    if not code:
        return failure(HTTPStatus.BAD_REQUEST, "Missing authorization code.")

    try:
        _verify_state(state, state_encoder, settings)
    except InvalidOAuthState as exc:
        logger.info("Rejected OAuth callback: %s", exc)
        return failure(HTTPStatus.BAD_REQUEST, str(exc))

    try:
        credential = await credential_service.link_account(
            code, _redirect_uri(request, settings)
        )
    except (UpstreamAuthError, AccessTokenRejected):
        logger.info("Spotify rejected the authorization code")
        return failure(
            HTTPStatus.BAD_REQUEST,
            "Spotify rejected the authorization code. It may have expired or already been used.",
        )
    except UpstreamUnavailable as exc:
        logger.warning("Spotify unavailable during callback: %s", exc)
        return failure(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Spotify could not be reached. Please try again.",
            title="Server Error",
        )
    except StoreUnavailable as exc:
        logger.error("Credential store unavailable during callback: %s", exc)
        return failure(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Your credentials could not be saved. Please try again.",
            title="Server Error",
        )

    widget_url = f"{_public_base_url(request, settings)}/widget/{quote(credential.user_id, safe='')}"
    return HTMLResponse(renderer.render_linked_page(credential, widget_url))


def _svg_response(svg: str, cache_control: str) -> Response:
    return Response(
        content=svg,
        media_type=SVG_MEDIA_TYPE,
        headers={
            "Cache-Control": cache_control,
            "Access-Control-Allow-Origin": "*",
        },
    )


async def _widget_response(
    build: Callable[[], Awaitable[WidgetCard]],
    user_id: str,
    request: Request,
    renderer: WidgetRenderer,
    settings: AppSettings,
) -> Response:
    """Render the card, or a fallback image that still answers 200."""
    kind: ErrorKind
    try:
        card = await asyncio.wait_for(build(), timeout=settings.widget.timeout_seconds)
    except CredentialNotFoundError:
        kind = ErrorKind.NOT_FOUND
    except ReauthorizationRequired as exc:
        logger.info("Widget for %s needs reauthorization: %s", user_id, exc)
        kind = ErrorKind.EXPIRED
    except asyncio.TimeoutError:
        logger.warning("Widget for %s timed out", user_id)
        kind = ErrorKind.ERROR
    except (StoreUnavailable, UpstreamUnavailable) as exc:
        logger.warning("Widget for %s degraded: %s", user_id, exc)
        kind = ErrorKind.ERROR
    except Exception:  # pylint: disable=broad-except
        logger.exception("Unexpected failure rendering widget for %s", user_id)
        kind = ErrorKind.ERROR
    else:
        cache_seconds = settings.widget.cache_seconds
        cache_control = (
            f"public, max-age={cache_seconds}, s-maxage={cache_seconds}"
            if cache_seconds
            else NO_CACHE
        )
        return _svg_response(renderer.render(card), cache_control)

    svg = renderer.render_error(kind, user_id, _login_url(request, settings))
    return _svg_response(svg, NO_CACHE)


@router.get("/widget/{user_id}")
async def render_user_widget(
    user_id: str,
    request: Request,
    widget_service: Annotated[WidgetService, Depends(get_widget_service)],
    renderer: Renderer,
    settings: Settings,
) -> Response:
    """Serve the listening card for a linked Spotify user."""
    return await _widget_response(
        lambda: widget_service.build_card(user_id), user_id, request, renderer, settings
    )


@router.get("/widget")
async def render_static_widget(
    request: Request,
    widget_service: Annotated[WidgetService, Depends(get_widget_service)],
    renderer: Renderer,
    settings: Settings,
) -> Response:
    """Serve the card for the account behind ``SPOTIFY_REFRESH_TOKEN``."""
    return await _widget_response(
        widget_service.build_static_card, STATIC_USER_ID, request, renderer, settings
    )
