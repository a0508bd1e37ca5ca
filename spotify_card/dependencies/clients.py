"""
Construction and lifecycle of shared clients, exposed as FastAPI dependencies.

Long-lived resources (the outbound HTTP pool and the credential store
connection) are built once in the application lifespan and stored on
``app.state``; dependencies only hand them out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

import httpx
from fastapi import Request

from spotify_card.clients import (
    CredentialStore,
    ImageInliner,
    OAuthStateEncoder,
    RedisCredentialStore,
    SQLiteCredentialStore,
    SpotifyAPIClient,
    SpotifyOAuthClient,
)
from spotify_card.core.config import AppSettings, StoreSettings, get_settings
from spotify_card.services import (
    CredentialService,
    LastKnownTopItems,
    TokenCipherService,
    WidgetRenderer,
    WidgetService,
)
from spotify_card.utils.http import RetryConfig

logger = logging.getLogger(__name__)


def create_credential_store(settings: StoreSettings) -> CredentialStore:
    """Pick a backend from the store URL scheme."""
    if settings.url.startswith(("redis://", "rediss://", "unix://")):
        return RedisCredentialStore.from_settings(settings)
    if settings.url.startswith("sqlite:///"):
        return SQLiteCredentialStore.from_url(
            settings.url, key_prefix=settings.key_prefix, ttl_seconds=settings.ttl_seconds
        )
    raise ValueError(f"Unsupported credential store URL scheme: {settings.url.split(':', 1)[0]}")


@dataclass
class ServiceContainer:
    """Everything a request handler may need, wired for one process."""

    http_client: httpx.AsyncClient
    store: CredentialStore
    oauth_client: SpotifyOAuthClient
    api_client: SpotifyAPIClient
    credential_service: CredentialService
    widget_service: WidgetService

    @classmethod
    def build(
        cls,
        settings: AppSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
        store: CredentialStore | None = None,
    ) -> "ServiceContainer":
        http_client = http_client or httpx.AsyncClient(
            timeout=settings.http.timeout_seconds, follow_redirects=True
        )
        store = store or create_credential_store(settings.store)
        retry = RetryConfig(
            attempts=settings.http.retry_attempts,
            backoff_seconds=settings.http.retry_backoff_seconds,
        )
        oauth_client = SpotifyOAuthClient(
            settings.spotify,
            settings.oauth.scopes,
            http_client=http_client,
            retry_config=retry,
        )
        api_client = SpotifyAPIClient(
            settings.spotify,
            http_client=http_client,
            retry_config=retry,
            top_items_limit=settings.widget.top_items_limit,
            time_range=settings.widget.top_items_time_range,
        )
        credential_service = CredentialService(
            store,
            oauth_client,
            api_client,
            TokenCipherService(secret=settings.security.token_encryption_secret),
            static_refresh_token=settings.spotify.refresh_token,
        )
        widget_service = WidgetService(
            credential_service,
            api_client,
            ImageInliner(
                http_client=http_client,
                timeout_seconds=settings.http.image_timeout_seconds,
                max_bytes=settings.http.image_max_bytes,
            ),
            last_known=LastKnownTopItems(settings.widget.last_known_entries),
        )
        return cls(
            http_client=http_client,
            store=store,
            oauth_client=oauth_client,
            api_client=api_client,
            credential_service=credential_service,
            widget_service=widget_service,
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.store.close()


def _container(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_oauth_client(request: Request) -> SpotifyOAuthClient:
    """Provide the process-wide Spotify OAuth client."""
    return _container(request).oauth_client


def get_credential_service(request: Request) -> CredentialService:
    """Provide the credential lifecycle service."""
    return _container(request).credential_service


def get_widget_service(request: Request) -> WidgetService:
    """Provide the widget assembly service."""
    return _container(request).widget_service


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder keyed by the state secret or client secret."""
    settings = get_settings()
    return OAuthStateEncoder(
        secret_key=settings.oauth.state_secret or settings.spotify.client_secret
    )


@lru_cache()
def get_renderer() -> WidgetRenderer:
    """Provide the shared template renderer."""
    return WidgetRenderer()


__all__ = [
    "ServiceContainer",
    "create_credential_store",
    "get_credential_service",
    "get_oauth_client",
    "get_oauth_state_encoder",
    "get_renderer",
    "get_widget_service",
]
