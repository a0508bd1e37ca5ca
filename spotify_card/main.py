"""
FastAPI application entrypoint for the Spotify listening card.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from spotify_card.api.routes import router as api_router
from spotify_card.clients import StoreUnavailable
from spotify_card.core.config import get_settings
from spotify_card.core.logging import configure_logging
from spotify_card.dependencies import ServiceContainer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the shared HTTP pool and store connection, close them on shutdown."""
    settings = get_settings()
    services = ServiceContainer.build(settings)
    try:
        await services.store.ping()
    except StoreUnavailable as exc:
        # Requests degrade to fallback images; reconnection happens lazily.
        logger.warning("Credential store not reachable at startup: %s", exc)
    if services.credential_service.static_mode_enabled:
        logger.info("Single-user widget enabled at /widget")
    if not services.credential_service.encryption_enabled:
        logger.warning("TOKEN_ENCRYPTION_SECRET not set; tokens are stored in plaintext")
    app.state.services = services
    try:
        yield
    finally:
        await services.aclose()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Spotify Listening Card",
        version="0.1.0",
        description="Links Spotify accounts and serves embeddable now-playing SVG cards.",
        lifespan=lifespan,
    )
    app.include_router(api_router)
    return app


app = create_app()

__all__ = ["app", "create_app", "lifespan"]
