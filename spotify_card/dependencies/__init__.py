"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    ServiceContainer,
    create_credential_store,
    get_credential_service,
    get_oauth_client,
    get_oauth_state_encoder,
    get_renderer,
    get_widget_service,
)
from .config import get_app_settings

__all__ = [
    "ServiceContainer",
    "create_credential_store",
    "get_app_settings",
    "get_credential_service",
    "get_oauth_client",
    "get_oauth_state_encoder",
    "get_renderer",
    "get_widget_service",
]
