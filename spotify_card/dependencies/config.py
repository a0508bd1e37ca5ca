"""
FastAPI dependency utilities for injecting configuration.
"""

from spotify_card.core.config import AppSettings, get_settings


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return get_settings()


__all__ = ["get_app_settings"]
