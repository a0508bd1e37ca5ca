"""Expose constructed client wrappers."""

from .credential_store import CredentialStore, StoreUnavailable
from .errors import (
    AccessTokenRejected,
    InvalidOAuthState,
    UpstreamAuthError,
    UpstreamUnavailable,
)
from .images import BLANK_IMAGE, ImageInliner
from .redis_store import RedisCredentialStore
from .spotify_api import SpotifyAPIClient
from .spotify_auth import OAuthStateEncoder, SpotifyOAuthClient
from .sqlite_store import SQLiteCredentialStore

__all__ = [
    "AccessTokenRejected",
    "BLANK_IMAGE",
    "CredentialStore",
    "ImageInliner",
    "InvalidOAuthState",
    "OAuthStateEncoder",
    "RedisCredentialStore",
    "SQLiteCredentialStore",
    "SpotifyAPIClient",
    "SpotifyOAuthClient",
    "StoreUnavailable",
    "UpstreamAuthError",
    "UpstreamUnavailable",
]
