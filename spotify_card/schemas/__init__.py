"""Public schema exports."""

from .spotify import (
    Artist,
    PlaybackState,
    SpotifyProfile,
    TokenGrant,
    TopItems,
    Track,
)
from .widget import ErrorKind, HeroItem, HeroStatus, WidgetCard

__all__ = [
    "Artist",
    "ErrorKind",
    "HeroItem",
    "HeroStatus",
    "PlaybackState",
    "SpotifyProfile",
    "TokenGrant",
    "TopItems",
    "Track",
    "WidgetCard",
]
