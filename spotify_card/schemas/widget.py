"""Schemas describing what the widget renderer draws."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .spotify import PlaybackState, TopItems, Track


class HeroStatus(str, Enum):
    PLAYING = "playing"
    PAUSED = "paused"
    LAST_PLAYED = "last_played"
    OFFLINE = "offline"


class HeroItem(BaseModel):
    """The currently-playing or most-recently-played track."""

    track: Optional[Track] = None
    status: HeroStatus = HeroStatus.OFFLINE
    progress_ms: int = 0
    duration_ms: int = 0

    @classmethod
    def from_playback(cls, playback: PlaybackState) -> "HeroItem":
        return cls(
            track=playback.track,
            status=HeroStatus.PLAYING if playback.is_playing else HeroStatus.PAUSED,
            progress_ms=playback.progress_ms,
            duration_ms=playback.duration_ms,
        )

    @classmethod
    def from_last_played(cls, track: Track) -> "HeroItem":
        return cls(track=track, status=HeroStatus.LAST_PLAYED)

    @classmethod
    def offline(cls) -> "HeroItem":
        return cls(
            track=Track(title="Nothing playing", artist="Start listening on Spotify"),
            status=HeroStatus.OFFLINE,
        )

    @property
    def is_playing(self) -> bool:
        return self.status is HeroStatus.PLAYING


class WidgetCard(BaseModel):
    """Fully resolved widget content; images are inlined ``data:`` URIs."""

    user_id: str
    hero: HeroItem
    hero_image: Optional[str] = None
    top: TopItems = Field(default_factory=TopItems)
    track_images: List[str] = Field(default_factory=list)
    artist_images: List[str] = Field(default_factory=list)
    updated_at: datetime


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ERROR = "error"


__all__ = ["ErrorKind", "HeroItem", "HeroStatus", "WidgetCard"]
