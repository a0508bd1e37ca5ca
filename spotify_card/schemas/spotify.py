"""Schemas for payloads returned by the Spotify accounts and Web APIs."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TokenGrant(BaseModel):
    """Result of a call to the token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None


class SpotifyProfile(BaseModel):
    """Subset of ``GET /me`` used to key stored credentials."""

    id: str
    display_name: Optional[str] = None
    profile_url: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "SpotifyProfile":
        return cls(
            id=payload["id"],
            display_name=payload.get("display_name"),
            profile_url=(payload.get("external_urls") or {}).get("spotify"),
        )


class Track(BaseModel):
    title: str
    artist: str = ""
    url: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any], *, prefer_small_image: bool = False) -> "Track":
        album_images = (item.get("album") or {}).get("images") or []
        return cls(
            title=item.get("name") or "",
            artist=", ".join(
                artist.get("name", "") for artist in item.get("artists") or []
            ),
            url=(item.get("external_urls") or {}).get("spotify"),
            image_url=pick_image(album_images, prefer_small=prefer_small_image),
        )


class Artist(BaseModel):
    name: str
    url: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Artist":
        return cls(
            name=item.get("name") or "",
            url=(item.get("external_urls") or {}).get("spotify"),
            image_url=pick_image(item.get("images") or [], prefer_small=True),
        )


class PlaybackState(BaseModel):
    """What the user's active device reports right now."""

    track: Track
    is_playing: bool = False
    progress_ms: int = 0
    duration_ms: int = 0


class TopItems(BaseModel):
    tracks: List[Track] = Field(default_factory=list)
    artists: List[Artist] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.tracks and not self.artists


def pick_image(images: List[Dict[str, Any]], *, prefer_small: bool = False) -> Optional[str]:
    """Return an image URL from Spotify's largest-first image list.

    List entries use the smallest of the first three sizes; hero art uses the
    largest.
    """
    if not images:
        return None
    if not prefer_small:
        return images[0].get("url")
    for image in reversed(images[:3]):
        if image.get("url"):
            return image["url"]
    return None


__all__ = [
    "Artist",
    "PlaybackState",
    "SpotifyProfile",
    "TokenGrant",
    "TopItems",
    "Track",
    "pick_image",
]
