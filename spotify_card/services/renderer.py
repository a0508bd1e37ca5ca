"""
SVG and HTML rendering for the widget and the OAuth pages.

All markup comes from Jinja2 templates with autoescaping enabled, so every
user-sourced string is escaped in exactly one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from spotify_card.clients.images import BLANK_IMAGE
from spotify_card.models.credential import UserCredential
from spotify_card.schemas.widget import ErrorKind, HeroStatus, WidgetCard

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

PLACEHOLDER_TEXT = "—"
ELLIPSIS = "…"

COLORS = {
    "bg": "#0a0e13",
    "bg_end": "#0d1117",
    "card": "#16181d",
    "card_end": "#1a1d24",
    "green": "#1ed760",
    "accent": "#00d4ff",
    "text": "#ffffff",
    "muted": "#9ca3af",
    "border": "#2a2d35",
    "shadow": "#00000040",
}

_STATUS_LABELS = {
    HeroStatus.PLAYING: "PLAYING",
    HeroStatus.PAUSED: "PAUSED",
    HeroStatus.LAST_PLAYED: "LAST PLAYED",
    HeroStatus.OFFLINE: "OFFLINE",
}

_ERROR_COPY = {
    ErrorKind.NOT_FOUND: (
        "User Not Found",
        "{user} hasn't connected their Spotify account yet",
        "Connect Spotify",
    ),
    ErrorKind.EXPIRED: (
        "Authorization Expired",
        "{user}'s Spotify token has expired",
        "Reconnect Spotify",
    ),
    ErrorKind.ERROR: ("Error", "Something went wrong", "Try Again"),
}


def ellipsize(
    text: Optional[str], max_width: float, font_size: float = 14, bold: bool = False
) -> str:
    """Truncate ``text`` to roughly ``max_width`` pixels.

    Glyph width is estimated as a fixed fraction of the font size, so the
    result depends only on the inputs.
    """
    if not text:
        return PLACEHOLDER_TEXT
    char_width = font_size * (0.6 if bold else 0.55)
    max_chars = int(max_width // char_width)
    if len(text) <= max_chars:
        return text
    return text[: max(max_chars - 3, 0)] + ELLIPSIS


@dataclass(frozen=True)
class Layout:
    width: int = 1000
    height: int = 320
    margin: int = 24
    gutter: int = 20
    card_height: int = 240
    top_y: int = 60
    hero_image_size: int = 140
    list_item_height: int = 40
    icon_size: int = 28

    @property
    def card_width(self) -> int:
        return (self.width - self.margin * 2 - self.gutter * 2) // 3

    def column_x(self, index: int) -> int:
        return self.margin + (self.card_width + self.gutter) * index


class WidgetRenderer:
    """Pure functions from widget data to markup strings."""

    def __init__(self, layout: Layout | None = None, environment: Environment | None = None) -> None:
        self._layout = layout or Layout()
        self._env = environment or Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(
                enabled_extensions=("html", "svg", "j2"), default_for_string=True, default=True
            ),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["ellipsize"] = ellipsize

    def render(self, card: WidgetCard) -> str:
        layout = self._layout
        hero = card.hero
        track = hero.track

        image_x = layout.column_x(0) + 16
        image_y = layout.top_y + 20
        text_x = image_x + layout.hero_image_size + 20
        progress_width = layout.card_width - 32
        fraction = 0.0
        if hero.duration_ms > 0:
            fraction = min(max(hero.progress_ms / hero.duration_ms, 0.0), 1.0)
        remaining_ms = max(0, hero.duration_ms - hero.progress_ms)

        context = {
            "colors": COLORS,
            "layout": layout,
            "card": card,
            "columns": [layout.column_x(i) for i in range(3)],
            "hero": {
                "title": ellipsize(track.title if track else None, layout.card_width - layout.hero_image_size - 50, 18, True),
                "artist": ellipsize(track.artist if track else None, layout.card_width - layout.hero_image_size - 50, 15),
                "url": track.url if track else None,
                "image": card.hero_image,
                "is_playing": hero.is_playing,
                "status": _STATUS_LABELS[hero.status],
                "image_x": image_x,
                "image_y": image_y,
                "text_x": text_x,
                "title_y": image_y + 35,
                "artist_y": image_y + 63,
                "status_y": image_y + 88,
                "progress_y": image_y + layout.hero_image_size + 20,
                "progress_width": progress_width,
                "progress_current": round(progress_width * fraction, 2),
                "show_progress": hero.duration_ms > 0,
                "remaining_seconds": f"{remaining_ms / 1000:.2f}",
            },
            "tracks": self._list_rows(
                [(t.title, t.artist, t.url) for t in card.top.tracks], card.track_images
            ),
            "artists": self._list_rows(
                [(a.name, None, a.url) for a in card.top.artists], card.artist_images
            ),
            "updated_at": card.updated_at.strftime("%H:%M UTC"),
            "label": f"Spotify Summary for {card.user_id}",
        }
        return self._env.get_template("widget.svg.j2").render(**context).strip()

    def render_error(self, kind: ErrorKind, user_id: str, login_url: str) -> str:
        title, message, action = _ERROR_COPY[kind]
        context = {
            "layout": self._layout,
            "colors": COLORS,
            "title": title,
            "message": message.format(user=ellipsize(user_id, 600, 16)),
            "action": action.lower(),
            "login_url": login_url,
        }
        return self._env.get_template("error.svg.j2").render(**context).strip()

    def render_linked_page(self, credential: UserCredential, widget_url: str) -> str:
        markdown = f"[![Spotify Summary]({widget_url})]({credential.profile_url})"
        return self._env.get_template("linked.html.j2").render(
            credential=credential, widget_url=widget_url, markdown=markdown
        )

    def render_auth_error(self, message: str, login_url: str, title: str = "Authorization Failed") -> str:
        return self._env.get_template("auth_error.html.j2").render(
            title=title, message=message, login_url=login_url
        )

    def _list_rows(self, entries, images) -> list[dict]:
        layout = self._layout
        text_width = layout.card_width - 100
        rows = []
        for index, (primary, secondary, url) in enumerate(entries):
            item_y = layout.top_y + 30 + index * layout.list_item_height
            center_y = item_y + layout.list_item_height // 2
            rows.append(
                {
                    "rank": index + 1,
                    "item_y": item_y,
                    "center_y": center_y,
                    "icon_y": center_y - layout.icon_size // 2,
                    "image": images[index] if index < len(images) else BLANK_IMAGE,
                    "primary": ellipsize(
                        primary,
                        text_width * (0.65 if secondary is not None else 1.0),
                        14 if secondary is not None else 15,
                        True,
                    ),
                    "secondary": (
                        ellipsize(secondary, text_width * 0.8, 12)
                        if secondary is not None
                        else None
                    ),
                    "url": url,
                }
            )
        return rows


__all__ = ["COLORS", "Layout", "WidgetRenderer", "ellipsize"]
