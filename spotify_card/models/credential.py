"""
Domain model for persisted Spotify credentials.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserCredential(BaseModel):
    """Credential record stored as a flat hash under ``spotify:user:<id>``."""

    user_id: str = Field(..., description="Spotify user id; the only lookup key.")
    refresh_token: str
    access_token: Optional[str] = None
    display_name: str = ""
    profile_url: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    last_refreshed_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, user_id: str, record: Dict[str, str]) -> "UserCredential":
        """Build a credential from raw hash fields.

        Hash stores only hold strings, so empty strings are treated as unset.
        """
        created_at = record.get("created_at")
        refreshed_at = record.get("last_refreshed_at")
        return cls(
            user_id=record.get("username") or user_id,
            refresh_token=record["refresh_token"],
            access_token=record.get("access_token") or None,
            display_name=record.get("display_name") or user_id,
            profile_url=record.get("profile_url") or default_profile_url(user_id),
            created_at=_parse_timestamp(created_at) if created_at else utcnow(),
            last_refreshed_at=_parse_timestamp(refreshed_at) if refreshed_at else None,
        )

    def to_record(self) -> Dict[str, str]:
        """Serialize to string hash fields, omitting unset values."""
        record = {
            "username": self.user_id,
            "refresh_token": self.refresh_token,
            "display_name": self.display_name,
            "profile_url": self.profile_url,
            "created_at": self.created_at.isoformat(),
        }
        if self.access_token:
            record["access_token"] = self.access_token
        if self.last_refreshed_at is not None:
            record["last_refreshed_at"] = self.last_refreshed_at.isoformat()
        return record


def default_profile_url(user_id: str) -> str:
    return f"https://open.spotify.com/user/{user_id}"


def _parse_timestamp(value: str) -> datetime:
    # Early records stored epoch milliseconds.
    if value.isdigit():
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = ["UserCredential", "default_profile_url", "utcnow"]
