"""Contract shared by the credential store backends."""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Protocol

from spotify_card.models.credential import UserCredential


class StoreUnavailable(Exception):
    """Raised when the credential store cannot be reached."""


class CredentialStore(Protocol):
    """Key-value map from Spotify user id to a flat credential hash."""

    async def get(self, user_id: str) -> Optional[UserCredential]:
        ...

    async def put(self, user_id: str, fields: Mapping[str, str]) -> None:
        """Upsert ``fields`` into the user's hash, leaving other fields untouched."""
        ...

    async def ping(self) -> None:
        ...

    async def close(self) -> None:
        ...


def record_to_credential(user_id: str, record: Dict[str, str]) -> Optional[UserCredential]:
    """Hashes without a refresh token are treated as absent."""
    if not record or not record.get("refresh_token"):
        return None
    return UserCredential.from_record(user_id, record)


__all__ = ["CredentialStore", "StoreUnavailable", "record_to_credential"]
