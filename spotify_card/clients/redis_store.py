"""
Redis-backed credential store.

Each user is a hash at ``<prefix><user_id>``; writes are partial ``HSET``
upserts so a refresh only touches the token fields.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from spotify_card.core.config import StoreSettings
from spotify_card.models.credential import UserCredential

from .credential_store import StoreUnavailable, record_to_credential

logger = logging.getLogger(__name__)


class RedisCredentialStore:
    """Credential store over a shared ``redis.asyncio`` connection pool."""

    def __init__(
        self,
        client: "redis.Redis",
        *,
        key_prefix: str = "spotify:user:",
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self._client = client
        self._prefix = key_prefix
        self._ttl = ttl_seconds

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> "RedisCredentialStore":
        # The pool reconnects lazily; one retry covers a dropped socket.
        client = redis.from_url(
            settings.url,
            decode_responses=True,
            socket_timeout=settings.socket_timeout_seconds,
            socket_connect_timeout=settings.socket_timeout_seconds,
            retry=Retry(ExponentialBackoff(), 1),
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
            health_check_interval=30,
        )
        return cls(client, key_prefix=settings.key_prefix, ttl_seconds=settings.ttl_seconds)

    def key_for(self, user_id: str) -> str:
        return f"{self._prefix}{user_id}"

    async def get(self, user_id: str) -> Optional[UserCredential]:
        try:
            record = await self._client.hgetall(self.key_for(user_id))
        except RedisError as exc:
            raise StoreUnavailable(f"Failed to read credentials: {exc}") from exc
        return record_to_credential(user_id, record)

    async def put(self, user_id: str, fields: Mapping[str, str]) -> None:
        if not fields:
            return
        key = self.key_for(user_id)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=dict(fields))
                if self._ttl:
                    pipe.expire(key, self._ttl)
                await pipe.execute()
        except RedisError as exc:
            raise StoreUnavailable(f"Failed to write credentials: {exc}") from exc

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except RedisError as exc:
            raise StoreUnavailable(f"Redis ping failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["RedisCredentialStore"]
