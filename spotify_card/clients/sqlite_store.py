"""SQLite-backed substitute for the Redis credential store."""

from __future__ import annotations

import asyncio
import sqlite3
import time
from pathlib import Path
from typing import Dict, Mapping, Optional

from spotify_card.models.credential import UserCredential

from .credential_store import StoreUnavailable, record_to_credential


class SQLiteCredentialStore:
    """Hash-per-user store using a table keyed by (key, field).

    Mirrors the Redis layout so records can be moved between backends, and
    runs the blocking sqlite3 calls in a worker thread.
    """

    def __init__(
        self,
        db_path: str,
        *,
        key_prefix: str = "spotify:user:",
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._prefix = key_prefix
        self._ttl = ttl_seconds
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "SQLiteCredentialStore":
        """Accept ``sqlite:///relative.db`` and ``sqlite:////abs/path.db``."""
        if not url.startswith("sqlite:///"):
            raise ValueError(f"Unsupported SQLite URL: {url}")
        return cls(url[len("sqlite:///"):], **kwargs)

    def key_for(self, user_id: str) -> str:
        return f"{self._prefix}{user_id}"

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS credential_fields (
                    key TEXT NOT NULL,
                    field TEXT NOT NULL,
                    value TEXT NOT NULL,
                    PRIMARY KEY (key, field)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS credential_expiry (
                    key TEXT PRIMARY KEY,
                    expires_at REAL NOT NULL
                )
                """
            )

    def _hgetall(self, key: str) -> Dict[str, str]:
        with self._connect() as conn:
            expiry = conn.execute(
                "SELECT expires_at FROM credential_expiry WHERE key = ?", (key,)
            ).fetchone()
            if expiry and expiry["expires_at"] <= time.time():
                conn.execute("DELETE FROM credential_fields WHERE key = ?", (key,))
                conn.execute("DELETE FROM credential_expiry WHERE key = ?", (key,))
                return {}
            rows = conn.execute(
                "SELECT field, value FROM credential_fields WHERE key = ?", (key,)
            ).fetchall()
        return {row["field"]: row["value"] for row in rows}

    def _hset(self, key: str, fields: Mapping[str, str]) -> None:
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO credential_fields (key, field, value)
                VALUES (?, ?, ?)
                ON CONFLICT(key, field) DO UPDATE SET value = excluded.value
                """,
                [(key, field, str(value)) for field, value in fields.items()],
            )
            if self._ttl:
                conn.execute(
                    """
                    INSERT INTO credential_expiry (key, expires_at) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET expires_at = excluded.expires_at
                    """,
                    (key, time.time() + self._ttl),
                )

    async def get(self, user_id: str) -> Optional[UserCredential]:
        try:
            record = await asyncio.to_thread(self._hgetall, self.key_for(user_id))
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Failed to read credentials: {exc}") from exc
        return record_to_credential(user_id, record)

    async def put(self, user_id: str, fields: Mapping[str, str]) -> None:
        if not fields:
            return
        try:
            await asyncio.to_thread(self._hset, self.key_for(user_id), dict(fields))
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Failed to write credentials: {exc}") from exc

    async def ping(self) -> None:
        try:
            await asyncio.to_thread(self._hgetall, "__ping__")
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"SQLite store unusable: {exc}") from exc

    async def close(self) -> None:
        """Connections are per call; nothing to release."""


__all__ = ["SQLiteCredentialStore"]
