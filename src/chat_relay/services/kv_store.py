"""Durable key-value storage backing the session history cache."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Protocol

import aiosqlite


class KeyValueStore(Protocol):
    """Minimal durable storage contract: no transactions, TTL-based expiry."""

    async def get(self, key: str) -> bytes | None:
        ...

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        ...

    async def close(self) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local store honouring expiry; used for tests and single-node runs."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[bytes, float]] = {}
        self.writes: int = 0

    async def get(self, key: str) -> bytes | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            self._data.pop(key, None)
            return None
        return value

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self._data[key] = (bytes(value), self._clock() + ttl_seconds)
        self.writes += 1

    async def close(self) -> None:
        self._data.clear()


class SQLiteKeyValueStore:
    """Persist key-value records with an absolute expiry in SQLite."""

    def __init__(
        self,
        database_path: Path,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = database_path
        self._clock = clock
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure the table exists."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                expires_at REAL NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_kv_expires_at ON kv(expires_at);
            """
        )
        await self._connection.commit()

    async def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            await self.initialize()
        assert self._connection is not None
        return self._connection

    async def get(self, key: str) -> bytes | None:
        conn = await self._conn()
        async with conn.execute(
            "SELECT value, expires_at FROM kv WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        value, expires_at = row
        if expires_at <= self._clock():
            return None
        return bytes(value)

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        conn = await self._conn()
        await conn.execute(
            """
            INSERT INTO kv (key, value, expires_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                expires_at = excluded.expires_at
            """,
            (key, bytes(value), self._clock() + ttl_seconds),
        )
        await conn.commit()

    async def purge_expired(self) -> int:
        """Delete expired rows and return how many were removed."""

        conn = await self._conn()
        cursor = await conn.execute(
            "DELETE FROM kv WHERE expires_at <= ?", (self._clock(),)
        )
        await conn.commit()
        return cursor.rowcount or 0

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None


__all__ = ["KeyValueStore", "MemoryKeyValueStore", "SQLiteKeyValueStore"]
