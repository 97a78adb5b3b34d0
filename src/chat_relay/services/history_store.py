"""Read-through cache with debounced write-behind persistence for chat history."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from pydantic import ValidationError

from ..schemas.history import HistoryMessage, SessionTranscript, now_ms
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 20
DEFAULT_STORAGE_TTL_SECONDS = 7 * 24 * 60 * 60


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Arms delayed callbacks; swapped for a manual implementation in tests."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class LoopScheduler:
    """Schedule callbacks on the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


@dataclass
class CacheEntry:
    transcript: SessionTranscript
    stored_at: float


@dataclass
class PendingWrite:
    transcript: SessionTranscript
    handle: TimerHandle


class HistoryStore:
    """Own the process-local transcript cache and the pending-write table.

    Durable storage is the source of truth; the cache only saves round trips
    within one process. Cache and timer mutations never cross an ``await`` so
    interleaved requests for the same session observe them atomically.
    """

    def __init__(
        self,
        storage: KeyValueStore | None,
        *,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        cache_ttl_seconds: float = 300.0,
        persist_delay_seconds: float = 1.0,
        storage_ttl_seconds: int = DEFAULT_STORAGE_TTL_SECONDS,
        sweep_probability: float = 0.01,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._storage = storage
        self._max_messages = max_messages
        self._cache_ttl = cache_ttl_seconds
        self._persist_delay = persist_delay_seconds
        self._storage_ttl = storage_ttl_seconds
        self._sweep_probability = sweep_probability
        self._scheduler = scheduler or LoopScheduler()
        self._clock = clock
        self._rng = rng
        self._cache: dict[str, CacheEntry] = {}
        self._pending: dict[str, PendingWrite] = {}
        self._inflight: set[asyncio.Task[None]] = set()

    @staticmethod
    def storage_key(session_id: str) -> str:
        return f"chat_{session_id}"

    @property
    def pending_sessions(self) -> list[str]:
        return list(self._pending)

    def cached(self, session_id: str) -> SessionTranscript | None:
        """Return the cached transcript without touching storage."""

        entry = self._cache.get(session_id)
        if entry is None:
            return None
        if self._is_expired(entry):
            self._cache.pop(session_id, None)
            return None
        return entry.transcript

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at >= self._cache_ttl

    def _remember(self, transcript: SessionTranscript) -> None:
        self._cache[transcript.session_id] = CacheEntry(transcript, self._clock())

    def sweep(self) -> int:
        """Drop every expired cache entry and return how many were removed."""

        expired = [key for key, entry in self._cache.items() if self._is_expired(entry)]
        for key in expired:
            self._cache.pop(key, None)
        if expired:
            logger.debug("Swept %d expired history cache entries", len(expired))
        return len(expired)

    async def get(self, session_id: str) -> SessionTranscript:
        """Return the transcript for ``session_id``; never raises."""

        if self._sweep_probability > 0 and self._rng() < self._sweep_probability:
            self.sweep()

        cached = self.cached(session_id)
        if cached is not None:
            return cached

        transcript = await self._load(session_id)

        # A concurrent request may have refreshed the cache while we awaited.
        fresher = self.cached(session_id)
        if fresher is not None:
            return fresher

        self._remember(transcript)
        return transcript

    async def _load(self, session_id: str) -> SessionTranscript:
        if self._storage is None:
            return SessionTranscript.empty(session_id)

        try:
            raw = await self._storage.get(self.storage_key(session_id))
        except Exception as exc:
            logger.warning("Failed to read history for %s: %s", session_id, exc)
            return SessionTranscript.empty(session_id)

        if raw is None:
            return SessionTranscript.empty(session_id)

        try:
            transcript = SessionTranscript.from_storage(raw)
        except (ValidationError, ValueError) as exc:
            logger.warning("Discarding unreadable history for %s: %s", session_id, exc)
            return SessionTranscript.empty(session_id)

        if transcript.session_id != session_id:
            transcript.session_id = session_id
        return transcript

    def append(
        self,
        transcript: SessionTranscript,
        user_entry: HistoryMessage,
        model_entry: HistoryMessage,
    ) -> SessionTranscript:
        """Append one complete turn and drop the oldest messages past the cap."""

        transcript.messages.extend((user_entry, model_entry))
        overflow = len(transcript.messages) - self._max_messages
        if overflow > 0:
            del transcript.messages[:overflow]
        return transcript

    def schedule_persist(self, transcript: SessionTranscript) -> None:
        """Refresh the cache now and (re)arm the debounced durable write."""

        session_id = transcript.session_id
        self._remember(transcript)

        previous = self._pending.pop(session_id, None)
        if previous is not None:
            previous.handle.cancel()
            logger.debug("Coalesced pending history write for %s", session_id)

        if self._storage is None:
            return

        handle = self._scheduler.call_later(
            self._persist_delay, lambda: self._fire(session_id)
        )
        self._pending[session_id] = PendingWrite(transcript, handle)

    def _fire(self, session_id: str) -> None:
        pending = self._pending.pop(session_id, None)
        if pending is None:
            return
        task = asyncio.get_running_loop().create_task(self._write(pending.transcript))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _write(self, transcript: SessionTranscript) -> None:
        if self._storage is None:
            return
        try:
            transcript.last_updated = now_ms()
            await self._storage.put(
                self.storage_key(transcript.session_id),
                transcript.to_storage(),
                self._storage_ttl,
            )
        except Exception as exc:
            logger.error(
                "Failed to persist history for %s: %s", transcript.session_id, exc
            )
        else:
            logger.debug(
                "Persisted %d messages for %s",
                len(transcript.messages),
                transcript.session_id,
            )

    async def flush(self) -> None:
        """Write every pending transcript immediately."""

        pending = list(self._pending.values())
        self._pending.clear()
        for item in pending:
            item.handle.cancel()
            await self._write(item.transcript)

    async def aclose(self) -> None:
        """Flush pending writes and wait for in-flight ones to finish."""

        await self.flush()
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        self._cache.clear()


__all__ = [
    "CacheEntry",
    "HistoryStore",
    "LoopScheduler",
    "Scheduler",
    "TimerHandle",
]
