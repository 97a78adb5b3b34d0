"""Test doubles shared across the suite."""

from __future__ import annotations

from typing import Any, Callable, Iterable

from fastapi import status
from pydantic import SecretStr

from chat_relay.config import Settings
from chat_relay.gemini import GeminiError, SpeechAudio


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"gemini_api_key": SecretStr("test-key")}
    values.update(overrides)
    return Settings(**values)


def part_chunk(
    *parts: dict[str, Any], queries: list[str] | None = None
) -> dict[str, Any]:
    candidate: dict[str, Any] = {"content": {"role": "model", "parts": list(parts)}}
    if queries is not None:
        candidate["groundingMetadata"] = {"webSearchQueries": queries}
    return {"candidates": [candidate]}


def search_chunk(queries: list[str]) -> dict[str, Any]:
    return {"candidates": [{"groundingMetadata": {"webSearchQueries": queries}}]}


def text_response(text: str) -> dict[str, Any]:
    return part_chunk({"text": text})


class ManualTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler that only fires timers when a test asks it to."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def run_all(self) -> int:
        fired = 0
        for timer in self.active:
            timer.fired = True
            timer.callback()
            fired += 1
        return fired


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingStore:
    """In-memory KV store that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.gets: list[str] = []
        self.puts: list[tuple[str, bytes, int]] = []
        self.fail_get = False
        self.fail_put = False

    async def get(self, key: str) -> bytes | None:
        self.gets.append(key)
        if self.fail_get:
            raise ConnectionError("storage unreachable")
        return self.data.get(key)

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        if self.fail_put:
            raise ConnectionError("storage unreachable")
        self.puts.append((key, value, ttl_seconds))
        self.data[key] = value

    async def close(self) -> None:
        return None


class FakeGeminiClient:
    """Scripted stand-in for the Gemini client."""

    def __init__(
        self,
        chunks: Iterable[dict[str, Any]] = (),
        *,
        fail_after: int | None = None,
        transcription: str = "",
        transcription_error: Exception | None = None,
        speech_failures: Iterable[int] = (),
    ) -> None:
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.transcription = transcription
        self.transcription_error = transcription_error
        self.speech_failures = set(speech_failures)
        self.stream_calls: list[tuple[dict[str, Any], str | None]] = []
        self.generate_calls: list[tuple[dict[str, Any], str | None]] = []
        self.speech_calls: list[tuple[str, str]] = []

    async def stream_generate(
        self, payload: dict[str, Any], *, model: str | None = None
    ):
        self.stream_calls.append((payload, model))
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise GeminiError(status.HTTP_502_BAD_GATEWAY, "upstream dropped")
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, "upstream dropped")

    async def generate(
        self, payload: dict[str, Any], *, model: str | None = None
    ) -> dict[str, Any]:
        self.generate_calls.append((payload, model))
        if self.transcription_error is not None:
            raise self.transcription_error
        return text_response(self.transcription)

    async def synthesize_speech(self, text: str, voice: str) -> SpeechAudio:
        index = len(self.speech_calls)
        self.speech_calls.append((text, voice))
        if index in self.speech_failures:
            raise GeminiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "tts down")
        return SpeechAudio(f"audio-{index}".encode(), "audio/wav")
