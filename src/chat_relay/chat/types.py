"""Type definitions for the chat relay subsystem."""

from __future__ import annotations

from typing import Any, AsyncIterator, Protocol

from ..gemini import SpeechAudio


class GenerationClient(Protocol):
    def stream_generate(
        self, payload: dict[str, Any], *, model: str | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        ...

    async def generate(
        self, payload: dict[str, Any], *, model: str | None = None
    ) -> dict[str, Any]:
        ...


class SpeechClient(Protocol):
    async def synthesize_speech(self, text: str, voice: str) -> SpeechAudio:
        ...


__all__ = ["GenerationClient", "SpeechClient"]
