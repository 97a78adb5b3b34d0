"""Turn finished prose into ordered audio events."""

from __future__ import annotations

import logging
from typing import AsyncGenerator

from ..services.text_segmenter import build_units, sanitize
from ..schemas.events import (
    AudioChunkEvent,
    AudioEvent,
    StreamEvent,
    TtsChunkInfoEvent,
    TtsErrorEvent,
    TtsLoadingEvent,
)
from .types import SpeechClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_UNIT_LENGTH = 750
TTS_FAILURE_MESSAGE = "Speech synthesis failed."


class SpeechRelay:
    """Synthesize speech unit by unit, tolerating partial failure.

    Units are synthesized sequentially so ``audioChunk`` events always arrive in
    ascending ``chunkIndex`` order; playback on the client is sequential too.
    """

    def __init__(
        self,
        client: SpeechClient,
        *,
        default_voice: str,
        max_unit_length: int = DEFAULT_MAX_UNIT_LENGTH,
    ) -> None:
        self._client = client
        self._default_voice = default_voice
        self._max_unit_length = max_unit_length

    async def synthesize(
        self, prose: str, voice: str | None = None
    ) -> AsyncGenerator[StreamEvent, None]:
        plain, units = build_units(prose, self._max_unit_length)
        if not units:
            return

        selected_voice = voice or self._default_voice
        yield TtsLoadingEvent()

        total = len(units)
        if total > 1:
            yield TtsChunkInfoEvent(total_chunks=total, total_length=len(plain))

        delivered = 0
        for unit in units:
            try:
                audio = await self._client.synthesize_speech(unit.text, selected_voice)
            except Exception as exc:
                logger.warning(
                    "Speech synthesis failed for unit %d/%d: %s",
                    unit.index + 1,
                    total,
                    exc,
                )
                continue

            delivered += 1
            yield AudioChunkEvent(
                audio_data=audio.to_base64(),
                chunk_index=unit.index,
                total_chunks=total,
                is_last_chunk=unit.is_last,
            )

        if delivered == 0:
            logger.error("Speech synthesis produced no audio for %d unit(s)", total)
            yield TtsErrorEvent(content=TTS_FAILURE_MESSAGE)
        else:
            logger.info("Synthesized %d/%d speech unit(s)", delivered, total)

    async def synthesize_whole(
        self, prose: str, voice: str | None = None
    ) -> AsyncGenerator[StreamEvent, None]:
        """Legacy single-shot mode: one ``audio`` event for the whole message."""

        plain = sanitize(prose)
        if not plain:
            return

        yield TtsLoadingEvent()
        try:
            audio = await self._client.synthesize_speech(
                plain, voice or self._default_voice
            )
        except Exception as exc:
            logger.error("Speech synthesis failed: %s", exc)
            yield TtsErrorEvent(content=TTS_FAILURE_MESSAGE)
            return
        yield AudioEvent(audio_data=audio.to_base64())


__all__ = ["DEFAULT_MAX_UNIT_LENGTH", "SpeechRelay", "TTS_FAILURE_MESSAGE"]
