"""Chat orchestrator coordinating history, generation, and speech relays."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, AsyncGenerator

from ..schemas.chat import ChatTurnRequest
from ..schemas.events import CompleteEvent, StreamEvent
from ..schemas.history import HistoryMessage, SessionTranscript
from ..services.history_store import HistoryStore
from .context import Turn, build_conversation_context, user_turn, voice_turn
from .prompts import VOICE_PLACEHOLDER
from .relay import GenerationRelay
from .speech import SpeechRelay

if TYPE_CHECKING:
    from ..config import Settings
    from ..gemini import GeminiClient

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """High-level coordination for one chat turn per request."""

    def __init__(
        self,
        settings: Settings,
        history: HistoryStore,
        client: GeminiClient,
    ) -> None:
        self._settings = settings
        self._history = history
        self._client = client
        self._speech = SpeechRelay(
            client,
            default_voice=settings.default_voice,
            max_unit_length=settings.tts_max_chunk_length,
        )

    @property
    def history(self) -> HistoryStore:
        return self._history

    def start_history_lookup(self, session_id: str) -> asyncio.Task[SessionTranscript]:
        """Begin loading history so it overlaps the rest of request setup."""

        return asyncio.get_running_loop().create_task(self._history.get(session_id))

    def _new_relay(self) -> GenerationRelay:
        return GenerationRelay(
            self._client,
            chat_model=self._settings.chat_model,
            transcription_model=self._settings.transcription_model,
        )

    async def _prepare_user_turn(
        self, request: ChatTurnRequest, relay: GenerationRelay
    ) -> tuple[Turn, str]:
        """Return the upstream user turn and the text to store in history."""

        if request.has_text:
            message = request.message or ""
            return user_turn(message), message

        # Empty transcriptions are injected as-is; the turn still proceeds.
        transcription = await relay.transcribe(
            request.audio_data or "", request.mime_type
        )
        return voice_turn(transcription), transcription or VOICE_PLACEHOLDER

    async def process_turn(
        self,
        request: ChatTurnRequest,
        session_id: str,
        history_task: asyncio.Task[SessionTranscript] | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Yield every client event for one turn, then schedule persistence."""

        if history_task is None:
            history_task = self.start_history_lookup(session_id)

        relay = self._new_relay()
        transcript: SessionTranscript | None = None
        stored_user = ""
        try:
            new_turn, stored_user = await self._prepare_user_turn(request, relay)
            transcript = await history_task
            contents = build_conversation_context(
                transcript,
                system_prompt=self._settings.system_prompt,
                max_messages=self._settings.history_context_messages,
                preview_length=self._settings.history_preview_length,
            )
            contents.append(new_turn)

            async for event in relay.stream(contents):
                yield event
            if relay.failed:
                return

            response = relay.response_text
            if request.tts and response.strip():
                async for event in self._synthesize(response, request.voice):
                    yield event

            yield CompleteEvent()
        finally:
            self._record_turn(transcript, stored_user, relay.response_text)

    def _synthesize(
        self, prose: str, voice: str | None
    ) -> AsyncGenerator[StreamEvent, None]:
        if self._settings.tts_mode == "single":
            return self._speech.synthesize_whole(prose, voice)
        return self._speech.synthesize(prose, voice)

    def _record_turn(
        self,
        transcript: SessionTranscript | None,
        user_content: str,
        model_content: str,
    ) -> None:
        answer = model_content.strip()
        if transcript is None or not answer:
            return

        self._history.append(
            transcript,
            HistoryMessage(role="user", content=user_content),
            HistoryMessage(role="model", content=answer),
        )
        self._history.schedule_persist(transcript)
        logger.info(
            "Recorded turn for %s (%d messages)",
            transcript.session_id,
            len(transcript.messages),
        )


__all__ = ["ChatOrchestrator"]
