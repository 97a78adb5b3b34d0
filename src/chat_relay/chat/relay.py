"""Translate one upstream generation stream into ordered client events."""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Mapping

from ..gemini import (
    GeminiError,
    build_generation_payload,
    candidate_parts,
    extract_text,
    first_candidate,
)
from ..schemas.events import (
    CodeEvent,
    CodeResultEvent,
    ErrorEvent,
    SearchEvent,
    StreamEvent,
    TextEvent,
    ThinkingEvent,
)
from .context import Turn
from .prompts import TRANSCRIPTION_INSTRUCTION
from .types import GenerationClient

logger = logging.getLogger(__name__)

DEFAULT_CODE_LANGUAGE = "python"
GENERATION_FAILURE_MESSAGE = "An error occurred while processing your request."


def _part_event(part: Mapping[str, Any]) -> StreamEvent | None:
    text = part.get("text")
    if part.get("thought"):
        return ThinkingEvent(content=text if isinstance(text, str) else "")

    executable = part.get("executableCode")
    if isinstance(executable, Mapping):
        language = executable.get("language")
        if isinstance(language, str) and language.strip():
            normalized = language.strip().lower()
            if normalized == "language_unspecified":
                normalized = DEFAULT_CODE_LANGUAGE
        else:
            normalized = DEFAULT_CODE_LANGUAGE
        return CodeEvent(content=executable.get("code") or "", language=normalized)

    result = part.get("codeExecutionResult")
    if isinstance(result, Mapping):
        return CodeResultEvent(content=result.get("output") or "")

    if isinstance(text, str) and text:
        return TextEvent(content=text)
    return None


def _search_event(chunk: Mapping[str, Any]) -> SearchEvent | None:
    candidate = first_candidate(chunk)
    if candidate is None:
        return None
    metadata = candidate.get("groundingMetadata")
    if not isinstance(metadata, Mapping):
        return None
    queries = metadata.get("webSearchQueries")
    if not isinstance(queries, list):
        return None
    terms = [str(query) for query in queries if query]
    if not terms:
        return None
    return SearchEvent(content=f"Searched: {', '.join(terms)}")


def events_from_chunk(chunk: Mapping[str, Any]) -> list[StreamEvent]:
    """Classify every fragment of one upstream chunk, preserving order."""

    events: list[StreamEvent] = []
    for part in candidate_parts(chunk):
        event = _part_event(part)
        if event is not None:
            events.append(event)
    search = _search_event(chunk)
    if search is not None:
        events.append(search)
    return events


class GenerationRelay:
    """Drive one streaming generation call and accumulate the prose answer."""

    def __init__(
        self,
        client: GenerationClient,
        *,
        chat_model: str | None = None,
        transcription_model: str | None = None,
    ) -> None:
        self._client = client
        self._chat_model = chat_model
        self._transcription_model = transcription_model
        self._fragments: list[str] = []
        self.failed = False

    @property
    def response_text(self) -> str:
        return "".join(self._fragments)

    async def transcribe(self, audio_b64: str, mime_type: str) -> str:
        """Return the transcription of a recording, or ``""`` on any failure."""

        contents = [
            {
                "role": "user",
                "parts": [
                    {"inlineData": {"mimeType": mime_type, "data": audio_b64}},
                    {"text": TRANSCRIPTION_INSTRUCTION},
                ],
            }
        ]
        payload = build_generation_payload(
            contents,
            code_execution=False,
            web_search=True,
            include_thoughts=False,
        )
        try:
            body = await self._client.generate(
                payload, model=self._transcription_model
            )
        except GeminiError as exc:
            logger.warning(
                "Transcription failed (%s): %s", exc.status_code, exc.detail
            )
            return ""
        except Exception as exc:
            logger.warning("Transcription failed: %s", exc)
            return ""

        transcription = extract_text(body).strip()
        if not transcription:
            logger.warning("Transcription returned no text")
        return transcription

    async def stream(self, contents: list[Turn]) -> AsyncGenerator[StreamEvent, None]:
        """Yield one event per upstream fragment in arrival order.

        On upstream failure a single terminal ``error`` event is yielded and the
        generator stops.
        """

        payload = build_generation_payload(contents)
        try:
            async for chunk in self._client.stream_generate(
                payload, model=self._chat_model
            ):
                for event in events_from_chunk(chunk):
                    if isinstance(event, TextEvent):
                        self._fragments.append(event.content)
                    yield event
        except GeminiError as exc:
            logger.error(
                "Generation stream failed (%s): %s", exc.status_code, exc.detail
            )
            self.failed = True
            yield ErrorEvent(content=GENERATION_FAILURE_MESSAGE)
        except Exception as exc:
            logger.error("Generation stream failed: %s", exc, exc_info=True)
            self.failed = True
            yield ErrorEvent(content=GENERATION_FAILURE_MESSAGE)


__all__ = [
    "DEFAULT_CODE_LANGUAGE",
    "GENERATION_FAILURE_MESSAGE",
    "GenerationRelay",
    "events_from_chunk",
]
