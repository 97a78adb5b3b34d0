"""Client-visible stream events and their SSE encoding."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

SseEvent = dict[str, str | None]


class _Event(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ThinkingEvent(_Event):
    type: Literal["thinking"] = "thinking"
    content: str


class CodeEvent(_Event):
    type: Literal["code"] = "code"
    content: str
    language: str = "python"


class CodeResultEvent(_Event):
    type: Literal["codeResult"] = "codeResult"
    content: str


class SearchEvent(_Event):
    type: Literal["search"] = "search"
    content: str


class TextEvent(_Event):
    type: Literal["text"] = "text"
    content: str


class TtsLoadingEvent(_Event):
    type: Literal["ttsLoading"] = "ttsLoading"
    content: str = "Generating speech..."


class TtsChunkInfoEvent(_Event):
    type: Literal["ttsChunkInfo"] = "ttsChunkInfo"
    total_chunks: int
    total_length: int


class AudioChunkEvent(_Event):
    type: Literal["audioChunk"] = "audioChunk"
    audio_data: str
    chunk_index: int
    total_chunks: int
    is_last_chunk: bool


class AudioEvent(_Event):
    type: Literal["audio"] = "audio"
    audio_data: str


class TtsErrorEvent(_Event):
    type: Literal["ttsError"] = "ttsError"
    content: str


class CompleteEvent(_Event):
    type: Literal["complete"] = "complete"


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    content: str


StreamEvent = Annotated[
    Union[
        ThinkingEvent,
        CodeEvent,
        CodeResultEvent,
        SearchEvent,
        TextEvent,
        TtsLoadingEvent,
        TtsChunkInfoEvent,
        AudioChunkEvent,
        AudioEvent,
        TtsErrorEvent,
        CompleteEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

_STREAM_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def encode_event(event: StreamEvent) -> SseEvent:
    """Render an event as the mapping consumed by ``EventSourceResponse``."""

    payload = _STREAM_EVENT_ADAPTER.dump_json(event, by_alias=True)
    return {"data": payload.decode("utf-8")}


__all__ = [
    "AudioChunkEvent",
    "AudioEvent",
    "CodeEvent",
    "CodeResultEvent",
    "CompleteEvent",
    "ErrorEvent",
    "SearchEvent",
    "SseEvent",
    "StreamEvent",
    "TextEvent",
    "ThinkingEvent",
    "TtsChunkInfoEvent",
    "TtsErrorEvent",
    "TtsLoadingEvent",
    "encode_event",
]
