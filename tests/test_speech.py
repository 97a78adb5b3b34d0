from __future__ import annotations

import base64

import pytest

from chat_relay.chat.speech import TTS_FAILURE_MESSAGE, SpeechRelay
from chat_relay.schemas.events import (
    AudioChunkEvent,
    AudioEvent,
    TtsChunkInfoEvent,
    TtsErrorEvent,
    TtsLoadingEvent,
)

from fakes import FakeGeminiClient

LONG_PROSE = " ".join(["b" * 99 + "."] + ["a" * 98 + "." for _ in range(19)])


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode("ascii")


async def _collect(generator) -> list:
    return [event async for event in generator]


@pytest.mark.anyio
async def test_long_prose_is_synthesized_in_ordered_chunks():
    client = FakeGeminiClient()
    relay = SpeechRelay(client, default_voice="Kore", max_unit_length=750)

    events = await _collect(relay.synthesize(LONG_PROSE))

    assert events[0] == TtsLoadingEvent()
    assert events[1] == TtsChunkInfoEvent(total_chunks=3, total_length=2000)
    chunks = events[2:]
    assert [event.chunk_index for event in chunks] == [0, 1, 2]
    assert [event.is_last_chunk for event in chunks] == [False, False, True]
    assert all(event.total_chunks == 3 for event in chunks)
    assert chunks[0].audio_data == _b64("audio-0")
    assert all(len(text) <= 750 for text, _ in client.speech_calls)
    assert {voice for _, voice in client.speech_calls} == {"Kore"}


@pytest.mark.anyio
async def test_failed_unit_is_skipped():
    client = FakeGeminiClient(speech_failures={1})
    relay = SpeechRelay(client, default_voice="Kore", max_unit_length=750)

    events = await _collect(relay.synthesize(LONG_PROSE))

    chunks = [event for event in events if isinstance(event, AudioChunkEvent)]
    assert [event.chunk_index for event in chunks] == [0, 2]
    assert chunks[-1].is_last_chunk
    assert not any(isinstance(event, TtsErrorEvent) for event in events)
    assert len(client.speech_calls) == 3


@pytest.mark.anyio
async def test_every_unit_failing_reports_tts_error():
    client = FakeGeminiClient(speech_failures={0, 1, 2})
    relay = SpeechRelay(client, default_voice="Kore", max_unit_length=750)

    events = await _collect(relay.synthesize(LONG_PROSE))

    assert events == [
        TtsLoadingEvent(),
        TtsChunkInfoEvent(total_chunks=3, total_length=2000),
        TtsErrorEvent(content=TTS_FAILURE_MESSAGE),
    ]


@pytest.mark.anyio
async def test_short_prose_is_one_chunk_without_info():
    client = FakeGeminiClient()
    relay = SpeechRelay(client, default_voice="Kore")

    events = await _collect(relay.synthesize("**Hello** there.", voice="Puck"))

    assert events == [
        TtsLoadingEvent(),
        AudioChunkEvent(
            audio_data=_b64("audio-0"),
            chunk_index=0,
            total_chunks=1,
            is_last_chunk=True,
        ),
    ]
    assert client.speech_calls == [("Hello there.", "Puck")]


@pytest.mark.anyio
async def test_prose_without_speakable_text_emits_nothing():
    client = FakeGeminiClient()
    relay = SpeechRelay(client, default_voice="Kore")

    assert await _collect(relay.synthesize("```\ncode only\n```")) == []
    assert client.speech_calls == []


@pytest.mark.anyio
async def test_whole_message_mode_emits_single_audio_event():
    client = FakeGeminiClient()
    relay = SpeechRelay(client, default_voice="Kore", max_unit_length=750)

    events = await _collect(relay.synthesize_whole(LONG_PROSE))

    assert events == [TtsLoadingEvent(), AudioEvent(audio_data=_b64("audio-0"))]
    assert client.speech_calls == [(LONG_PROSE, "Kore")]


@pytest.mark.anyio
async def test_whole_message_mode_reports_failure():
    client = FakeGeminiClient(speech_failures={0})
    relay = SpeechRelay(client, default_voice="Kore")

    events = await _collect(relay.synthesize_whole("Hello."))

    assert events == [TtsLoadingEvent(), TtsErrorEvent(content=TTS_FAILURE_MESSAGE)]
