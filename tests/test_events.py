import json

import pytest

from chat_relay.schemas.chat import ChatTurnRequest
from chat_relay.schemas.events import (
    AudioChunkEvent,
    CodeEvent,
    CompleteEvent,
    TtsChunkInfoEvent,
    encode_event,
)


def test_encode_event_uses_wire_field_names():
    frame = encode_event(TtsChunkInfoEvent(total_chunks=3, total_length=2000))

    assert set(frame) == {"data"}
    assert json.loads(frame["data"]) == {
        "type": "ttsChunkInfo",
        "totalChunks": 3,
        "totalLength": 2000,
    }


def test_complete_event_carries_only_its_type():
    assert json.loads(encode_event(CompleteEvent())["data"]) == {"type": "complete"}


def test_audio_chunk_event_serializes_camel_case():
    event = AudioChunkEvent(
        audio_data="AAAA", chunk_index=1, total_chunks=2, is_last_chunk=True
    )

    assert json.loads(encode_event(event)["data"]) == {
        "type": "audioChunk",
        "audioData": "AAAA",
        "chunkIndex": 1,
        "totalChunks": 2,
        "isLastChunk": True,
    }


def test_code_event_defaults_to_python():
    assert CodeEvent(content="print(1)").language == "python"


def test_chat_request_accepts_camel_case_fields():
    request = ChatTurnRequest.model_validate(
        {"audioData": "UklGRg==", "sessionId": "session_1_a", "tts": True}
    )

    assert request.audio_data == "UklGRg=="
    assert request.session_id == "session_1_a"
    assert request.mime_type == "audio/webm"
    assert request.has_audio and not request.has_text
    assert not request.is_empty


@pytest.mark.parametrize("body", [{}, {"message": "  "}, {"audioData": ""}])
def test_chat_request_without_content_is_empty(body):
    assert ChatTurnRequest.model_validate(body).is_empty
