from __future__ import annotations

import json
import re
from typing import Any

from fastapi import FastAPI
from fastapi.testclient import TestClient

from chat_relay.app import create_app
from chat_relay.chat import ChatOrchestrator
from chat_relay.routers.chat import SESSION_HEADER, router
from chat_relay.services.history_store import HistoryStore

from fakes import (
    CountingStore,
    FakeGeminiClient,
    ManualScheduler,
    make_settings,
    part_chunk,
)


def make_client(gemini: FakeGeminiClient) -> TestClient:
    app = FastAPI()
    history = HistoryStore(
        CountingStore(), scheduler=ManualScheduler(), sweep_probability=0.0
    )
    app.state.chat_orchestrator = ChatOrchestrator(make_settings(), history, gemini)
    app.include_router(router)
    return TestClient(app)


def _frames(body: str) -> list[dict[str, Any]]:
    return [
        json.loads(line[len("data: "):])
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


def test_empty_turn_is_rejected_with_plain_text() -> None:
    client = make_client(FakeGeminiClient())

    response = client.post("/api/chat", json={"message": "   "})

    assert response.status_code == 400
    assert response.text == "Message or audio data is required"
    assert response.headers["content-type"].startswith("text/plain")


def test_chat_streams_events_as_sse() -> None:
    gemini = FakeGeminiClient(
        [
            part_chunk({"text": "Considering", "thought": True}),
            part_chunk({"text": "Hello"}),
        ]
    )
    client = make_client(gemini)

    response = client.post(
        "/api/chat", json={"message": "hi", "sessionId": "session_1_abc"}
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers[SESSION_HEADER] == "session_1_abc"
    assert _frames(response.text) == [
        {"type": "thinking", "content": "Considering"},
        {"type": "text", "content": "Hello"},
        {"type": "complete"},
    ]


def test_audio_events_use_camel_case_fields() -> None:
    gemini = FakeGeminiClient([part_chunk({"text": "Hello."})])
    client = make_client(gemini)

    response = client.post("/api/chat", json={"message": "hi", "tts": True})

    frames = _frames(response.text)
    assert [frame["type"] for frame in frames] == [
        "text",
        "ttsLoading",
        "audioChunk",
        "complete",
    ]
    chunk = frames[2]
    assert set(chunk) == {
        "type",
        "audioData",
        "chunkIndex",
        "totalChunks",
        "isLastChunk",
    }
    assert chunk["isLastChunk"] is True


def test_missing_session_id_is_minted() -> None:
    client = make_client(FakeGeminiClient([part_chunk({"text": "ok"})]))

    response = client.post("/api/chat", json={"message": "hi"})

    assert re.fullmatch(r"session_\d+_[0-9a-z]{9}", response.headers[SESSION_HEADER])


def test_upstream_failure_is_reported_in_stream() -> None:
    client = make_client(FakeGeminiClient([], fail_after=0))

    response = client.post("/api/chat", json={"message": "hi"})

    assert response.status_code == 200
    assert [frame["type"] for frame in _frames(response.text)] == ["error"]


def test_invalid_body_is_rejected() -> None:
    client = make_client(FakeGeminiClient())

    response = client.post(
        "/api/chat",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 422


def test_app_factory_serves_health() -> None:
    settings = make_settings(history_backend="memory")
    app = create_app(settings)

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "chat_model": "gemini-2.5-pro",
        "tts_model": "gemini-2.5-flash-preview-tts",
        "history_backend": "memory",
    }
