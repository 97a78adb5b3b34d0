"""Gemini REST client: streaming generation, one-shot calls, and speech."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Iterable, Mapping, Optional

import httpx
from fastapi import status

from .config import Settings
from .utils.audio import is_raw_pcm, parse_pcm_rate, pcm_to_wav

logger = logging.getLogger(__name__)


class GeminiError(Exception):
    """Wrap transport or API failures when communicating with Gemini."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


@dataclass
class ServerSentEvent:
    """Represents a parsed Server-Sent Event."""

    data: str
    event: str = "message"
    event_id: Optional[str] = None


@dataclass
class SpeechAudio:
    """Synthesized audio returned by the speech model."""

    data: bytes
    mime_type: str

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class GeminiClient:
    """Client responsible for talking to the Gemini ``generativelanguage`` API."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(self, settings: Settings):
        self._settings = settings

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    http2=True,
                )
                self.__class__._client_pool[key] = client
        return client

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "x-goog-api-key": self._settings.gemini_api_key.get_secret_value(),
            "Content-Type": "application/json",
        }

    @property
    def _base_url(self) -> str:
        """Return the Gemini API base URL without a trailing slash."""

        return str(self._settings.gemini_base_url).rstrip("/")

    def _model_url(self, model: str, method: str) -> str:
        return f"{self._base_url}/models/{model}:{method}"

    async def stream_generate(
        self, payload: dict[str, Any], *, model: str | None = None
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Stream ``GenerateContentResponse`` chunks as parsed JSON objects."""

        url = self._model_url(
            model or self._settings.chat_model, "streamGenerateContent"
        )
        headers = dict(self._headers)
        headers["Accept"] = "text/event-stream"

        client = await self._get_http_client()
        try:
            async with client.stream(
                "POST",
                url,
                params={"alt": "sse"},
                headers=headers,
                json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    detail = self._extract_error_detail(body)
                    raise GeminiError(response.status_code, detail)

                async for event in self._iter_events(response):
                    if not event.data:
                        continue
                    try:
                        chunk = json.loads(event.data)
                    except json.JSONDecodeError:
                        logger.debug("Skipping non-JSON stream payload: %r", event.data)
                        continue
                    if isinstance(chunk, dict) and "error" in chunk:
                        raise GeminiError(
                            status.HTTP_502_BAD_GATEWAY, chunk.get("error")
                        )
                    if isinstance(chunk, dict):
                        yield chunk
        except httpx.HTTPError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def generate(
        self, payload: dict[str, Any], *, model: str | None = None
    ) -> dict[str, Any]:
        """Issue a single non-streaming ``generateContent`` call."""

        url = self._model_url(model or self._settings.chat_model, "generateContent")

        client = await self._get_http_client()
        try:
            response = await client.post(url, headers=self._headers, json=payload)
        except httpx.HTTPError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            raise GeminiError(response.status_code, detail)

        try:
            body = response.json()
        except ValueError as exc:  # pragma: no cover - unexpected payload
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        if not isinstance(body, dict):
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, "Unexpected response body")
        return body

    async def synthesize_speech(self, text: str, voice: str) -> SpeechAudio:
        """Render ``text`` with a prebuilt voice and return playable audio."""

        body = await self.generate(
            build_speech_payload(text, voice), model=self._settings.tts_model
        )
        inline = _first_inline_data(body)
        if inline is None:
            raise GeminiError(
                status.HTTP_502_BAD_GATEWAY, "Speech response contained no audio"
            )

        mime_type = str(inline.get("mimeType") or "audio/L16;rate=24000")
        try:
            audio = base64.b64decode(inline.get("data") or "", validate=True)
        except (ValueError, TypeError) as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        if not audio:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, "Speech audio was empty")

        if is_raw_pcm(mime_type):
            wav = pcm_to_wav(audio, parse_pcm_rate(mime_type))
            return SpeechAudio(wav, "audio/wav")
        return SpeechAudio(audio, mime_type)

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception:  # pragma: no cover - best effort cleanup
                pass

    async def _iter_events(
        self, response: httpx.Response
    ) -> AsyncGenerator[ServerSentEvent, None]:
        buffer: list[str] = []
        async for line in response.aiter_lines():
            if not line:
                if buffer:
                    yield self._parse_event(buffer)
                    buffer.clear()
                continue
            if line.startswith(":"):
                continue
            buffer.append(line)
        if buffer:
            yield self._parse_event(buffer)

    def _parse_event(self, lines: Iterable[str]) -> ServerSentEvent:
        event_name: Optional[str] = None
        event_id: Optional[str] = None
        data_lines: list[str] = []

        for line in lines:
            field, _, value = line.partition(":")
            value = value.lstrip(" ")
            if field == "event":
                event_name = value or None
            elif field == "data":
                data_lines.append(value)
            elif field == "id":
                event_id = value or None

        data = "\n".join(data_lines)
        return ServerSentEvent(
            data=data, event=event_name or "message", event_id=event_id
        )

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "Gemini returned an empty error response."
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, list) and payload:
            payload = payload[0]
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return error["message"]
            return error or payload
        return payload


def build_generation_payload(
    contents: list[dict[str, Any]],
    *,
    code_execution: bool = True,
    web_search: bool = True,
    include_thoughts: bool = True,
) -> dict[str, Any]:
    """Assemble a ``generateContent`` body with the requested capabilities."""

    tools: list[dict[str, Any]] = []
    if code_execution:
        tools.append({"codeExecution": {}})
    if web_search:
        tools.append({"googleSearch": {}})

    thinking: dict[str, Any]
    if include_thoughts:
        thinking = {"includeThoughts": True}
    else:
        thinking = {"thinkingBudget": 0}

    payload: dict[str, Any] = {
        "contents": contents,
        "generationConfig": {"thinkingConfig": thinking},
    }
    if tools:
        payload["tools"] = tools
    return payload


def build_speech_payload(text: str, voice: str) -> dict[str, Any]:
    return {
        "contents": [{"role": "user", "parts": [{"text": text}]}],
        "generationConfig": {
            "responseModalities": ["AUDIO"],
            "speechConfig": {
                "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}}
            },
        },
    }


def first_candidate(chunk: Mapping[str, Any]) -> Mapping[str, Any] | None:
    candidates = chunk.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    candidate = candidates[0]
    return candidate if isinstance(candidate, Mapping) else None


def candidate_parts(chunk: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    candidate = first_candidate(chunk)
    if candidate is None:
        return []
    content = candidate.get("content")
    if not isinstance(content, Mapping):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return [part for part in parts if isinstance(part, Mapping)]


def extract_text(body: Mapping[str, Any]) -> str:
    """Concatenate the non-thought text parts of a response."""

    return "".join(
        part["text"]
        for part in candidate_parts(body)
        if isinstance(part.get("text"), str) and not part.get("thought")
    )


def _first_inline_data(body: Mapping[str, Any]) -> Mapping[str, Any] | None:
    for part in candidate_parts(body):
        inline = part.get("inlineData")
        if isinstance(inline, Mapping):
            return inline
    return None


__all__ = [
    "GeminiClient",
    "GeminiError",
    "ServerSentEvent",
    "SpeechAudio",
    "build_generation_payload",
    "build_speech_payload",
    "candidate_parts",
    "extract_text",
    "first_candidate",
]
