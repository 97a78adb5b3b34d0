"""Assemble the ordered conversation turns sent upstream."""

from __future__ import annotations

from typing import Any, Literal

from ..schemas.history import SessionTranscript
from .prompts import (
    HISTORY_ACKNOWLEDGMENT,
    HISTORY_HEADER,
    SYSTEM_ACKNOWLEDGMENT,
    SYSTEM_PROMPT,
    VOICE_TRANSCRIPTION_LABEL,
)

Turn = dict[str, Any]

DEFAULT_CONTEXT_MESSAGES = 10
DEFAULT_PREVIEW_LENGTH = 200


def _turn(role: Literal["user", "model"], text: str) -> Turn:
    return {"role": role, "parts": [{"text": text}]}


def user_turn(text: str) -> Turn:
    return _turn("user", text)


def voice_turn(transcription: str) -> Turn:
    """Wrap a transcription as a labelled user turn."""

    return _turn("user", f"{VOICE_TRANSCRIPTION_LABEL}: {transcription}")


def _preview(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return f"{content[:limit]}..."


def summarize_history(
    transcript: SessionTranscript,
    *,
    max_messages: int = DEFAULT_CONTEXT_MESSAGES,
    preview_length: int = DEFAULT_PREVIEW_LENGTH,
) -> str:
    recent = transcript.messages[-max_messages:]
    lines = [
        f"{message.role}: {_preview(message.content, preview_length)}"
        for message in recent
    ]
    return "\n".join([HISTORY_HEADER, *lines])


def build_conversation_context(
    transcript: SessionTranscript | None,
    *,
    system_prompt: str | None = None,
    max_messages: int = DEFAULT_CONTEXT_MESSAGES,
    preview_length: int = DEFAULT_PREVIEW_LENGTH,
) -> list[Turn]:
    """Return priming turns plus a summary of prior messages, if any.

    The caller appends the new user turn.
    """

    turns = [
        _turn("user", system_prompt or SYSTEM_PROMPT),
        _turn("model", SYSTEM_ACKNOWLEDGMENT),
    ]
    if transcript is None or not transcript.messages:
        return turns

    turns.append(
        _turn(
            "user",
            summarize_history(
                transcript,
                max_messages=max_messages,
                preview_length=preview_length,
            ),
        )
    )
    turns.append(_turn("model", HISTORY_ACKNOWLEDGMENT))
    return turns


__all__ = [
    "Turn",
    "build_conversation_context",
    "summarize_history",
    "user_turn",
    "voice_turn",
]
