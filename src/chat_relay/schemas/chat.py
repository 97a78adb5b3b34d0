"""Pydantic models for chat requests."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatTurnRequest(BaseModel):
    """Incoming chat turn: typed text or a base64 audio recording."""

    message: Optional[str] = None
    audio_data: Optional[str] = Field(default=None, alias="audioData")
    mime_type: str = Field(default="audio/webm", alias="mimeType")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    tts: bool = False
    voice: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def has_text(self) -> bool:
        return bool(self.message and self.message.strip())

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_data)

    @property
    def is_empty(self) -> bool:
        return not self.has_text and not self.has_audio


__all__ = ["ChatTurnRequest"]
