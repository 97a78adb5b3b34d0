"""Pydantic models for persisted conversation history."""

from __future__ import annotations

import time
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""

    return int(time.time() * 1000)


class HistoryMessage(BaseModel):
    """A single stored chat message."""

    role: Literal["user", "model"]
    content: str
    timestamp: int = Field(default_factory=now_ms)

    model_config = ConfigDict(populate_by_name=True)


class SessionTranscript(BaseModel):
    """Bounded, chronologically ordered conversation for one session."""

    session_id: str
    messages: List[HistoryMessage] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)
    last_updated: int = Field(default_factory=now_ms)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @classmethod
    def empty(
        cls, session_id: str, *, timestamp: int | None = None
    ) -> "SessionTranscript":
        stamp = now_ms() if timestamp is None else timestamp
        return cls(session_id=session_id, created_at=stamp, last_updated=stamp)

    def to_storage(self) -> bytes:
        """Serialize using the camelCase wire layout."""

        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_storage(cls, raw: bytes | str) -> "SessionTranscript":
        return cls.model_validate_json(raw)


__all__ = ["HistoryMessage", "SessionTranscript", "now_ms"]
