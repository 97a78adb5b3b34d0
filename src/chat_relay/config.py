"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    gemini_api_key: SecretStr = Field(
        ...,
        validation_alias=AliasChoices("GEMINI_API_KEY", "gemini_api_key"),
    )
    gemini_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://generativelanguage.googleapis.com/v1beta"
        ),
        validation_alias=AliasChoices("GEMINI_BASE_URL", "gemini_base_url"),
    )
    chat_model: str = Field(
        default="gemini-2.5-pro",
        validation_alias=AliasChoices("GEMINI_CHAT_MODEL", "chat_model"),
    )
    transcription_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices(
            "GEMINI_TRANSCRIPTION_MODEL", "transcription_model"
        ),
    )
    tts_model: str = Field(
        default="gemini-2.5-flash-preview-tts",
        validation_alias=AliasChoices("GEMINI_TTS_MODEL", "tts_model"),
    )
    default_voice: str = Field(
        default="Kore",
        validation_alias=AliasChoices("TTS_DEFAULT_VOICE", "default_voice"),
    )
    tts_mode: Literal["chunked", "single"] = Field(
        default="chunked",
        validation_alias=AliasChoices("TTS_MODE", "tts_mode"),
    )
    tts_max_chunk_length: int = Field(
        default=750,
        ge=50,
        validation_alias=AliasChoices("TTS_MAX_CHUNK_LENGTH", "tts_max_chunk_length"),
    )
    system_prompt: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SYSTEM_PROMPT", "system_prompt"),
    )
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("GEMINI_TIMEOUT", "timeout", "request_timeout"),
        ge=1,
    )

    history_backend: Literal["sqlite", "memory"] = Field(
        default="sqlite",
        validation_alias=AliasChoices("HISTORY_BACKEND", "history_backend"),
    )
    history_database_path: Path = Field(
        default_factory=lambda: Path("data/chat_history.db"),
        validation_alias=AliasChoices(
            "HISTORY_DATABASE_PATH", "history_database_path"
        ),
    )
    history_max_messages: int = Field(
        default=20,
        ge=2,
        validation_alias=AliasChoices("HISTORY_MAX_MESSAGES", "history_max_messages"),
    )
    history_context_messages: int = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices(
            "HISTORY_CONTEXT_MESSAGES", "history_context_messages"
        ),
    )
    history_preview_length: int = Field(
        default=200,
        ge=1,
        validation_alias=AliasChoices(
            "HISTORY_PREVIEW_LENGTH", "history_preview_length"
        ),
    )
    history_cache_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        validation_alias=AliasChoices(
            "HISTORY_CACHE_TTL_SECONDS", "history_cache_ttl_seconds"
        ),
    )
    history_persist_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        validation_alias=AliasChoices(
            "HISTORY_PERSIST_DELAY_SECONDS", "history_persist_delay_seconds"
        ),
    )
    history_storage_ttl_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        ge=60,
        validation_alias=AliasChoices(
            "HISTORY_STORAGE_TTL_SECONDS", "history_storage_ttl_seconds"
        ),
    )
    history_sweep_probability: float = Field(
        default=0.01,
        ge=0,
        le=1,
        validation_alias=AliasChoices(
            "HISTORY_SWEEP_PROBABILITY", "history_sweep_probability"
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["PROJECT_ROOT", "Settings", "get_settings"]
