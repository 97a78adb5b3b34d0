"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .chat import ChatOrchestrator
from .config import PROJECT_ROOT, Settings, get_settings
from .gemini import GeminiClient
from .routers.chat import router as chat_router
from .services.history_store import HistoryStore
from .services.kv_store import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    log_file = os.getenv("LOG_FILE")
    handlers: list[logging.Handler] = []
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Always add console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("chat_relay").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Request bodies carry base64 audio; keep httpx quiet unless debugging
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _build_storage(settings: Settings) -> KeyValueStore:
    if settings.history_backend == "memory":
        return MemoryKeyValueStore()

    db_path = settings.history_database_path
    if not db_path.is_absolute():
        db_path = PROJECT_ROOT / db_path
    return SQLiteKeyValueStore(db_path)


def build_history_store(settings: Settings, storage: KeyValueStore) -> HistoryStore:
    return HistoryStore(
        storage,
        max_messages=settings.history_max_messages,
        cache_ttl_seconds=settings.history_cache_ttl_seconds,
        persist_delay_seconds=settings.history_persist_delay_seconds,
        storage_ttl_seconds=settings.history_storage_ttl_seconds,
        sweep_probability=settings.history_sweep_probability,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = settings or get_settings()
    storage = _build_storage(settings)
    history = build_history_store(settings, storage)
    client = GeminiClient(settings)
    orchestrator = ChatOrchestrator(settings, history, client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if isinstance(storage, SQLiteKeyValueStore):
            await storage.initialize()
            try:
                purged = await storage.purge_expired()
            except Exception as exc:
                logging.warning("Initial history purge failed: %s", exc)
            else:
                if purged:
                    logging.info("Purged %d expired history record(s)", purged)
        try:
            yield
        finally:
            # Add timeout to prevent hanging during shutdown (especially in tests)
            try:
                await asyncio.wait_for(history.aclose(), timeout=10.0)
            except asyncio.TimeoutError:
                logging.warning("History flush timed out after 10s")
            except Exception as exc:
                logging.warning("Error flushing history during shutdown: %s", exc)
            await storage.close()
            await GeminiClient.aclose_shared()

    app = FastAPI(
        title="Gemini Chat Relay",
        version="0.1.0",
        description=(
            "Streaming chat relay for Gemini with thinking, code execution, "
            "search, and speech synthesis."
        ),
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.history_store = history
    app.state.chat_orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        expose_headers=["X-Session-Id"],
    )

    app.include_router(chat_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | None]:
        return {
            "status": "ok",
            "chat_model": settings.chat_model,
            "tts_model": settings.tts_model,
            "history_backend": settings.history_backend,
        }

    return app


__all__ = ["build_history_store", "create_app"]
