"""Chat streaming API routes."""

from __future__ import annotations

import logging
from contextlib import aclosing

from fastapi import APIRouter, Request, Response
from fastapi.responses import PlainTextResponse
from sse_starlette.sse import EventSourceResponse

from ..chat import ChatOrchestrator
from ..schemas.chat import ChatTurnRequest
from ..schemas.events import encode_event
from ..utils.identifiers import resolve_session_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

SESSION_HEADER = "X-Session-Id"


@router.post("/chat", response_model=None, status_code=200)
async def stream_chat_turn(
    payload: ChatTurnRequest,
    request: Request,
) -> Response:
    """Relay one chat turn to Gemini and stream the result as Server-Sent Events."""

    if payload.is_empty:
        return PlainTextResponse("Message or audio data is required", status_code=400)

    orchestrator: ChatOrchestrator = request.app.state.chat_orchestrator
    session_id = resolve_session_id(payload.session_id)
    history_task = orchestrator.start_history_lookup(session_id)

    logger.info(
        "Chat turn for %s (audio=%s, tts=%s)",
        session_id,
        payload.has_audio and not payload.has_text,
        payload.tts,
    )

    async def event_publisher():
        async with aclosing(
            orchestrator.process_turn(payload, session_id, history_task)
        ) as events:
            async for event in events:
                yield encode_event(event)

    return EventSourceResponse(
        event_publisher(),
        headers={"Cache-Control": "no-cache", SESSION_HEADER: session_id},
        sep="\n",
    )


__all__ = ["router", "SESSION_HEADER"]
