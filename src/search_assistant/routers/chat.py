"""Chat streaming API routes."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from sse_starlette.sse import EventSourceResponse

from ..chat import AutoAnswerOrchestrator
from ..repository import SearchRepository
from ..schemas.chat import AutoAnswerRequest

router = APIRouter(prefix="/api", tags=["chat"])

logger = logging.getLogger(__name__)


@router.post("/chat/auto", response_model=None, status_code=200)
async def stream_auto_answer(
    payload: AutoAnswerRequest,
    request: Request,
) -> EventSourceResponse:
    """Run one search-augmented turn and relay its progress as Server-Sent Events."""

    orchestrator: AutoAnswerOrchestrator = request.app.state.auto_answer_orchestrator
    queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

    def on_stream(message: Optional[str], done: bool = False) -> None:
        if message is not None:
            queue.put_nowait(message)
        if done:
            queue.put_nowait(None)

    async def event_publisher():
        task = asyncio.create_task(
            orchestrator.auto_answer(
                payload.messages,
                payload.is_pro,
                payload.user_id,
                profile=payload.profile,
                on_stream=on_stream,
                model=payload.model,
                source=payload.source,
                chat_id=payload.chat_id,
            )
        )
        # Ends the relay even when the turn exits without a close signal.
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                message = await queue.get()
                if message is None:
                    break
                yield {"event": "message", "data": message}
            yield {"event": "message", "data": "[DONE]"}
            await task
        finally:
            if not task.done():
                logger.info("Client disconnected; cancelling turn for %s", payload.user_id)
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task

    return EventSourceResponse(event_publisher())


@router.get("/chats/{chat_id}")
async def get_chat(
    chat_id: str,
    request: Request,
    user_id: str = Query(..., min_length=1),
) -> dict[str, Any]:
    repository: SearchRepository = request.app.state.repository
    chat = await repository.get_chat(chat_id, user_id=user_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


@router.get("/users/{user_id}/search-count")
async def get_search_count(user_id: str, request: Request) -> dict[str, Any]:
    repository: SearchRepository = request.app.state.repository
    count = await repository.get_search_count(user_id)
    return {"user_id": user_id, "search_count": count}


__all__ = ["router"]
