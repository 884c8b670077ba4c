"""Follow-up question suggestions."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from ..llm.prompts import RELATED_QUESTIONS_PROMPT
from ..llm.streaming import ChatStreamClient, stream_text
from ..schemas.chat import TextSource

logger = logging.getLogger(__name__)

RELATED_CONTEXT_SOURCES = 5
RELATED_CONTEXT_MAX_CHARS = 500


async def get_related_questions(
    client: ChatStreamClient,
    *,
    model: str,
    query: str,
    texts: Sequence[TextSource],
    on_message: Callable[[str], None],
) -> None:
    """Stream three follow-up questions, one per line.

    Failures are logged and end the suggestions early; the caller's turn
    carries on without them.
    """
    context = "\n\n".join(
        f"{text.title}\n{text.content[:RELATED_CONTEXT_MAX_CHARS]}"
        for text in texts[:RELATED_CONTEXT_SOURCES]
    )
    async for part in stream_text(
        client,
        model=model,
        system=None,
        messages=[
            {"role": "user", "content": RELATED_QUESTIONS_PROMPT % (context, query)}
        ],
        max_tokens=256,
        temperature=0.3,
    ):
        if part.type == "text-delta":
            on_message(part.text_delta)
        elif part.type == "error":
            logger.warning("Related question generation failed: %s", part.error)
            return


__all__ = ["get_related_questions"]
