"""Web search tool used by the model to gather grounding sources."""

from __future__ import annotations

import logging

from ..llm.utils import StreamCallback, stream_response
from ..schemas.chat import SearchCategory, SearchResult
from ..search.engine import SearchEngine

logger = logging.getLogger(__name__)


async def search_relevant_content(
    question: str,
    user_id: str,
    source: SearchCategory,
    on_stream: StreamCallback | None,
    *,
    engine: SearchEngine,
    text_limit: int = 10,
) -> SearchResult:
    """Search for `question` and publish the text sources on the stream."""

    logger.info(
        "Searching for user %s (source=%s): %r", user_id, source.value, question
    )
    result = await engine.search(question)
    texts = result.texts[:text_limit]
    await stream_response({"sources": texts}, on_stream)
    return SearchResult(texts=texts, images=result.images)


__all__ = ["search_relevant_content"]
