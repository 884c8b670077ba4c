"""Generate the grounded final answer from collected sources."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from ..llm.prompts import SEARCH_ANSWER_PROMPT, WEB_PAGE_ANSWER_PROMPT
from ..llm.streaming import ChatStreamClient, stream_text
from ..llm.utils import get_max_output_tokens
from ..schemas.chat import SearchCategory, TextSource

logger = logging.getLogger(__name__)

CONTEXT_SOURCE_MAX_CHARS = 4000


def build_context(texts: Sequence[TextSource]) -> str:
    """Render sources as numbered `[citation:N]` blocks."""

    blocks: list[str] = []
    for index, text in enumerate(texts, start=1):
        content = text.content
        if len(content) > CONTEXT_SOURCE_MAX_CHARS:
            content = content[:CONTEXT_SOURCE_MAX_CHARS] + "..."
        blocks.append(f"[citation:{index}] {text.title}\n{text.url}\n{content}")
    return "\n\n".join(blocks)


async def direct_answer(
    client: ChatStreamClient,
    *,
    is_pro: bool,
    source: SearchCategory,
    history: str,
    profile: str | None,
    model: str,
    query: str,
    texts: Sequence[TextSource],
    on_message: Callable[[str], None],
    on_error: Callable[[str], None],
) -> None:
    template = (
        WEB_PAGE_ANSWER_PROMPT if source == SearchCategory.WEB_PAGE else SEARCH_ANSWER_PROMPT
    )
    system = template % (profile or "", history, build_context(texts))

    async for part in stream_text(
        client,
        model=model,
        system=system,
        messages=[{"role": "user", "content": query}],
        max_tokens=get_max_output_tokens(is_pro),
        temperature=0.1,
    ):
        if part.type == "text-delta":
            on_message(part.text_delta)
        elif part.type == "error":
            logger.warning("Answer generation failed: %s", part.error)
            on_error(str(part.error))
            return


__all__ = ["build_context", "direct_answer"]
