"""Helpers shared by the answer pipeline: history, output token limits, stream output."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping, Optional, Protocol, Sequence

from pydantic_core import to_jsonable_python

from ..schemas.chat import ChatMessage

PRO_HISTORY_MESSAGES = 10
FREE_HISTORY_MESSAGES = 4
HISTORY_MESSAGE_MAX_CHARS = 1000

PRO_MAX_OUTPUT_TOKENS = 4096
FREE_MAX_OUTPUT_TOKENS = 2048


class StreamCallback(Protocol):
    """Receives JSON payload strings; `(None, True)` closes the stream."""

    def __call__(self, message: Optional[str], done: bool = False) -> None:
        ...


def get_history(is_pro: bool, messages: Sequence[ChatMessage]) -> str:
    """Render prior turns (excluding the latest message) for the system prompt."""

    prior = list(messages[:-1])
    limit = PRO_HISTORY_MESSAGES if is_pro else FREE_HISTORY_MESSAGES
    lines: list[str] = []
    for message in prior[-limit:]:
        content = message.content.strip()
        if not content:
            continue
        if len(content) > HISTORY_MESSAGE_MAX_CHARS:
            content = content[:HISTORY_MESSAGE_MAX_CHARS] + "..."
        speaker = "User" if message.role == "user" else "Assistant"
        lines.append(f"{speaker}: {content}")
    return "\n".join(lines)


def get_max_output_tokens(is_pro: bool) -> int:
    return PRO_MAX_OUTPUT_TOKENS if is_pro else FREE_MAX_OUTPUT_TOKENS


def encode_payload(payload: Mapping[str, Any]) -> str:
    return json.dumps(to_jsonable_python(dict(payload)), ensure_ascii=False)


async def stream_response(
    payload: Mapping[str, Any], on_stream: StreamCallback | None
) -> None:
    """Emit a JSON payload on the stream and let the consumer drain it."""

    if on_stream is None:
        return
    on_stream(encode_payload(payload))
    await asyncio.sleep(0)


__all__ = [
    "FREE_HISTORY_MESSAGES",
    "FREE_MAX_OUTPUT_TOKENS",
    "PRO_HISTORY_MESSAGES",
    "PRO_MAX_OUTPUT_TOKENS",
    "StreamCallback",
    "encode_payload",
    "get_history",
    "get_max_output_tokens",
    "stream_response",
]
