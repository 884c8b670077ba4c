import json
import pathlib
import sys
from typing import Any, AsyncIterator, Optional

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from search_assistant.config import Settings  # noqa: E402


def sse_chunk(
    *,
    content: str | None = None,
    tool_calls: list[dict[str, Any]] | None = None,
    finish_reason: str | None = None,
) -> dict[str, Optional[str]]:
    """Build an SSE event dictionary shaped like OpenRouter stream output."""

    delta: dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    choice: dict[str, Any] = {"index": 0, "delta": delta}
    if finish_reason is not None:
        choice["finish_reason"] = finish_reason
    return {"event": "message", "data": json.dumps({"choices": [choice]})}


def tool_call_chunk(index: int, call_id: str, name: str, arguments: dict[str, Any]):
    return sse_chunk(
        tool_calls=[
            {
                "index": index,
                "id": call_id,
                "type": "function",
                "function": {"name": name, "arguments": json.dumps(arguments)},
            }
        ],
        finish_reason="tool_calls",
    )


DONE_EVENT = {"event": "message", "data": "[DONE]"}


class ScriptedStreamClient:
    """Replays a fixed list of SSE event scripts, one per `stream_chat_raw` call."""

    def __init__(self, scripts: list[list[dict[str, Optional[str]]] | Exception]):
        self._scripts = list(scripts)
        self.payloads: list[dict[str, Any]] = []

    async def stream_chat_raw(
        self, payload: dict[str, Any]
    ) -> AsyncIterator[dict[str, Optional[str]]]:
        self.payloads.append(payload)
        if not self._scripts:
            raise AssertionError("Unexpected extra model call")
        script = self._scripts.pop(0)
        if isinstance(script, Exception):
            raise script
        for event in script:
            yield event


@pytest.fixture
def settings(tmp_path: pathlib.Path) -> Settings:
    return Settings(
        openrouter_api_key="test-key",
        openrouter_base_url="https://openrouter.example.com/api/v1",
        searxng_base_url="https://searx.example.com",
        web_reader_base_url="https://reader.example.com",
        database_path=tmp_path / "search.db",
    )
