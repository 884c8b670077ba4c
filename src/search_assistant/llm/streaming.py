"""Single-step model streaming with tool execution.

`stream_text` sends one completion request, turns the OpenRouter SSE feed into
typed `StreamPart` values, and executes any tool calls the model issued once
the model stream is complete. Tool results are reported as parts rather than
fed back to the model.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncGenerator,
    AsyncIterator,
    Awaitable,
    Callable,
    Literal,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

from pydantic import BaseModel, ValidationError

from ..openrouter import OpenRouterError

logger = logging.getLogger(__name__)


StreamPartType = Literal["text-delta", "tool-call", "tool-result", "error", "finish"]


class ChatStreamClient(Protocol):
    def stream_chat_raw(
        self, payload: dict[str, Any]
    ) -> AsyncIterator[dict[str, Optional[str]]]:
        ...


@dataclass
class ToolDefinition:
    """A callable tool exposed to the model with a pydantic argument schema."""

    name: str
    description: str
    parameters: type[BaseModel]
    execute: Callable[[Any], Awaitable[Any]]

    def to_openai_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters.model_json_schema(),
            },
        }


@dataclass
class StreamPart:
    type: StreamPartType
    text_delta: str = ""
    tool_call_id: str | None = None
    tool_name: str | None = None
    args: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: Any = None
    finish_reason: str | None = None


def merge_tool_calls(
    accumulator: list[dict[str, Any]],
    deltas: Any,
) -> None:
    """Fold streamed `tool_calls` deltas into complete call entries."""

    for delta in deltas or []:
        if not isinstance(delta, dict):
            continue

        index = delta.get("index")
        delta_id = delta.get("id")
        if not isinstance(index, int) or index < 0:
            index = None
            if isinstance(delta_id, str):
                for existing_index, existing in enumerate(accumulator):
                    if existing.get("id") == delta_id:
                        index = existing_index
                        break
            if index is None:
                index = len(accumulator)

        while len(accumulator) <= index:
            accumulator.append(
                {
                    "id": None,
                    "type": "function",
                    "function": {"name": None, "arguments": ""},
                }
            )

        entry = accumulator[index]
        if delta_id:
            entry["id"] = delta_id
        if delta_type := delta.get("type"):
            entry["type"] = delta_type

        function_delta = delta.get("function") or {}
        if function_name := function_delta.get("name"):
            entry.setdefault("function", {"name": None, "arguments": ""})
            entry["function"]["name"] = function_name
        if arguments_fragment := function_delta.get("arguments"):
            entry.setdefault("function", {"name": None, "arguments": ""})
            entry["function"]["arguments"] += arguments_fragment


def finalize_tool_calls(
    tool_calls: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Drop nameless calls and assign ids; empty arguments become `{}`."""

    finalized: list[dict[str, Any]] = []
    for index, call in enumerate(tool_calls):
        if not isinstance(call, dict):
            continue

        function = call.get("function") or {}
        if not isinstance(function, dict):
            function = {}

        name = function.get("name")
        if not (isinstance(name, str) and name.strip()):
            continue
        arguments = function.get("arguments")
        if not (isinstance(arguments, str) and arguments.strip()):
            arguments = "{}"

        entry = dict(call)
        entry["function"] = {"name": name, "arguments": arguments}
        if not entry.get("id"):
            entry["id"] = f"call_{index}"
        finalized.append(entry)

    return finalized


def _describe_error(detail: Any) -> str:
    if isinstance(detail, OpenRouterError):
        detail = detail.detail
    if isinstance(detail, Mapping):
        message = detail.get("message")
        if isinstance(message, str) and message:
            return message
        return json.dumps(detail, default=str)
    return str(detail)


async def _run_tool(
    tool: ToolDefinition, call_id: str, args: BaseModel, raw_args: dict[str, Any]
) -> StreamPart:
    try:
        result = await tool.execute(args)
    except Exception as exc:
        logger.warning("Tool %s (%s) failed: %s", tool.name, call_id, exc)
        return StreamPart(
            type="error",
            tool_call_id=call_id,
            tool_name=tool.name,
            args=raw_args,
            error=f"Tool {tool.name} failed: {exc}",
        )
    return StreamPart(
        type="tool-result",
        tool_call_id=call_id,
        tool_name=tool.name,
        args=raw_args,
        result=result,
    )


async def stream_text(
    client: ChatStreamClient,
    *,
    model: str,
    system: str | None,
    messages: Sequence[dict[str, Any]],
    max_tokens: int | None = None,
    temperature: float | None = None,
    tools: Sequence[ToolDefinition] | None = None,
) -> AsyncGenerator[StreamPart, None]:
    """Yield typed parts for one model step, executing requested tools."""

    payload: dict[str, Any] = {"model": model, "stream": True}
    conversation: list[dict[str, Any]] = []
    if system:
        conversation.append({"role": "system", "content": system})
    conversation.extend(messages)
    payload["messages"] = conversation
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    if temperature is not None:
        payload["temperature"] = temperature

    tool_map = {tool.name: tool for tool in tools or []}
    if tool_map:
        payload["tools"] = [tool.to_openai_tool() for tool in tool_map.values()]
        payload["tool_choice"] = "auto"

    streamed_tool_calls: list[dict[str, Any]] = []
    finish_reason: str | None = None

    try:
        async for event in client.stream_chat_raw(payload):
            data = event.get("data")
            if not data:
                continue
            if (event.get("event") or "message") != "message":
                continue
            if data == "[DONE]":
                break
            try:
                chunk = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("Skipping non-JSON SSE payload: %s", data)
                continue

            if isinstance(chunk, dict) and chunk.get("error"):
                yield StreamPart(type="error", error=_describe_error(chunk["error"]))
                return

            for choice in chunk.get("choices") or []:
                delta = choice.get("delta") or {}
                content = delta.get("content")
                if isinstance(content, str) and content:
                    yield StreamPart(type="text-delta", text_delta=content)
                if tool_deltas := delta.get("tool_calls"):
                    merge_tool_calls(streamed_tool_calls, tool_deltas)
                if choice_finish := choice.get("finish_reason"):
                    finish_reason = choice_finish
    except OpenRouterError as exc:
        logger.warning(
            "Model stream failed (status %s): %s", exc.status_code, exc.detail
        )
        yield StreamPart(type="error", error=_describe_error(exc))
        return

    pending: list[tuple[ToolDefinition, str, BaseModel, dict[str, Any]]] = []
    for call in finalize_tool_calls(streamed_tool_calls):
        call_id = call["id"]
        name = call["function"]["name"]
        tool = tool_map.get(name)
        if tool is None:
            yield StreamPart(
                type="error",
                tool_call_id=call_id,
                tool_name=name,
                error=f"Model called unknown tool '{name}'",
            )
            return
        try:
            raw_args = json.loads(call["function"]["arguments"])
            if not isinstance(raw_args, dict):
                raise ValueError("tool arguments must be a JSON object")
            args = tool.parameters.model_validate(raw_args)
        except (ValueError, ValidationError) as exc:
            yield StreamPart(
                type="error",
                tool_call_id=call_id,
                tool_name=name,
                error=f"Invalid arguments for tool '{name}': {exc}",
            )
            return

        yield StreamPart(
            type="tool-call", tool_call_id=call_id, tool_name=name, args=raw_args
        )
        pending.append((tool, call_id, args, raw_args))

    if pending:
        results = await asyncio.gather(*(_run_tool(*entry) for entry in pending))
        for part in results:
            yield part
            if part.type == "error":
                return

    yield StreamPart(type="finish", finish_reason=finish_reason)


__all__ = [
    "ChatStreamClient",
    "StreamPart",
    "StreamPartType",
    "ToolDefinition",
    "finalize_tool_calls",
    "merge_tool_calls",
    "stream_text",
]
