"""Tests for history rendering, output token limits, and stream payload encoding."""

import json

import pytest

from search_assistant.llm.utils import (
    FREE_HISTORY_MESSAGES,
    PRO_HISTORY_MESSAGES,
    get_history,
    get_max_output_tokens,
    stream_response,
)
from search_assistant.schemas.chat import ChatMessage, TextSource


def _conversation(turns: int) -> list[ChatMessage]:
    messages: list[ChatMessage] = []
    for index in range(turns):
        messages.append(ChatMessage(role="user", content=f"question {index}"))
        messages.append(ChatMessage(role="assistant", content=f"answer {index}"))
    messages.append(ChatMessage(role="user", content="latest"))
    return messages


def test_get_history_excludes_latest_message():
    history = get_history(True, _conversation(1))

    assert history == "User: question 0\nAssistant: answer 0"
    assert "latest" not in history


def test_get_history_is_empty_for_single_message():
    assert get_history(False, [ChatMessage(role="user", content="hi")]) == ""


def test_get_history_limits_free_users():
    history = get_history(False, _conversation(5))

    assert len(history.splitlines()) == FREE_HISTORY_MESSAGES
    assert history.splitlines()[-1] == "Assistant: answer 4"


def test_get_history_truncates_long_messages():
    messages = [
        ChatMessage(role="user", content="x" * 5000),
        ChatMessage(role="user", content="latest"),
    ]

    history = get_history(True, messages)

    assert history.endswith("...")
    assert len(history) < 1100


def test_max_output_tokens_depends_on_plan():
    assert get_max_output_tokens(True) > get_max_output_tokens(False)


@pytest.mark.asyncio
async def test_stream_response_encodes_models():
    received: list[tuple] = []

    def on_stream(message, done=False):
        received.append((message, done))

    await stream_response(
        {"sources": [TextSource(title="T", url="https://a.example", content="c")]},
        on_stream,
    )

    message, done = received[0]
    assert done is False
    assert json.loads(message) == {
        "sources": [{"title": "T", "url": "https://a.example", "content": "c"}]
    }


@pytest.mark.asyncio
async def test_stream_response_without_callback_is_noop():
    await stream_response({"status": "ignored"}, None)


def test_get_history_keeps_more_messages_for_pro_users():
    history = get_history(True, _conversation(8)).splitlines()

    assert len(history) == PRO_HISTORY_MESSAGES
    assert history[0] == "User: question 3"
    assert history[-1] == "Assistant: answer 7"
