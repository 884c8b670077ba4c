import json

import httpx
import pytest
from pydantic import AnyHttpUrl, SecretStr

from search_assistant.config import Settings
from search_assistant.openrouter import OpenRouterClient, OpenRouterError, ServerSentEvent


def make_client(**overrides) -> OpenRouterClient:
    settings = Settings(
        openrouter_api_key=SecretStr("test"),
        openrouter_base_url=AnyHttpUrl("https://example.com/api/v1"),
        **overrides,
    )
    return OpenRouterClient(settings)


def _patch_transport(monkeypatch: pytest.MonkeyPatch, client: OpenRouterClient, handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def _get_http_client() -> httpx.AsyncClient:
        return http_client

    monkeypatch.setattr(client, "_get_http_client", _get_http_client)
    return http_client


def test_event_from_lines_supports_multiple_data_lines() -> None:
    event = ServerSentEvent.from_lines(
        [
            "event: completion",
            "id: test-id",
            "data: part one",
            "data: part two",
        ]
    )

    assert event.event == "completion"
    assert event.event_id == "test-id"
    assert event.data == "part one\npart two"
    assert event.asdict() == {
        "event": "completion",
        "data": "part one\npart two",
        "id": "test-id",
    }


def test_headers_include_attribution() -> None:
    client = make_client(
        openrouter_app_url="https://app.example.com",
        openrouter_app_name="Search Assistant",
    )

    headers = client._headers  # type: ignore[attr-defined]

    assert headers["Authorization"] == "Bearer test"
    assert headers["HTTP-Referer"].rstrip("/") == "https://app.example.com"
    assert headers["X-Title"] == "Search Assistant"


@pytest.mark.asyncio
async def test_stream_chat_raw_yields_events_and_skips_comments(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    client = make_client()
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        body = (
            ": OPENROUTER PROCESSING\n\n"
            'data: {"choices": [{"delta": {"content": "Hi"}}]}\n\n'
            "data: [DONE]\n\n"
        )
        return httpx.Response(200, text=body)

    http_client = _patch_transport(monkeypatch, client, handler)
    try:
        events = [
            event
            async for event in client.stream_chat_raw(
                {"model": "test/model", "messages": []}
            )
        ]
    finally:
        await http_client.aclose()

    assert seen[0]["stream"] is True
    assert [event["data"] for event in events] == [
        '{"choices": [{"delta": {"content": "Hi"}}]}',
        "[DONE]",
    ]


@pytest.mark.asyncio
async def test_stream_chat_raw_raises_with_error_detail(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    client = make_client()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    http_client = _patch_transport(monkeypatch, client, handler)
    try:
        with pytest.raises(OpenRouterError) as excinfo:
            async for _ in client.stream_chat_raw({"model": "m", "messages": []}):
                pass
    finally:
        await http_client.aclose()

    assert excinfo.value.status_code == 401
    assert excinfo.value.detail == {"message": "bad key"}


@pytest.mark.asyncio
async def test_stream_chat_raw_wraps_transport_errors(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    client = make_client()

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    http_client = _patch_transport(monkeypatch, client, handler)
    try:
        with pytest.raises(OpenRouterError) as excinfo:
            async for _ in client.stream_chat_raw({"model": "m", "messages": []}):
                pass
    finally:
        await http_client.aclose()

    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_http_client_is_reused_until_closed() -> None:
    client = make_client()

    first = await client._get_http_client()  # type: ignore[attr-defined]
    assert await client._get_http_client() is first  # type: ignore[attr-defined]

    await client.aclose()
    assert first.is_closed
