"""Tests for the search, webpage, answer and related-question tools."""

import json

import httpx
import pytest
from conftest import DONE_EVENT, ScriptedStreamClient, sse_chunk
from pydantic import SecretStr

from search_assistant.openrouter import OpenRouterError
from search_assistant.schemas.chat import (
    ImageSource,
    SearchCategory,
    SearchResult,
    TextSource,
)
from search_assistant.tools.access import WebPageError, WebPageReader, access_web_page
from search_assistant.tools.answer import build_context, direct_answer
from search_assistant.tools.related import get_related_questions
from search_assistant.tools.search import search_relevant_content


class StubEngine:
    def __init__(self, result: SearchResult):
        self.result = result
        self.queries: list[str] = []

    async def search(self, query: str) -> SearchResult:
        self.queries.append(query)
        return self.result


class Recorder:
    """Collects stream callback invocations as decoded payloads."""

    def __init__(self):
        self.calls: list[tuple] = []

    def __call__(self, message, done=False):
        self.calls.append((message, done))

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(message) for message, _ in self.calls if message is not None]


def _texts(count: int) -> list[TextSource]:
    return [
        TextSource(title=f"Result {i}", url=f"https://site{i}.example", content=f"body {i}")
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_search_relevant_content_limits_and_streams_sources():
    image = ImageSource(url="https://a.example", image="https://a.example/x.png")
    engine = StubEngine(SearchResult(texts=_texts(12), images=[image]))
    recorder = Recorder()

    result = await search_relevant_content(
        "what is new",
        "user-1",
        SearchCategory.NEWS,
        recorder,
        engine=engine,
        text_limit=3,
    )

    assert engine.queries == ["what is new"]
    assert [text.title for text in result.texts] == ["Result 0", "Result 1", "Result 2"]
    assert result.images == [image]
    assert recorder.payloads == [
        {"sources": [text.model_dump() for text in result.texts]}
    ]


def _reader(settings, handler) -> tuple[WebPageReader, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebPageReader(settings, http_client=http_client), http_client


@pytest.mark.asyncio
async def test_access_web_page_streams_status_then_source(settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "data": {
                    "title": "Example Article",
                    "url": "https://example.com/post",
                    "content": "Readable text",
                }
            },
        )

    reader, http_client = _reader(settings, handler)
    recorder = Recorder()
    try:
        result = await access_web_page(
            " https://example.com/post ", recorder, reader=reader
        )
    finally:
        await http_client.aclose()

    assert str(requests[0].url) == "https://reader.example.com/https://example.com/post"
    assert requests[0].headers["accept"] == "application/json"
    assert "authorization" not in requests[0].headers
    assert result.texts == [
        TextSource(
            title="Example Article", url="https://example.com/post", content="Readable text"
        )
    ]
    assert recorder.payloads[0] == {"status": "Reading https://example.com/post ..."}
    assert recorder.payloads[1]["sources"][0]["title"] == "Example Article"


@pytest.mark.asyncio
async def test_access_web_page_rejects_unsupported_urls(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("reader should not be called")

    reader, http_client = _reader(settings, handler)
    recorder = Recorder()
    try:
        with pytest.raises(WebPageError, match="Unsupported URL"):
            await access_web_page("file:///etc/passwd", recorder, reader=reader)
    finally:
        await http_client.aclose()

    assert recorder.calls == []


@pytest.mark.asyncio
async def test_web_page_reader_truncates_long_content(settings):
    limited = settings.model_copy(update={"web_page_max_chars": 20})

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"content": "a" * 100}})

    reader, http_client = _reader(limited, handler)
    try:
        page = await reader.read("https://example.com/long")
    finally:
        await http_client.aclose()

    assert page.content == "a" * 17 + "..."
    assert page.url == "https://example.com/long"
    assert page.title == ""


@pytest.mark.asyncio
async def test_web_page_reader_errors_on_empty_content(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"title": "Blank", "content": "  "}})

    reader, http_client = _reader(settings, handler)
    try:
        with pytest.raises(WebPageError, match="No content"):
            await reader.read("https://example.com/blank")
    finally:
        await http_client.aclose()


@pytest.mark.asyncio
async def test_web_page_reader_errors_on_http_failure(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(451)

    reader, http_client = _reader(settings, handler)
    try:
        with pytest.raises(WebPageError, match="HTTP 451"):
            await reader.read("https://example.com/blocked")
    finally:
        await http_client.aclose()


@pytest.mark.asyncio
async def test_web_page_reader_sends_api_key(settings):
    keyed = settings.model_copy(update={"web_reader_api_key": SecretStr("reader-secret")})
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("authorization", ""))
        return httpx.Response(200, json={"content": "plain payload"})

    reader, http_client = _reader(keyed, handler)
    try:
        page = await reader.read("https://example.com/")
    finally:
        await http_client.aclose()

    assert seen == ["Bearer reader-secret"]
    assert page.content == "plain payload"


def test_build_context_numbers_citations():
    context = build_context(_texts(2))

    assert context.startswith("[citation:1] Result 0\nhttps://site0.example\nbody 0")
    assert "\n\n[citation:2] Result 1\n" in context


@pytest.mark.asyncio
async def test_direct_answer_streams_text_with_sources_in_prompt():
    client = ScriptedStreamClient(
        [[sse_chunk(content="Paris "), sse_chunk(content="[citation:1]"), DONE_EVENT]]
    )
    chunks: list[str] = []
    errors: list[str] = []

    await direct_answer(
        client,
        is_pro=False,
        source=SearchCategory.ALL,
        history="User: earlier",
        profile="likes maps",
        model="test/model",
        query="capital of France?",
        texts=_texts(1),
        on_message=chunks.append,
        on_error=errors.append,
    )

    assert "".join(chunks) == "Paris [citation:1]"
    assert errors == []
    payload = client.payloads[0]
    system_prompt = payload["messages"][0]["content"]
    assert "[citation:1] Result 0" in system_prompt
    assert "likes maps" in system_prompt
    assert "User: earlier" in system_prompt
    assert payload["messages"][1] == {"role": "user", "content": "capital of France?"}
    assert payload["temperature"] == 0.1
    assert "tools" not in payload


@pytest.mark.asyncio
async def test_direct_answer_reports_errors():
    client = ScriptedStreamClient([OpenRouterError(500, "upstream exploded")])
    chunks: list[str] = []
    errors: list[str] = []

    await direct_answer(
        client,
        is_pro=True,
        source=SearchCategory.WEB_PAGE,
        history="",
        profile=None,
        model="m",
        query="summarize",
        texts=_texts(1),
        on_message=chunks.append,
        on_error=errors.append,
    )

    assert chunks == []
    assert errors == ["upstream exploded"]


@pytest.mark.asyncio
async def test_related_questions_stream_lines():
    client = ScriptedStreamClient(
        [[sse_chunk(content="Why?\n"), sse_chunk(content="How?\nWhen?"), DONE_EVENT]]
    )
    chunks: list[str] = []

    await get_related_questions(
        client, model="m", query="topic", texts=_texts(7), on_message=chunks.append
    )

    assert "".join(chunks).splitlines() == ["Why?", "How?", "When?"]
    prompt = client.payloads[0]["messages"][0]["content"]
    assert "Result 4" in prompt
    assert "Result 5" not in prompt
    assert client.payloads[0]["messages"][0]["role"] == "user"


@pytest.mark.asyncio
async def test_related_questions_swallow_model_errors():
    client = ScriptedStreamClient([OpenRouterError(503, "busy")])
    chunks: list[str] = []

    await get_related_questions(
        client, model="m", query="topic", texts=[], on_message=chunks.append
    )

    assert chunks == []
