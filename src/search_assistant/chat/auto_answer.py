"""Single-turn orchestration: model with search tools, grounded answer, extras."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Sequence

from pydantic import BaseModel, Field

from ..llm.prompts import AUTO_ANSWER_PROMPT
from ..llm.streaming import ChatStreamClient, ToolDefinition, stream_text
from ..llm.utils import (
    StreamCallback,
    encode_payload,
    get_history,
    get_max_output_tokens,
    stream_response,
)
from ..logging_config import log_error
from ..schemas.chat import (
    ChatMessage,
    ImageSource,
    SearchCategory,
    SearchResult,
    TextSource,
    VideoSource,
)
from ..search.engine import SearchEngine, SearchEngineError, get_search_engine
from ..tools.access import WebPageReader, access_web_page
from ..tools.answer import direct_answer
from ..tools.related import get_related_questions
from ..tools.search import search_relevant_content
from ..utils.images import extract_all_image_urls, replace_image_url

if TYPE_CHECKING:
    from ..config import Settings
    from ..repository import SearchRepository

logger = logging.getLogger(__name__)

SEARCH_TOOL_NAME = "getInformation"
WEB_PAGE_TOOL_NAME = "accessWebPage"
ERROR_TAG = "llm-auto"

SearchEngineFactory = Callable[[Sequence[SearchCategory]], SearchEngine]


class GetInformationArgs(BaseModel):
    question: str = Field(description="the users question")


class AccessWebPageArgs(BaseModel):
    url: str = Field(description="the url to access")


def attachments_to_parts(attachments: Sequence[str]) -> list[dict[str, Any]]:
    return [
        {"type": "image_url", "image_url": {"url": attachment}}
        for attachment in attachments
    ]


def create_user_messages(
    query: str, attachments: Sequence[str] | None = None
) -> list[dict[str, Any]]:
    """Build the multimodal user message, lifting inline image links if needed."""

    text = query
    image_urls = list(attachments or [])
    if not image_urls:
        image_urls = extract_all_image_urls(query)
        if image_urls:
            text = replace_image_url(query, image_urls)
    return [
        {
            "role": "user",
            "content": [{"type": "text", "text": text}, *attachments_to_parts(image_urls)],
        }
    ]


class AutoAnswerOrchestrator:
    """Coordinate the model, search tools, and persistence for one chat turn."""

    def __init__(
        self,
        settings: Settings,
        client: ChatStreamClient,
        repository: SearchRepository,
        *,
        search_engine_factory: SearchEngineFactory | None = None,
        web_page_reader: WebPageReader | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._repo = repository
        self._search_engine_factory = search_engine_factory or (
            lambda categories: get_search_engine(settings, categories=categories)
        )
        self._web_page_reader = web_page_reader or WebPageReader(settings)
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def _build_tools(
        self,
        user_id: str,
        source: SearchCategory,
        on_stream: StreamCallback | None,
    ) -> list[ToolDefinition]:
        async def get_information(args: GetInformationArgs) -> SearchResult:
            return await search_relevant_content(
                args.question,
                user_id,
                source,
                on_stream,
                engine=self._search_engine_factory([source]),
                text_limit=self._settings.search_text_limit,
            )

        async def access_page(args: AccessWebPageArgs) -> SearchResult:
            return await access_web_page(
                args.url, on_stream, reader=self._web_page_reader
            )

        return [
            ToolDefinition(
                name=SEARCH_TOOL_NAME,
                description="get information from internet to answer user questions.",
                parameters=GetInformationArgs,
                execute=get_information,
            ),
            ToolDefinition(
                name=WEB_PAGE_TOOL_NAME,
                description="access a webpage or url and return the content.",
                parameters=AccessWebPageArgs,
                execute=access_page,
            ),
        ]

    def _schedule_search_count(self, user_id: str) -> None:
        task = asyncio.create_task(self._repo.inc_search_count(user_id))
        self._background_tasks.add(task)

        def _on_done(finished: asyncio.Task[Any]) -> None:
            self._background_tasks.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                logger.error(
                    "Failed to increment search count for user %s: %s", user_id, exc
                )

        task.add_done_callback(_on_done)

    async def aclose(self) -> None:
        """Wait for pending search-count updates before the repository closes."""

        tasks = list(self._background_tasks)
        if tasks:
            logger.debug("Waiting for %d pending search-count updates", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _search_images(self, query: str) -> list[ImageSource]:
        engine = self._search_engine_factory([SearchCategory.IMAGES])
        try:
            result = await engine.search(query)
        except SearchEngineError as exc:
            logger.warning("Image search failed for %r: %s", query, exc)
            return []
        return [image for image in result.images if image.image.startswith("https")]

    async def _search_videos(self, query: str) -> list[VideoSource]:
        engine = self._search_engine_factory([SearchCategory.VIDEOS])
        try:
            result = await engine.search(query)
        except SearchEngineError as exc:
            logger.warning("Video search failed for %r: %s", query, exc)
            return []
        return result.videos

    async def auto_answer(
        self,
        messages: Sequence[ChatMessage],
        is_pro: bool,
        user_id: str,
        profile: str | None = None,
        on_stream: StreamCallback | None = None,
        model: str | None = None,
        source: SearchCategory = SearchCategory.ALL,
        chat_id: str | None = None,
    ) -> None:
        """Answer the latest message, streaming progress through `on_stream`."""

        def emit(payload: dict[str, Any]) -> None:
            if on_stream is not None:
                on_stream(encode_payload(payload))

        def close() -> None:
            if on_stream is not None:
                on_stream(None, True)

        try:
            active_model = model or self._settings.default_model
            latest = messages[-1]
            attachments = latest.attachments or []
            query = latest.content

            texts: list[TextSource] = []
            images: list[ImageSource] = []
            videos: list[VideoSource] = []

            history = get_history(is_pro, messages)
            system = AUTO_ANSWER_PROMPT % (profile or "", history)
            user_messages = create_user_messages(query, attachments)
            logger.debug("Auto answering for user %s with model %s", user_id, active_model)

            has_answer = False
            full_answer = ""
            rewrite_query = query
            tool_call_count = 0

            async for part in stream_text(
                self._client,
                model=active_model,
                system=system,
                messages=user_messages,
                max_tokens=get_max_output_tokens(is_pro),
                temperature=0.1,
                tools=self._build_tools(user_id, source, on_stream),
            ):
                if part.type == "text-delta":
                    if part.text_delta:
                        if not has_answer:
                            has_answer = True
                            emit({"status": "Answering ..."})
                        full_answer += part.text_delta
                        emit({"answer": part.text_delta})
                elif part.type == "tool-call":
                    tool_call_count += 1
                    emit({"status": "Searching ..."})
                elif part.type == "tool-result":
                    result: SearchResult = part.result
                    if part.tool_name == SEARCH_TOOL_NAME:
                        texts.extend(result.texts)
                        images.extend(result.images)
                        question = part.args.get("question", rewrite_query)
                        logger.info("Rewrote %r to %r", rewrite_query, question)
                        rewrite_query = question
                    elif part.tool_name == WEB_PAGE_TOOL_NAME:
                        texts.extend(result.texts)
                        source = SearchCategory.WEB_PAGE
                elif part.type == "error":
                    emit({"error": str(part.error)})
                    close()
                    log_error(RuntimeError(str(part.error)), ERROR_TAG)
                    return

            if tool_call_count > 1:
                rewrite_query = query
                await stream_response(
                    {"sources": texts, "status": "Thinking ..."}, on_stream
                )

            related_parts: list[str] = []

            def on_related(message: str) -> None:
                related_parts.append(message)
                emit({"related": message})

            if tool_call_count > 0:
                image_task = asyncio.create_task(self._search_images(rewrite_query))
                video_task = asyncio.create_task(self._search_videos(rewrite_query))
                try:
                    answer_parts: list[str] = []
                    answer_errors: list[str] = []

                    def on_answer(message: str) -> None:
                        answer_parts.append(message)
                        emit({"answer": message})

                    def on_answer_error(message: str) -> None:
                        logger.error("Error: %s", message)
                        answer_errors.append(message)
                        emit({"error": message})
                        close()

                    await stream_response(
                        {"status": "Answering ...", "clear": True}, on_stream
                    )
                    await direct_answer(
                        self._client,
                        is_pro=is_pro,
                        source=source,
                        history=history,
                        profile=profile,
                        model=active_model,
                        query=query,
                        texts=texts,
                        on_message=on_answer,
                        on_error=on_answer_error,
                    )
                    if answer_errors:
                        return
                    full_answer = "".join(answer_parts)

                    await stream_response(
                        {"status": "Generating related questions ..."}, on_stream
                    )
                    await get_related_questions(
                        self._client,
                        model=self._settings.related_model or active_model,
                        query=query,
                        texts=texts,
                        on_message=on_related,
                    )

                    images = [*images, *(await image_task)]
                    await stream_response({"images": images}, on_stream)

                    videos = (await video_task)[: self._settings.video_limit]
                    await stream_response({"videos": videos}, on_stream)
                finally:
                    for task in (image_task, video_task):
                        if not task.done():
                            task.cancel()
            else:
                await stream_response(
                    {"status": "Generating related questions ..."}, on_stream
                )
                await get_related_questions(
                    self._client,
                    model=self._settings.related_model or active_model,
                    query=query,
                    texts=texts,
                    on_message=on_related,
                )

            self._schedule_search_count(user_id)

            await self._repo.save_messages(
                user_id,
                messages,
                full_answer,
                texts,
                images,
                videos,
                "".join(related_parts),
                chat_id=chat_id,
            )
            close()
        except Exception as exc:
            log_error(exc, ERROR_TAG)
            close()


__all__ = [
    "AutoAnswerOrchestrator",
    "attachments_to_parts",
    "create_user_messages",
]
