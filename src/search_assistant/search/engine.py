"""Search engine abstraction backed by a SearXNG instance."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, Sequence

import httpx

from ..config import Settings
from ..schemas.chat import (
    ImageSource,
    SearchCategory,
    SearchResult,
    TextSource,
    VideoSource,
)

logger = logging.getLogger(__name__)

_SEARXNG_CATEGORIES: dict[SearchCategory, str] = {
    SearchCategory.ALL: "general",
    SearchCategory.WEB_PAGE: "general",
    SearchCategory.NEWS: "news",
    SearchCategory.ACADEMIC: "science",
    SearchCategory.SOCIAL: "social media",
    SearchCategory.IMAGES: "images",
    SearchCategory.VIDEOS: "videos",
}


class SearchEngineError(Exception):
    """Raised when the search backend cannot be reached or returns garbage."""


class SearchEngine(Protocol):
    async def search(self, query: str) -> SearchResult:
        ...


def _as_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _result_kind(result: Mapping[str, Any]) -> str:
    template = _as_str(result.get("template")) or ""
    if template.startswith("images"):
        return "images"
    if template.startswith("videos"):
        return "videos"
    category = _as_str(result.get("category")) or "general"
    if category in {"images", "videos"}:
        return category
    return "text"


class SearxngSearchEngine:
    """Query SearXNG's JSON API and classify results into text/image/video sources."""

    def __init__(
        self,
        settings: Settings,
        categories: Sequence[SearchCategory],
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._categories = list(categories) or [SearchCategory.ALL]
        self._http_client = http_client

    @property
    def categories(self) -> list[SearchCategory]:
        return list(self._categories)

    @property
    def _search_url(self) -> str:
        return f"{str(self._settings.searxng_base_url).rstrip('/')}/search"

    def _params(self, query: str) -> dict[str, str]:
        names = dict.fromkeys(_SEARXNG_CATEGORIES[c] for c in self._categories)
        return {
            "q": query,
            "format": "json",
            "categories": ",".join(names),
        }

    async def search(self, query: str) -> SearchResult:
        params = self._params(query)
        logger.info("Querying SearXNG (%s) for %r", params["categories"], query)
        try:
            if self._http_client is not None:
                response = await self._http_client.get(self._search_url, params=params)
            else:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self._settings.search_timeout, connect=5.0)
                ) as client:
                    response = await client.get(self._search_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise SearchEngineError(
                f"SearXNG returned HTTP {exc.response.status_code} for {query!r}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SearchEngineError(f"SearXNG request failed: {exc}") from exc
        except ValueError as exc:
            raise SearchEngineError(f"SearXNG returned invalid JSON: {exc}") from exc

        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            return SearchResult()
        parsed = self._parse_results(results)
        logger.info(
            "SearXNG returned %d text, %d image, %d video result(s) for %r",
            len(parsed.texts),
            len(parsed.images),
            len(parsed.videos),
            query,
        )
        return parsed

    @staticmethod
    def _parse_results(results: Sequence[Any]) -> SearchResult:
        texts: list[TextSource] = []
        images: list[ImageSource] = []
        videos: list[VideoSource] = []
        seen_urls: set[str] = set()

        for item in results:
            if not isinstance(item, Mapping):
                continue
            url = _as_str(item.get("url"))
            title = _as_str(item.get("title")) or ""
            kind = _result_kind(item)
            img_src = _as_str(item.get("img_src"))
            thumbnail = _as_str(item.get("thumbnail_src")) or _as_str(
                item.get("thumbnail")
            )

            if kind == "images":
                if img_src:
                    images.append(
                        ImageSource(
                            title=title, url=url or "", image=img_src, thumbnail=thumbnail
                        )
                    )
                continue

            if not url or url in seen_urls:
                continue
            seen_urls.add(url)

            if kind == "videos":
                videos.append(
                    VideoSource(
                        title=title,
                        url=url,
                        thumbnail=thumbnail or img_src,
                        author=_as_str(item.get("author")),
                        duration=_as_str(item.get("length")),
                    )
                )
                continue

            texts.append(
                TextSource(title=title, url=url, content=_as_str(item.get("content")) or "")
            )
            if img_src:
                images.append(
                    ImageSource(title=title, url=url, image=img_src, thumbnail=thumbnail)
                )

        return SearchResult(texts=texts, images=images, videos=videos)


def get_search_engine(
    settings: Settings,
    *,
    categories: Sequence[SearchCategory],
) -> SearchEngine:
    """Return the configured search engine for the requested categories."""

    return SearxngSearchEngine(settings, categories)


__all__ = [
    "SearchEngine",
    "SearchEngineError",
    "SearxngSearchEngine",
    "get_search_engine",
]
