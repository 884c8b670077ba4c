"""Webpage fetch tool backed by a reader service (Jina Reader compatible)."""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import urlparse

import httpx

from ..config import Settings
from ..llm.utils import StreamCallback, stream_response
from ..schemas.chat import SearchResult, TextSource

logger = logging.getLogger(__name__)


class WebPageError(Exception):
    """Raised when a webpage cannot be fetched or yields no content."""


class WebPageReader:
    """Fetch readable page content via `GET {reader}/{url}`."""

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._http_client = http_client

    @property
    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.web_reader_api_key is not None:
            headers["Authorization"] = (
                f"Bearer {self._settings.web_reader_api_key.get_secret_value()}"
            )
        return headers

    async def read(self, url: str) -> TextSource:
        reader_url = f"{str(self._settings.web_reader_base_url).rstrip('/')}/{url}"
        try:
            if self._http_client is not None:
                response = await self._http_client.get(reader_url, headers=self._headers)
            else:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(30.0, connect=5.0)
                ) as client:
                    response = await client.get(reader_url, headers=self._headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise WebPageError(
                f"Reader returned HTTP {exc.response.status_code} for {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise WebPageError(f"Failed to fetch {url}: {exc}") from exc
        except ValueError as exc:
            raise WebPageError(f"Reader returned invalid JSON for {url}") from exc

        data: Mapping[str, Any] = {}
        if isinstance(payload, Mapping):
            candidate = payload.get("data")
            data = candidate if isinstance(candidate, Mapping) else payload

        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            raise WebPageError(f"No content extracted from {url}")

        max_chars = self._settings.web_page_max_chars
        if len(content) > max_chars:
            logger.info(
                "Truncating content for %s from %d to %d chars", url, len(content), max_chars
            )
            content = content[: max_chars - 3] + "..."

        title = data.get("title")
        resolved_url = data.get("url")
        return TextSource(
            title=title if isinstance(title, str) else "",
            url=resolved_url if isinstance(resolved_url, str) and resolved_url else url,
            content=content,
        )


def _validate_url(url: str) -> str:
    candidate = url.strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise WebPageError(f"Unsupported URL: {url!r}")
    return candidate


async def access_web_page(
    url: str,
    on_stream: StreamCallback | None,
    *,
    reader: WebPageReader,
) -> SearchResult:
    """Fetch a webpage, publish it as a source, and return it for grounding."""

    target = _validate_url(url)
    await stream_response({"status": f"Reading {target} ..."}, on_stream)
    page = await reader.read(target)
    texts = [page]
    await stream_response({"sources": texts}, on_stream)
    return SearchResult(texts=texts)


__all__ = ["WebPageError", "WebPageReader", "access_web_page"]
