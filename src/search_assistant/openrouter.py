"""Streaming chat-completions client for OpenRouter."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Iterable, Optional

import httpx
from fastapi import status

from .config import Settings

logger = logging.getLogger(__name__)


class OpenRouterError(Exception):
    """Raised when OpenRouter rejects a request or cannot be reached."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


@dataclass
class ServerSentEvent:
    data: str
    event: str = "message"
    event_id: Optional[str] = None

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "ServerSentEvent":
        """Build one event from the `field: value` lines of an SSE block."""

        fields: dict[str, Optional[str]] = {"event": None, "id": None}
        data: list[str] = []
        for line in lines:
            name, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if name == "data":
                data.append(value)
            elif name in fields:
                fields[name] = value or None
        return cls(
            data="\n".join(data),
            event=fields["event"] or "message",
            event_id=fields["id"],
        )

    def asdict(self) -> dict[str, Optional[str]]:
        payload: dict[str, Optional[str]] = {"event": self.event, "data": self.data}
        if self.event_id is not None:
            payload["id"] = self.event_id
        return payload


async def iter_sse_events(
    response: httpx.Response,
) -> AsyncGenerator[ServerSentEvent, None]:
    """Split a streaming response into events, dropping `:` keep-alive comments."""

    block: list[str] = []
    async for line in response.aiter_lines():
        if line.startswith(":"):
            continue
        if line:
            block.append(line)
            continue
        if block:
            yield ServerSentEvent.from_lines(block)
            block = []
    if block:
        yield ServerSentEvent.from_lines(block)


def _error_detail(raw: bytes) -> Any:
    text = raw.decode("utf-8", errors="ignore").strip()
    if not text:
        return "OpenRouter returned an empty error response."
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(payload, dict) and payload.get("error"):
        return payload["error"]
    return payload


class OpenRouterClient:
    """Send chat-completion payloads and relay the SSE stream as plain dicts."""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._http_client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    @property
    def default_model(self) -> str:
        return self._settings.default_model

    @property
    def completions_url(self) -> str:
        return f"{str(self._settings.openrouter_base_url).rstrip('/')}/chat/completions"

    @property
    def _headers(self) -> dict[str, str]:
        api_key = self._settings.openrouter_api_key.get_secret_value()
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        # OpenRouter attributes traffic using these optional headers.
        if app_url := self._settings.openrouter_app_url:
            headers["HTTP-Referer"] = headers["Referer"] = str(app_url)
        if app_name := self._settings.openrouter_app_name:
            headers["X-Title"] = app_name
        return headers

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            async with self._lock:
                if self._http_client is None:
                    self._http_client = httpx.AsyncClient(
                        timeout=httpx.Timeout(self._settings.request_timeout, connect=10.0),
                        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                        http2=True,
                    )
        return self._http_client

    async def stream_chat_raw(
        self, payload: dict[str, Any]
    ) -> AsyncGenerator[dict[str, Optional[str]], None]:
        """POST `payload` with `stream=True` and yield each SSE event as a dict."""

        body = {**payload, "stream": True}
        client = await self._get_http_client()
        try:
            async with client.stream(
                "POST", self.completions_url, headers=self._headers, json=body
            ) as response:
                if response.status_code >= 400:
                    raise OpenRouterError(
                        response.status_code, _error_detail(await response.aread())
                    )
                logger.debug("Streaming %s from OpenRouter", body.get("model"))
                async for event in iter_sse_events(response):
                    yield event.asdict()
        except httpx.HTTPError as exc:
            raise OpenRouterError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def aclose(self) -> None:
        async with self._lock:
            client, self._http_client = self._http_client, None
        if client is not None:
            await client.aclose()


__all__ = ["OpenRouterClient", "OpenRouterError", "ServerSentEvent", "iter_sse_events"]
