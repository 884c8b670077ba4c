"""SQLite-backed repository for chat transcripts and per-user search counters."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

import aiosqlite
from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from .schemas.chat import ChatMessage, ImageSource, TextSource, VideoSource

logger = logging.getLogger(__name__)

ChatRecord = dict[str, Any]

_TITLE_MAX_CHARS = 100


def _normalize_db_timestamp(value: str | None) -> str | None:
    """Convert SQLite timestamp strings to ISO8601 in UTC."""

    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.isoformat()


def _encode_list(values: Sequence[BaseModel] | Sequence[str] | None) -> str | None:
    if not values:
        return None
    return json.dumps(to_jsonable_python(list(values)), ensure_ascii=False)


def _decode_list(value: str | None) -> list[Any] | None:
    if not value:
        return None
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, list) else None


def _derive_title(messages: Sequence[ChatMessage]) -> str:
    for message in messages:
        if message.role == "user" and message.content.strip():
            title = message.content.strip().splitlines()[0]
            return title[:_TITLE_MAX_CHARS]
    return ""


class SearchRepository:
    """Persist chats, their messages, and search usage counters."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA foreign_keys=ON;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                search_count INTEGER NOT NULL DEFAULT 0,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS chats (
                chat_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id TEXT NOT NULL REFERENCES chats(chat_id) ON DELETE CASCADE,
                client_message_id TEXT,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                attachments TEXT,
                sources TEXT,
                images TEXT,
                videos TEXT,
                related TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_chats_user_id ON chats(user_id);
            CREATE INDEX IF NOT EXISTS idx_messages_chat_id ON messages(chat_id);
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def inc_search_count(self, user_id: str) -> int:
        """Increment and return the number of searches run by a user."""

        assert self._connection is not None
        await self._connection.execute(
            """
            INSERT INTO users(user_id, search_count) VALUES (?, 1)
            ON CONFLICT(user_id) DO UPDATE SET
                search_count = search_count + 1,
                updated_at = CURRENT_TIMESTAMP
            """,
            (user_id,),
        )
        await self._connection.commit()
        return await self.get_search_count(user_id)

    async def get_search_count(self, user_id: str) -> int:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT search_count FROM users WHERE user_id = ? LIMIT 1",
            (user_id,),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return int(row["search_count"]) if row is not None else 0

    async def _chat_owner(self, chat_id: str) -> str | None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT user_id FROM chats WHERE chat_id = ? LIMIT 1", (chat_id,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row["user_id"] if row is not None else None

    async def save_messages(
        self,
        user_id: str,
        messages: Sequence[ChatMessage],
        answer: str,
        texts: Sequence[TextSource],
        images: Sequence[ImageSource],
        videos: Sequence[VideoSource],
        related: str,
        *,
        chat_id: str | None = None,
    ) -> str:
        """Store the turn's transcript, replacing the chat's previous messages.

        A chat id already owned by another user is never overwritten; the
        transcript is stored under a fresh id instead, which is returned.
        """

        assert self._connection is not None
        resolved_chat_id = chat_id or (messages[0].id if messages else None) or uuid.uuid4().hex
        owner = await self._chat_owner(resolved_chat_id)
        if owner is not None and owner != user_id:
            new_chat_id = uuid.uuid4().hex
            logger.warning(
                "Chat %s belongs to another user; saving %s's turn as chat %s",
                resolved_chat_id,
                user_id,
                new_chat_id,
            )
            resolved_chat_id = new_chat_id

        assistant = ChatMessage(
            role="assistant",
            content=answer,
            sources=list(texts),
            images=list(images),
            videos=list(videos),
            related=related,
        )
        transcript = [*messages, assistant]

        try:
            await self._connection.execute(
                """
                INSERT INTO chats(chat_id, user_id, title) VALUES (?, ?, ?)
                ON CONFLICT(chat_id) DO UPDATE SET updated_at = CURRENT_TIMESTAMP
                """,
                (resolved_chat_id, user_id, _derive_title(messages)),
            )
            await self._connection.execute(
                "DELETE FROM messages WHERE chat_id = ?", (resolved_chat_id,)
            )
            await self._connection.executemany(
                """
                INSERT INTO messages(
                    chat_id,
                    client_message_id,
                    role,
                    content,
                    attachments,
                    sources,
                    images,
                    videos,
                    related
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        resolved_chat_id,
                        message.id,
                        message.role,
                        message.content,
                        _encode_list(message.attachments),
                        _encode_list(message.sources),
                        _encode_list(message.images),
                        _encode_list(message.videos),
                        message.related or None,
                    )
                    for message in transcript
                ],
            )
            await self._connection.commit()
        except Exception:
            await self._connection.rollback()
            raise
        return resolved_chat_id

    async def get_chat(self, chat_id: str, user_id: str | None = None) -> ChatRecord | None:
        """Return chat metadata and its messages ordered by insertion.

        When `user_id` is given, chats owned by someone else are treated as missing.
        """

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            SELECT chat_id, user_id, title, created_at, updated_at
            FROM chats
            WHERE chat_id = ?
            LIMIT 1
            """,
            (chat_id,),
        )
        chat_row = await cursor.fetchone()
        await cursor.close()
        if chat_row is None:
            return None
        if user_id is not None and chat_row["user_id"] != user_id:
            return None

        cursor = await self._connection.execute(
            """
            SELECT
                client_message_id,
                role,
                content,
                attachments,
                sources,
                images,
                videos,
                related,
                created_at
            FROM messages
            WHERE chat_id = ?
            ORDER BY id ASC
            """,
            (chat_id,),
        )
        rows = await cursor.fetchall()
        await cursor.close()

        messages: list[dict[str, Any]] = []
        for row in rows:
            message: dict[str, Any] = {
                "role": row["role"],
                "content": row["content"],
            }
            if row["client_message_id"]:
                message["id"] = row["client_message_id"]
            for key in ("attachments", "sources", "images", "videos"):
                decoded = _decode_list(row[key])
                if decoded is not None:
                    message[key] = decoded
            if row["related"]:
                message["related"] = row["related"]
            message["created_at"] = _normalize_db_timestamp(row["created_at"])
            messages.append(message)

        return {
            "chat_id": chat_row["chat_id"],
            "user_id": chat_row["user_id"],
            "title": chat_row["title"],
            "created_at": _normalize_db_timestamp(chat_row["created_at"]),
            "updated_at": _normalize_db_timestamp(chat_row["updated_at"]),
            "messages": messages,
        }


__all__ = ["SearchRepository"]
