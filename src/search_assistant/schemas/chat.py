"""Pydantic models for chat turns, search sources, and stored messages."""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SearchCategory(str, Enum):
    """Search verticals a turn can be scoped to."""

    ALL = "all"
    NEWS = "news"
    ACADEMIC = "academic"
    SOCIAL = "social"
    IMAGES = "images"
    VIDEOS = "videos"
    WEB_PAGE = "web_page"


class TextSource(BaseModel):
    """A textual source handed to the model as grounding context."""

    title: str = ""
    url: str
    content: str = ""


class ImageSource(BaseModel):
    """An image result; `image` is the asset URL, `url` the hosting page."""

    title: str = ""
    url: str = ""
    image: str
    thumbnail: Optional[str] = None


class VideoSource(BaseModel):
    title: str = ""
    url: str
    thumbnail: Optional[str] = None
    author: Optional[str] = None
    duration: Optional[str] = None


class SearchResult(BaseModel):
    """Sources returned by a search engine or a tool invocation."""

    texts: List[TextSource] = Field(default_factory=list)
    images: List[ImageSource] = Field(default_factory=list)
    videos: List[VideoSource] = Field(default_factory=list)


class ChatMessage(BaseModel):
    """Represents a single stored chat message."""

    id: Optional[str] = None
    role: Literal["user", "assistant"]
    content: str
    attachments: Optional[List[str]] = None
    sources: Optional[List[TextSource]] = None
    images: Optional[List[ImageSource]] = None
    videos: Optional[List[VideoSource]] = None
    related: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AutoAnswerRequest(BaseModel):
    """Incoming payload for a single search-augmented chat turn."""

    messages: List[ChatMessage] = Field(min_length=1)
    user_id: str
    is_pro: bool = False
    profile: Optional[str] = None
    model: Optional[str] = None
    source: SearchCategory = SearchCategory.ALL
    chat_id: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


__all__ = [
    "AutoAnswerRequest",
    "ChatMessage",
    "ImageSource",
    "SearchCategory",
    "SearchResult",
    "TextSource",
    "VideoSource",
]
