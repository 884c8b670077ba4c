"""Detect image links embedded in user messages."""

from __future__ import annotations

import re

_IMAGE_URL_RE = re.compile(
    r"https?://[^\s\"'<>()]+?\.(?:png|jpe?g|gif|webp|bmp|svg)(?:\?[^\s\"'<>()]*)?(?=[\s\"'<>()!?]|[.,](?:\s|$)|$)",
    re.IGNORECASE,
)


def extract_all_image_urls(text: str) -> list[str]:
    """Return unique image URLs in order of first appearance."""

    if not text:
        return []
    return list(dict.fromkeys(_IMAGE_URL_RE.findall(text)))


def replace_image_url(text: str, urls: list[str]) -> str:
    """Strip the given URLs from the text and collapse leftover whitespace."""

    for url in urls:
        text = text.replace(url, "")
    return re.sub(r"[ \t]{2,}", " ", text).strip()


__all__ = ["extract_all_image_urls", "replace_image_url"]
