from __future__ import annotations

import re

_VIDEO_BLOCK_RE = re.compile(r"\[VIDEO\]([\s\S]*?)\[/VIDEO\]", re.IGNORECASE)
_POST_BLOCK_RE = re.compile(r"\[POST\]([\s\S]*?)\[/POST\]", re.IGNORECASE)


def extract_video_block(text: str | None) -> str | None:
    """Return the body of the first [VIDEO] block, or None."""
    m = _VIDEO_BLOCK_RE.search(text or "")
    if m is None:
        return None
    return m.group(1)


def extract_post_blocks(text: str | None) -> list[str]:
    """Return the bodies of every [POST] block in document order."""
    return [m.group(1) for m in _POST_BLOCK_RE.finditer(text or "")]


def extract_feed_markup(text: str | None) -> str:
    """
    Keep only the feed markup of a generator response.

    Story prose around the blocks is dropped. When the response contains no
    block at all it is returned unchanged so nothing the user might want to
    edit is lost.
    """
    value = text or ""
    parts: list[str] = [m.group(0) for m in _VIDEO_BLOCK_RE.finditer(value)]
    parts.extend(m.group(0) for m in _POST_BLOCK_RE.finditer(value))

    result = "\n\n".join(parts).strip()
    if not result:
        return value
    return result
