from __future__ import annotations

import re

from .post import ReplyItem, normalize_username

SUB_MARKER = "└"

_TRAILING_TIME_RE = re.compile(r"\s\[([^\[\]]*)\]\s*$")
_SUB_MARKER_RE = re.compile(rf"^{SUB_MARKER}\s*")
_TRAILING_HANDLE_RE = re.compile(r"@+\w+$")
_VERBOSE_START_RE = re.compile(r"^\s*(?:User|Name|Content)\s*:", re.IGNORECASE)
_VERBOSE_FIELD_RE = re.compile(r"^\s*(User|Name|Content)\s*:\s*(.*)$", re.IGNORECASE)


def _block_re(tag: str) -> re.Pattern[str]:
    t = re.escape(tag)
    return re.compile(rf"\[{t}\]([\s\S]*?)\[/{t}\]", re.IGNORECASE)


def sub_section_blocks(content: str, tag: str) -> list[str]:
    """Return the bodies of every [TAG]...[/TAG] block, in document order."""
    return [m.group(1) for m in _block_re(tag).finditer(content or "")]


def strip_sub_sections(content: str, tag: str) -> str:
    return _block_re(tag).sub("", content or "")


def _split_identity(meta: str) -> tuple[str, str]:
    handle = _TRAILING_HANDLE_RE.search(meta)
    if handle is not None:
        username = normalize_username(handle.group(0))
        display_name = meta[: handle.start()].strip()
        return username, display_name or username

    if meta.startswith("@"):
        username = normalize_username(meta)
        return username, username

    return meta, meta


def parse_inline_line(line: str) -> ReplyItem | None:
    """
    Parse one "Display Name @handle: content [time]" line.

    Returns None for lines without a ':' separator.
    """
    meta, sep, rest = line.partition(":")
    if not sep:
        return None

    meta = meta.strip()
    content = rest.strip()

    time: str | None = None
    m = _TRAILING_TIME_RE.search(content)
    if m is not None:
        time = m.group(1).strip()
        content = content[: m.start()].strip()

    is_sub = False
    if meta.startswith(SUB_MARKER):
        is_sub = True
        meta = _SUB_MARKER_RE.sub("", meta)
    elif content.startswith(SUB_MARKER):
        is_sub = True
        content = _SUB_MARKER_RE.sub("", content)

    username, display_name = _split_identity(meta)
    return ReplyItem(
        username=username,
        display_name=display_name,
        content=content,
        is_sub=is_sub,
        time=time,
    )


def parse_inline_items(block: str) -> list[ReplyItem]:
    """First pass: one item per line in the inline format."""
    items: list[ReplyItem] = []
    for line in (block or "").splitlines():
        if not line.strip():
            continue
        if _VERBOSE_START_RE.match(line):
            continue
        item = parse_inline_line(line)
        if item is not None:
            items.append(item)
    return items


def parse_verbose_items(block: str) -> list[ReplyItem]:
    """
    Fallback pass for the older block layout:

        User: @handle
        Name: Display Name
        Content: text

    Any field after Content:, or a repeated field, starts the next item.
    Unlabeled lines after Content: continue the content. Items without
    content are dropped.
    """
    items: list[ReplyItem] = []
    current: dict[str, str] = {}

    def _flush() -> None:
        content = current.get("content", "").strip()
        if content:
            username = normalize_username(current.get("user"))
            items.append(
                ReplyItem(
                    username=username,
                    display_name=current.get("name", "").strip() or username,
                    content=content,
                )
            )
        current.clear()

    for line in (block or "").splitlines():
        m = _VERBOSE_FIELD_RE.match(line)
        if m is None:
            if "content" in current and line.strip():
                current["content"] += "\n" + line.strip()
            continue

        label = {"user": "user", "name": "name"}.get(m.group(1).casefold(), "content")
        if label in current or "content" in current:
            _flush()
        current[label] = m.group(2).strip()

    _flush()
    return items


def parse_sub_section(content: str, tag: str) -> list[ReplyItem]:
    """
    Parse every [TAG] block of a post.

    The inline pass runs over all blocks first; the verbose pass is only tried
    when the inline pass found nothing.
    """
    blocks = sub_section_blocks(content, tag)

    items: list[ReplyItem] = []
    for block in blocks:
        items.extend(parse_inline_items(block))
    if items:
        return items

    for block in blocks:
        items.extend(parse_verbose_items(block))
    return items
