from __future__ import annotations

from typing import Sequence

from .platforms import Dialect, get_dialect
from .post import (
    AnyPost,
    QuoteItem,
    QuotedPost,
    ReplyItem,
    Stats,
    VideoContext,
    normalize_username,
)
from .stats import stat_number
from .subsection import SUB_MARKER


def _one_line(text: str | None) -> str:
    return " ".join((text or "").split())


def _identity(username: str, display_name: str) -> str:
    user = normalize_username(username)
    name = (display_name or "").strip()
    if user.startswith("@") and name and name != user:
        return f"{name} {user}"
    return user or name


def _content_lines(content: str) -> list[str]:
    lines = [line.strip() for line in (content or "").splitlines() if line.strip()]
    # A continuation line with a colon would read back as an inline item.
    if any(":" in line for line in lines[1:]):
        return [_one_line(content)]
    return lines or [""]


def _needs_block_layout(items: Sequence[ReplyItem | QuoteItem]) -> bool:
    """
    True when the inline "Name @handle: text" form would lose something.

    That is a bare nickname with its own display name, or multi-line content.
    Sub-replies, timestamps and empty content only exist inline, so their
    presence wins.
    """
    if any(getattr(i, "is_sub", False) or getattr(i, "time", None) for i in items):
        return False
    if any(not i.content.strip() for i in items):
        return False
    for i in items:
        user = normalize_username(i.username)
        name = (i.display_name or "").strip()
        if name and name != user and not user.startswith("@"):
            return True
        if len(_content_lines(i.content)) > 1:
            return True
    return False


def _block_layout_lines(items: Sequence[ReplyItem | QuoteItem]) -> list[str]:
    lines: list[str] = []
    for i in items:
        user = normalize_username(i.username)
        name = (i.display_name or "").strip()
        if user:
            lines.append(f"User: {user}")
        if name and name != user:
            lines.append(f"Name: {name}")
        first, *rest = _content_lines(i.content)
        lines.append(f"Content: {first}")
        lines.extend(rest)
    return lines


def _stats_line(stats: Stats, dialect: Dialect) -> str:
    parts = [stat_number(stats.likes)]
    if stats.shares != "0":
        parts.append(stat_number(stats.shares) + dialect.share_unit)
    if stats.secondary_shares != "0":
        parts.append(stat_number(stats.secondary_shares) + dialect.secondary_unit)
    return " ".join(parts)


def serialize_video_context(video: VideoContext) -> str:
    lines = ["[VIDEO]", f"Channel: {video.channel_name}"]
    if video.subscribers:
        lines.append(f"Subscribers: {video.subscribers}")
    lines.append(f"Title: {video.video_title}")
    if video.duration:
        lines.append(f"Duration: {video.duration}")
    if video.most_viewed_text or video.most_viewed_time != "0:00":
        lines.append(f"MostViewed: {video.most_viewed_time} - {video.most_viewed_text}".rstrip())
    if video.description:
        # Description runs to the end of the block, so it goes last.
        lines.append(f"Description: {video.description}")
    lines.append("[/VIDEO]")
    return "\n".join(lines)


def _quoted_post_lines(quoted: QuotedPost) -> list[str]:
    user = normalize_username(quoted.username)
    if not user.startswith("@"):
        user = "@" + user if user else ""
    if not user:
        return []

    name = _one_line(quoted.display_name) or user
    lines = [f"[Quote RT of {name} {user}]"]
    if quoted.content:
        lines.append(quoted.content)
    lines.extend(f"Media: {m.markup}" for m in quoted.media)
    lines.append("[/Quote RT]")
    return lines


def serialize_post(post: AnyPost, dialect: Dialect) -> str:
    username = getattr(post, "username", "")
    display_name = getattr(post, "display_name", "")

    lines = ["[POST]"]
    if dialect.uses_handle:
        lines.append(f"User: {normalize_username(username)}")
    if dialect.uses_display_name and display_name:
        lines.append(f"Name: {display_name}")

    title = getattr(post, "title", "")
    if dialect.uses_title and title:
        lines.append(f"Title: {title}")

    date = getattr(post, "date", "")
    if date:
        lines.append(f"Date: {date}")

    conversation = getattr(post, "conversation_context", None)
    if dialect.uses_participants and conversation is not None:
        roster = list(conversation.participants)
        if roster and username and roster[0] == username:
            roster = roster[1:]
        lines.append(f"Participants: {', '.join(roster)}")

    lines.append(f"Content: {post.content}")
    # One line per item.
    lines.extend(f"Media: {m.markup}" for m in post.media)

    quoted = getattr(post, "quoted_post", None)
    if dialect.uses_quotes and quoted is not None:
        lines.extend(_quoted_post_lines(quoted))

    lines.append(f"Stats: {_stats_line(post.stats, dialect)}")

    if post.replies:
        lines.append("[REPLIES]")
        if _needs_block_layout(post.replies):
            lines.extend(_block_layout_lines(post.replies))
        else:
            for r in post.replies:
                prefix = f"{SUB_MARKER} " if r.is_sub else ""
                suffix = f" [{r.time}]" if r.time else ""
                lines.append(
                    f"{prefix}{_identity(r.username, r.display_name)}: {_one_line(r.content)}{suffix}"
                )
        lines.append("[/REPLIES]")

    quotes = getattr(post, "quotes", None) or []
    if dialect.uses_quotes and quotes:
        lines.append("[QUOTES]")
        if _needs_block_layout(quotes):
            lines.extend(_block_layout_lines(quotes))
        else:
            lines.extend(f"{_identity(q.username, q.display_name)}: {_one_line(q.content)}" for q in quotes)
        lines.append("[/QUOTES]")

    lines.append("[/POST]")
    return "\n".join(lines)


def serialize_page(posts: Sequence[AnyPost], platform: str | None = None) -> str:
    """
    Rebuild feed markup for a page of posts.

    `platform` picks the dialect; it defaults to the first post's platform.
    The output parses back to the same posts (ids and timestamps aside), but
    is not byte-identical to whatever text the page was first parsed from.
    """
    if not posts:
        return ""

    dialect = get_dialect(platform or posts[0].platform)
    blocks: list[str] = []

    video = getattr(posts[0], "video_context", None)
    if dialect.uses_video and video is not None:
        blocks.append(serialize_video_context(video))

    blocks.extend(serialize_post(p, dialect) for p in posts)
    return "\n\n".join(blocks)
