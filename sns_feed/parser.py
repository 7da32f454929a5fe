from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from .blocks import extract_post_blocks, extract_video_block
from .config_schema import ParserConfig
from .event_log import FeedEventLog
from .platforms import Dialect, get_dialect, resolve_platform
from .post import (
    POST_TYPES,
    AnyPost,
    ConversationContext,
    MediaItem,
    QuotedPost,
    QuoteItem,
    ReplyItem,
    VideoContext,
    new_post_id,
    normalize_username,
)
from .stats import parse_stats
from .subsection import parse_sub_section, strip_sub_sections


def _field_re(*labels: str) -> re.Pattern[str]:
    alt = "|".join(labels)
    return re.compile(rf"^[ \t]*(?:{alt})[ \t]*:[ \t]*(.*?)[ \t]*$", re.IGNORECASE | re.MULTILINE)


_USER_RE = _field_re("User")
_NAME_RE = _field_re("Name")
_TITLE_RE = _field_re("Title", "Subject", "Header", "제목")
_DATE_RE = _field_re("Date")
_PARTICIPANTS_RE = _field_re("Participants")
_STATS_RE = _field_re("Stats")
_MEDIA_RE = _field_re("Photo", "Media")

_LABELED_LINE_RE = re.compile(
    r"^[ \t]*(?:User|Name|Title|Subject|Header|제목|Date|Stats|Participants|Photo|Media)[ \t]*:.*(?:\n|$)",
    re.IGNORECASE | re.MULTILINE,
)
_CONTENT_LABEL_RE = re.compile(r"^[ \t]*Content[ \t]*:[ \t]*", re.IGNORECASE | re.MULTILINE)

_MEDIA_TAG_RE = re.compile(r"\[(Image|Video)\]\s*([^\[\]]*?)(?=\[|$)", re.IGNORECASE)
_BRACKET_MEDIA_LINE_RE = re.compile(r"^\s*\[(?:Image|Video)\]", re.IGNORECASE)

_QUOTE_RT_RE = re.compile(
    r"\[Quote RT of\s+(.+?)\s+(@+\w+)\s*\]([\s\S]*?)\[/Quote RT\]",
    re.IGNORECASE,
)
_QUOTE_RT_BLOCK_RE = re.compile(r"\[Quote RT of[\s\S]*?\[/Quote RT\]", re.IGNORECASE)

_VIDEO_CHANNEL_RE = _field_re("Channel")
_VIDEO_TITLE_RE = _field_re("Title")
_VIDEO_SUBSCRIBERS_RE = _field_re("Subscribers")
_VIDEO_DURATION_RE = _field_re("Duration")
_VIDEO_MOST_VIEWED_RE = _field_re("MostViewed")
_VIDEO_DESCRIPTION_RE = re.compile(r"^[ \t]*Description[ \t]*:[ \t]*([\s\S]*)", re.IGNORECASE | re.MULTILINE)
_MOST_VIEWED_RE = re.compile(r"^(\d{1,2}:\d{2}(?::\d{2})?)\s*[-–]\s*(.*)$")


def _first(pattern: re.Pattern[str], text: str) -> str | None:
    m = pattern.search(text)
    if m is None:
        return None
    return m.group(1).strip()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def split_media_line(line: str) -> list[MediaItem]:
    """
    Turn one Media:/Photo: value into media entries.

    A line carrying several [Image]/[Video] tags becomes one entry per tag;
    anything else is a single entry.
    """
    value = (line or "").strip()
    tags = list(_MEDIA_TAG_RE.finditer(value))
    if len(tags) > 1:
        return [
            MediaItem(kind=m.group(1).capitalize(), description=m.group(2).strip())
            for m in tags
        ]
    return [MediaItem.from_text(value)]


def parse_quoted_post(content: str) -> QuotedPost | None:
    m = _QUOTE_RT_RE.search(content or "")
    if m is None:
        return None

    media: list[MediaItem] = []
    body: list[str] = []
    for line in m.group(3).strip().splitlines():
        labeled = _MEDIA_RE.match(line)
        if labeled is not None:
            media.extend(split_media_line(labeled.group(1)))
        elif _BRACKET_MEDIA_LINE_RE.match(line):
            media.extend(split_media_line(line))
        else:
            body.append(line)

    return QuotedPost(
        display_name=m.group(1).strip(),
        username=normalize_username(m.group(2)),
        content="\n".join(body).strip(),
        media=media,
    )


@dataclass
class PostFields:
    """Every field one [POST] block can carry, before the dialect picks its subset."""

    username: str = ""
    display_name: str = ""
    title: str = ""
    date: str = ""
    content: str = ""
    stats_line: str = ""
    media: list[MediaItem] = field(default_factory=list)
    participants: list[str] | None = None
    replies: list[ReplyItem] = field(default_factory=list)
    quotes: list[ReplyItem] = field(default_factory=list)
    quoted_post: QuotedPost | None = None


class PostContentParser:
    """Parses the inner text of one [POST] block into a platform post variant."""

    def __init__(
        self,
        config: ParserConfig | None = None,
        *,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], str] | None = None,
    ) -> None:
        self._cfg = config or ParserConfig()
        self._placeholders = {n.casefold() for n in self._cfg.placeholder_names}
        self._new_id = id_factory or new_post_id
        self._now = clock or _utc_now_iso

    def _clean_display_name(self, value: str | None) -> str:
        name = (value or "").strip()
        if name.casefold() in self._placeholders:
            return ""
        return name

    def extract_fields(self, content: str) -> PostFields:
        text = content or ""

        quoted_post = parse_quoted_post(text)
        replies = parse_sub_section(text, "REPLIES")
        quotes = parse_sub_section(text, "QUOTES")

        head = _QUOTE_RT_BLOCK_RE.sub("", text)
        head = strip_sub_sections(strip_sub_sections(head, "REPLIES"), "QUOTES")

        media: list[MediaItem] = []
        for m in _MEDIA_RE.finditer(head):
            media.extend(split_media_line(m.group(1)))

        participants: list[str] | None = None
        raw_participants = _first(_PARTICIPANTS_RE, head)
        if raw_participants is not None:
            participants = [p.strip() for p in raw_participants.split(",") if p.strip()]

        body = _LABELED_LINE_RE.sub("", head)
        body = _CONTENT_LABEL_RE.sub("", body).strip()

        return PostFields(
            username=normalize_username(_first(_USER_RE, head)),
            display_name=self._clean_display_name(_first(_NAME_RE, head)),
            title=_first(_TITLE_RE, head) or "",
            date=_first(_DATE_RE, head) or "",
            content=body,
            stats_line=_first(_STATS_RE, head) or "",
            media=media,
            participants=participants,
            replies=replies,
            quotes=quotes,
            quoted_post=quoted_post,
        )

    def build_post(
        self,
        fields: PostFields,
        dialect: Dialect,
        *,
        video_context: VideoContext | None = None,
    ) -> AnyPost:
        conversation: ConversationContext | None = None
        if fields.participants is not None:
            roster = ([fields.username] if fields.username else []) + fields.participants
            conversation = ConversationContext(
                type="direct" if len(fields.participants) == 1 else "group",
                participants=roster,
            )

        values: dict[str, Any] = {
            "id": self._new_id(),
            "timestamp": self._now(),
            "platform": dialect.platform,
            "username": fields.username,
            "display_name": fields.display_name,
            "title": fields.title,
            "date": fields.date,
            "content": fields.content,
            "media": fields.media,
            "stats": parse_stats(
                fields.stats_line,
                share_unit=dialect.share_unit,
                secondary_unit=dialect.secondary_unit,
            ),
            "replies": fields.replies,
            "quotes": [
                QuoteItem(username=q.username, display_name=q.display_name, content=q.content)
                for q in fields.quotes
            ],
            "quoted_post": fields.quoted_post,
            "conversation_context": conversation,
            "video_context": video_context,
        }
        # Each variant ignores the fields its platform does not use.
        return POST_TYPES[dialect.platform].model_validate(values)

    def parse(
        self,
        content: str,
        *,
        platform: str | None = None,
        video_context: VideoContext | None = None,
    ) -> AnyPost:
        dialect = get_dialect(resolve_platform(platform, self._cfg.default_platform))
        return self.build_post(self.extract_fields(content), dialect, video_context=video_context)


class DocumentParser:
    """
    Turns one generator response into a page of posts.

    Never raises on malformed markup: a block that cannot be built into a post
    is skipped (and logged when a logger is attached), and text without any
    [POST] block yields an empty page. Video context only survives on the
    video-comment platform; a [VIDEO] block parsed under any other platform
    is dropped and logged.
    """

    def __init__(
        self,
        config: ParserConfig | None = None,
        *,
        logger: FeedEventLog | None = None,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], str] | None = None,
    ) -> None:
        self._cfg = config or ParserConfig()
        self._logger = logger
        self._posts = PostContentParser(self._cfg, id_factory=id_factory, clock=clock)

    @property
    def config(self) -> ParserConfig:
        return self._cfg

    def parse_video_context(self, text: str) -> VideoContext | None:
        block = extract_video_block(text)
        if block is None:
            return None

        channel = _first(_VIDEO_CHANNEL_RE, block)
        title = _first(_VIDEO_TITLE_RE, block)
        if not channel and not title:
            return None

        most_viewed_time = "0:00"
        most_viewed_text = ""
        most_viewed = _first(_VIDEO_MOST_VIEWED_RE, block)
        if most_viewed:
            m = _MOST_VIEWED_RE.match(most_viewed)
            if m is not None:
                most_viewed_time = m.group(1)
                most_viewed_text = m.group(2).strip()
            else:
                most_viewed_text = most_viewed

        defaults = self._cfg.video_defaults
        return VideoContext(
            channel_name=channel or defaults.channel_name,
            video_title=title or defaults.video_title,
            subscribers=_first(_VIDEO_SUBSCRIBERS_RE, block) or defaults.subscribers,
            duration=_first(_VIDEO_DURATION_RE, block) or defaults.duration,
            most_viewed_time=most_viewed_time,
            most_viewed_text=most_viewed_text,
            description=_first(_VIDEO_DESCRIPTION_RE, block) or "",
        )

    def parse(self, text: str | None, *, platform: str | None = None) -> list[AnyPost]:
        """
        Parse every [POST] block of `text`.

        Without an explicit platform, a page that carries a [VIDEO] block is
        read as video comments, anything else with the configured default.
        """
        source = text or ""
        video_context = self.parse_video_context(source)

        if platform is None:
            platform = "youtube" if video_context is not None else self._cfg.default_platform
        resolved = resolve_platform(platform, self._cfg.default_platform)

        posts: list[AnyPost] = []
        for index, block in enumerate(extract_post_blocks(source)):
            try:
                post = self._posts.parse(block, platform=resolved, video_context=video_context)
            except ValueError as e:
                if self._logger is not None:
                    self._logger.block_skipped(block_index=index, platform=resolved, exc=e)
                continue
            posts.append(post)

        if video_context is not None and posts and not get_dialect(resolved).uses_video:
            if self._logger is not None:
                self._logger.video_context_dropped(platform=resolved, posts=len(posts))

        return posts
