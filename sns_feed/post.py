from __future__ import annotations

import re
import uuid
from typing import Annotated, Any, Literal, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

_RECORD_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
    frozen=True,
)

_MEDIA_TAG_RE = re.compile(r"^\s*\[(image|video)\]\s*(.*)$", re.IGNORECASE | re.DOTALL)

# Stats keys written by earlier releases, mapped onto the current field aliases.
_LEGACY_STATS_KEYS = {
    "retweets": "shares",
    "scraps": "shares",
    "quotes": "secondaryShares",
    "comments": "secondaryShares",
    "replies": "replyCountHint",
}


def new_post_id() -> str:
    return uuid.uuid4().hex


def normalize_username(value: str | None) -> str:
    """Collapse any run of leading '@' to exactly one; bare nicknames pass through."""
    name = (value or "").strip()
    if name.startswith("@"):
        return "@" + name.lstrip("@")
    return name


def _stat_text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return "0"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or "0"


class MediaItem(BaseModel):
    model_config = _RECORD_CONFIG

    kind: Literal["Image", "Video"] = "Image"
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if isinstance(data, str):
            m = _MEDIA_TAG_RE.match(data.strip())
            if m is None:
                return {"kind": "Image", "description": data.strip()}
            return {"kind": m.group(1).capitalize(), "description": m.group(2).strip()}

        if isinstance(data, dict):
            out = dict(data)
            kind = out.pop("type", None) if "kind" not in out else out.get("kind")
            if isinstance(kind, str):
                kind = kind.strip().capitalize()
                out["kind"] = kind if kind in ("Image", "Video") else "Image"
            return out

        return data

    @classmethod
    def from_text(cls, text: str) -> "MediaItem":
        return cls.model_validate(text)

    @property
    def markup(self) -> str:
        return f"[{self.kind}] {self.description}".rstrip()


class Stats(BaseModel):
    model_config = _RECORD_CONFIG

    likes: str = "0"
    shares: str = "0"
    secondary_shares: str = "0"
    reply_count_hint: int = 0

    @model_validator(mode="before")
    @classmethod
    def _upgrade(cls, data: Any) -> Any:
        if isinstance(data, str):
            from .stats import parse_stats

            return parse_stats(data).model_dump()

        if not isinstance(data, dict):
            return data

        out: dict[str, Any] = {}
        for key, value in data.items():
            target = _LEGACY_STATS_KEYS.get(key, key)
            if target in out and key in _LEGACY_STATS_KEYS:
                continue
            out[target] = value

        for key in ("likes", "shares", "secondaryShares", "secondary_shares"):
            if key in out:
                out[key] = _stat_text(out[key])

        for key in ("replyCountHint", "reply_count_hint"):
            if key in out and not isinstance(out[key], int):
                try:
                    out[key] = int(out[key])
                except (TypeError, ValueError):
                    out.pop(key)
        return out


class ReplyItem(BaseModel):
    model_config = _RECORD_CONFIG

    username: str = ""
    display_name: str = ""
    content: str = ""
    is_sub: bool = False
    time: str | None = None

    @property
    def depth(self) -> int:
        return 1 if self.is_sub else 0


class QuoteItem(BaseModel):
    model_config = _RECORD_CONFIG

    username: str = ""
    display_name: str = ""
    content: str = ""


class QuotedPost(BaseModel):
    model_config = _RECORD_CONFIG

    display_name: str = ""
    username: str = ""
    content: str = ""
    media: list[MediaItem] = Field(default_factory=list)


class ConversationContext(BaseModel):
    model_config = _RECORD_CONFIG

    type: Literal["direct", "group"] = "group"
    participants: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _upgrade(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("type") == "1on1":
            return {**data, "type": "direct"}
        return data


class VideoContext(BaseModel):
    model_config = _RECORD_CONFIG

    channel_name: str = ""
    video_title: str = ""
    subscribers: str = ""
    duration: str = ""
    most_viewed_time: str = "0:00"
    most_viewed_text: str = ""
    description: str = ""


class _PostBase(BaseModel):
    model_config = _RECORD_CONFIG

    id: str = Field(default_factory=new_post_id)
    timestamp: str = ""
    content: str = ""
    media: list[MediaItem] = Field(default_factory=list)
    stats: Stats = Field(default_factory=Stats)
    replies: list[ReplyItem] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        out = dict(data)
        if "quoteRt" in out and "quotedPost" not in out:
            out["quotedPost"] = out.pop("quoteRt")

        photo = out.pop("photo", None)
        if not out.get("media") and isinstance(photo, str) and photo.strip():
            out["media"] = [photo]

        for key in ("username", "displayName", "title", "date", "content"):
            if out.get(key) is None and key in out:
                out[key] = ""
        return out


class TwitterPost(_PostBase):
    platform: Literal["twitter"] = "twitter"
    username: str = ""
    display_name: str = ""
    date: str = ""
    quotes: list[QuoteItem] = Field(default_factory=list)
    quoted_post: QuotedPost | None = None


class InstagramPost(_PostBase):
    platform: Literal["instagram"] = "instagram"
    username: str = ""
    display_name: str = ""
    date: str = ""


class ForumPost(_PostBase):
    platform: Literal["everytime"] = "everytime"
    title: str = ""
    date: str = ""


class VideoCommentPost(_PostBase):
    platform: Literal["youtube"] = "youtube"
    username: str = ""
    date: str = ""
    video_context: VideoContext | None = None


class MessageThreadPost(_PostBase):
    platform: Literal["messenger"] = "messenger"
    username: str = ""
    display_name: str = ""
    date: str = ""
    conversation_context: ConversationContext | None = None


AnyPost = Union[TwitterPost, InstagramPost, ForumPost, VideoCommentPost, MessageThreadPost]

Post = Annotated[AnyPost, Field(discriminator="platform")]

POST_TYPES: dict[str, type[_PostBase]] = {
    "twitter": TwitterPost,
    "instagram": InstagramPost,
    "everytime": ForumPost,
    "youtube": VideoCommentPost,
    "messenger": MessageThreadPost,
}

POST_ADAPTER: TypeAdapter[Any] = TypeAdapter(Post)


def dump_post(post: AnyPost) -> dict[str, Any]:
    return post.model_dump(mode="json", by_alias=True)


def dump_page(page: Sequence[AnyPost]) -> list[dict[str, Any]]:
    return [dump_post(p) for p in page]
