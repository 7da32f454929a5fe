from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .platforms import DEFAULT_PLATFORM, Platform


def _normalize_term_list(values: list[str], *, allow_empty: bool) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()

    for item in values:
        term = (item or "").strip()
        if not term:
            continue
        key = term.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(term)

    if not allow_empty and not out:
        raise ValueError("must contain at least one non-empty term")
    return out


class VideoDefaultsConfig(BaseModel):
    """Placeholders used when a [VIDEO] block omits a field."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    channel_name: str = "Channel"
    video_title: str = "Video Title"
    subscribers: str = "1.2M subscribers"
    duration: str = "10:00"


class ParserConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    default_platform: Platform = DEFAULT_PLATFORM
    placeholder_names: list[str] = Field(default_factory=lambda: ["Name", "User", "이름"])
    video_defaults: VideoDefaultsConfig = Field(default_factory=VideoDefaultsConfig)

    @field_validator("placeholder_names")
    @classmethod
    def _normalize_placeholders(cls, v: list[str]) -> list[str]:
        return _normalize_term_list(v, allow_empty=True)


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str = "sns_feed.sqlite"

    @field_validator("path")
    @classmethod
    def _path_must_be_set(cls, v: str) -> str:
        p = (v or "").strip()
        if not p:
            raise ValueError("must be a non-empty path")
        return p


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str | None = None


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    parser: ParserConfig = Field(default_factory=ParserConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
