from __future__ import annotations

from .config import config_sha256, load_config
from .config_schema import AppConfig
from .errors import (
    ConfigError,
    EmptyParseError,
    GenerationError,
    GenerationInProgressError,
    PageIndexError,
    StorageError,
)
from .feed import FeedService
from .pages import PageSet, normalize_pages
from .parser import DocumentParser
from .serializer import serialize_page

__all__ = [
    "AppConfig",
    "ConfigError",
    "DocumentParser",
    "EmptyParseError",
    "FeedService",
    "GenerationError",
    "GenerationInProgressError",
    "PageIndexError",
    "PageSet",
    "StorageError",
    "config_sha256",
    "load_config",
    "normalize_pages",
    "serialize_page",
]
