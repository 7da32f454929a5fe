from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class StorageError(RuntimeError):
    """Raised when reading or writing feed state fails."""


class GenerationError(RuntimeError):
    """Raised when the external generator fails or returns no text."""


class GenerationInProgressError(RuntimeError):
    """Raised when a message already has a generation in flight."""


class EmptyParseError(RuntimeError):
    """Raised when non-empty markup yields zero posts."""


class PageIndexError(IndexError):
    """Raised when an explicit page index is out of range."""
