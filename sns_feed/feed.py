from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Iterator, Literal

from . import pages as page_ops
from .blocks import extract_feed_markup
from .errors import EmptyParseError, GenerationError, GenerationInProgressError
from .event_log import FeedEventLog
from .pages import PageSet
from .parser import DocumentParser
from .platforms import resolve_platform
from .post import AnyPost
from .storage import FeedStateStore

# (source_text, platform) -> raw feed markup
FeedGenerator = Callable[[str, str], "str | None"]

GenerateMode = Literal["replace", "append"]


@dataclass
class _MessageLock:
    lock: Lock = field(default_factory=Lock)
    users: int = 0


class FeedService:
    """
    Applies generate/edit/delete/navigate operations to one message's PageSet.

    State is read from and written back to an opaque store on every call.
    Mutations of one message are serialized, and a second generation for a
    message whose previous generation is still running is rejected.
    """

    def __init__(
        self,
        store: FeedStateStore,
        parser: DocumentParser | None = None,
        *,
        generator: FeedGenerator | None = None,
        logger: FeedEventLog | None = None,
    ) -> None:
        self._store = store
        self._parser = parser or DocumentParser(logger=logger)
        self._generator = generator
        self._logger = logger

        self._guard = Lock()
        # Only messages with a caller holding or waiting for the lock.
        self._locks: dict[str, _MessageLock] = {}
        self._in_flight: set[str] = set()

    @property
    def parser(self) -> DocumentParser:
        return self._parser

    @property
    def default_platform(self) -> str:
        return self._parser.config.default_platform

    @contextmanager
    def _message_lock(self, message_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(message_id)
            if entry is None:
                entry = self._locks[message_id] = _MessageLock()
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[message_id]

    def _page_event(self, event: str, message_id: str, **data: object) -> None:
        if self._logger is not None:
            self._logger.page_event(event, message_id=message_id, **data)

    def _empty_parse(self, message_id: str, text: str, platform: str | None) -> EmptyParseError:
        if self._logger is not None:
            self._logger.empty_parse(message_id=message_id, chars=len(text), platform=platform)
        return EmptyParseError("No posts parsed; expected [POST]...[/POST] blocks")

    def load(self, message_id: str) -> PageSet:
        return PageSet.from_stored(
            self._store.get(message_id),
            default_platform=self.default_platform,
        )

    def _save(self, message_id: str, page_set: PageSet) -> None:
        self._store.put(message_id, page_set.to_stored())

    def is_generating(self, message_id: str) -> bool:
        with self._guard:
            return message_id in self._in_flight

    def generate(
        self,
        message_id: str,
        source_text: str,
        *,
        mode: GenerateMode = "replace",
        platform: str | None = None,
    ) -> PageSet:
        """
        Ask the generator for a page and store it.

        The generator is always told a concrete platform. Without an explicit
        `platform` the response itself decides: a [VIDEO] block makes it a
        video-comment page, anything else uses the configured default.
        """
        if self._generator is None:
            raise GenerationError("No generator configured")

        requested = resolve_platform(platform, self.default_platform)

        with self._guard:
            if message_id in self._in_flight:
                raise GenerationInProgressError(
                    f"Generation already running for message {message_id}"
                )
            self._in_flight.add(message_id)

        try:
            try:
                response = self._generator(source_text, requested)
            except Exception as e:
                if self._logger is not None:
                    self._logger.failure(
                        "generation_failed", exc=e, message_id=message_id, platform=requested
                    )
                raise GenerationError(f"Generator call failed ({requested}): {e}") from e

            if not (response or "").strip():
                raise GenerationError(f"Generator returned no text ({requested})")

            posts = self._parser.parse(response, platform=requested if platform else None)
            if not posts:
                raise self._empty_parse(message_id, response or "", requested)

            return self.store_page(
                message_id,
                posts,
                extract_feed_markup(response),
                mode=mode,
                platform=posts[0].platform,
            )
        finally:
            with self._guard:
                self._in_flight.discard(message_id)

    def store_page(
        self,
        message_id: str,
        posts: list[AnyPost],
        raw_text: str | None,
        *,
        mode: GenerateMode = "replace",
        platform: str | None = None,
    ) -> PageSet:
        """Append or replace the current page with already-parsed posts."""
        with self._message_lock(message_id):
            page_set = self.load(message_id)
            if mode == "append":
                index = page_ops.append_page(page_set, posts, raw_text)
                event = "page_appended"
            else:
                index = page_ops.replace_page(page_set, page_set.page_index, posts, raw_text)
                event = "page_replaced"

            if platform:
                page_set.platform = platform
            self._save(message_id, page_set)

        self._page_event(event, message_id, page_index=index, posts=len(posts), pages=len(page_set))
        return page_set

    def edit_text(self, message_id: str) -> str:
        return page_ops.editable_text(self.load(message_id))

    def save_edit(self, message_id: str, text: str) -> PageSet:
        """
        Replace the current page with edited markup.

        Blank text removes the current page. Non-blank text that yields no
        posts raises EmptyParseError and leaves the stored state untouched.
        """
        with self._message_lock(message_id):
            page_set = self.load(message_id)

            if not (text or "").strip():
                if page_set.pages:
                    page_ops.delete_page(page_set, page_set.page_index)
                    self._save(message_id, page_set)
                    self._page_event(
                        "page_deleted", message_id, reason="empty_edit", pages=len(page_set)
                    )
                return page_set

            current = page_set.current_page
            platform = current[0].platform if current else page_set.platform
            posts = self._parser.parse(text, platform=platform)
            if not posts:
                raise self._empty_parse(message_id, text, platform)

            index = page_ops.replace_page(page_set, page_set.page_index, posts, text)
            self._save(message_id, page_set)

        self._page_event("edit_saved", message_id, page_index=index, posts=len(posts))
        return page_set

    def delete_page(self, message_id: str) -> PageSet:
        with self._message_lock(message_id):
            page_set = self.load(message_id)
            if not page_set.pages:
                return page_set

            deleted = page_set.page_index
            page_ops.delete_page(page_set, deleted)
            self._save(message_id, page_set)

        self._page_event("page_deleted", message_id, page_index=deleted, pages=len(page_set))
        return page_set

    def next_page(self, message_id: str) -> PageSet:
        return self._move(message_id, page_ops.next_page)

    def prev_page(self, message_id: str) -> PageSet:
        return self._move(message_id, page_ops.prev_page)

    def _move(self, message_id: str, step: Callable[[PageSet], bool]) -> PageSet:
        with self._message_lock(message_id):
            page_set = self.load(message_id)
            if step(page_set):
                self._save(message_id, page_set)
        return page_set

    def set_collapsed(self, message_id: str, collapsed: bool) -> PageSet:
        with self._message_lock(message_id):
            page_set = self.load(message_id)
            page_set.collapsed = bool(collapsed)
            self._save(message_id, page_set)
        return page_set
