from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from .errors import PageIndexError
from .platforms import DEFAULT_PLATFORM, resolve_platform
from .post import POST_ADAPTER, POST_TYPES, AnyPost, dump_page
from .serializer import serialize_page

_POST_CLASSES = tuple(POST_TYPES.values())


@dataclass
class PageSet:
    """
    Every page generated for one conversation message.

    `pages` and `raw_texts` always have the same length; a raw text of None
    means the generated markup is unknown and must be rebuilt from the page.
    """

    pages: list[list[AnyPost]] = field(default_factory=list)
    raw_texts: list[str | None] = field(default_factory=list)
    page_index: int = 0
    collapsed: bool = False
    platform: str | None = None

    def __post_init__(self) -> None:
        if len(self.raw_texts) != len(self.pages):
            self.raw_texts = [None] * len(self.pages)
        _clamp(self)

    def __len__(self) -> int:
        return len(self.pages)

    @property
    def current_page(self) -> list[AnyPost]:
        if not self.pages:
            return []
        return self.pages[self.page_index]

    @classmethod
    def from_stored(
        cls,
        blob: Mapping[str, Any] | None,
        *,
        default_platform: str = DEFAULT_PLATFORM,
    ) -> "PageSet":
        """
        Rebuild a PageSet from its persisted JSON shape.

        Accepts the legacy `data` key for pages and legacy post shapes. Raw
        texts are only kept when they still line up one-to-one with the pages.
        """
        if not isinstance(blob, Mapping):
            return cls()

        stored_platform = blob.get("platform")
        platform = stored_platform.strip() if isinstance(stored_platform, str) else ""
        raw_pages = blob.get("pages", blob.get("data"))
        pages = normalize_pages(raw_pages, platform=platform or default_platform)

        stored_texts = blob.get("rawTexts")
        raw_texts: list[str | None] = []
        if isinstance(stored_texts, list) and len(stored_texts) == len(pages):
            raw_texts = [t if isinstance(t, str) and t.strip() else None for t in stored_texts]

        try:
            page_index = int(blob.get("pageIndex") or 0)
        except (TypeError, ValueError):
            page_index = 0

        return cls(
            pages=pages,
            raw_texts=raw_texts,
            page_index=page_index,
            collapsed=bool(blob.get("collapsed", False)),
            platform=platform or None,
        )

    def to_stored(self) -> dict[str, Any]:
        return {
            "pages": [dump_page(p) for p in self.pages],
            "rawTexts": [t or "" for t in self.raw_texts],
            "pageIndex": self.page_index,
            "collapsed": self.collapsed,
            "platform": self.platform or "",
        }


def _coerce_post(item: Any, platform: str | None) -> AnyPost | None:
    if isinstance(item, _POST_CLASSES):
        return item
    if not isinstance(item, Mapping):
        return None

    data = dict(item)
    data["platform"] = resolve_platform(data.get("platform"), platform or DEFAULT_PLATFORM)
    try:
        return POST_ADAPTER.validate_python(data)
    except ValidationError:
        return None


def normalize_pages(raw: Any, *, platform: str | None = None) -> list[list[AnyPost]]:
    """
    Coerce stored page data into a list of non-empty pages.

    A list of lists is already paginated, a flat list is a single legacy page,
    anything else is empty. Items that are not valid posts are dropped, and so
    is any page left without posts.
    """
    if not isinstance(raw, list) or not raw:
        return []

    candidates = raw if isinstance(raw[0], list) else [raw]

    pages: list[list[AnyPost]] = []
    for page in candidates:
        if not isinstance(page, list) or not page:
            continue
        posts = [p for p in (_coerce_post(item, platform) for item in page) if p is not None]
        if posts:
            pages.append(posts)
    return pages


def _clamp(page_set: PageSet) -> None:
    if not page_set.pages or page_set.page_index < 0:
        page_set.page_index = 0
    elif page_set.page_index >= len(page_set.pages):
        page_set.page_index = len(page_set.pages) - 1


def _check_index(page_set: PageSet, index: int) -> None:
    if not 0 <= index < len(page_set.pages):
        raise PageIndexError(f"page index {index} out of range for {len(page_set.pages)} page(s)")


def _require_posts(page: Sequence[AnyPost]) -> list[AnyPost]:
    posts = list(page)
    if not posts:
        raise ValueError("a page must contain at least one post")
    return posts


def append_page(page_set: PageSet, page: Sequence[AnyPost], raw_text: str | None) -> int:
    """Add a page at the end and make it current. Returns its index."""
    page_set.pages.append(_require_posts(page))
    page_set.raw_texts.append(raw_text or None)
    page_set.page_index = len(page_set.pages) - 1
    return page_set.page_index


def replace_page(
    page_set: PageSet,
    index: int,
    page: Sequence[AnyPost],
    raw_text: str | None,
) -> int:
    """
    Overwrite the page at `index` (clamped into range); appends when the set is
    empty. Returns the index that was written.
    """
    posts = _require_posts(page)
    if not page_set.pages:
        return append_page(page_set, posts, raw_text)

    idx = min(max(0, int(index)), len(page_set.pages) - 1)
    page_set.pages[idx] = posts
    page_set.raw_texts[idx] = raw_text or None
    return idx


def delete_page(page_set: PageSet, index: int) -> None:
    _check_index(page_set, index)

    del page_set.pages[index]
    if index < len(page_set.raw_texts):
        del page_set.raw_texts[index]

    if index < page_set.page_index:
        page_set.page_index -= 1
    _clamp(page_set)


def select_page(page_set: PageSet, index: int) -> None:
    _check_index(page_set, index)
    page_set.page_index = index


def next_page(page_set: PageSet) -> bool:
    if page_set.page_index >= len(page_set.pages) - 1:
        return False
    page_set.page_index += 1
    return True


def prev_page(page_set: PageSet) -> bool:
    if page_set.page_index <= 0:
        return False
    page_set.page_index -= 1
    return True


def raw_text_for(page_set: PageSet, index: int) -> str | None:
    """
    Return the stored markup of a page, or None when it has to be rebuilt
    from the structured posts.
    """
    _check_index(page_set, index)
    if len(page_set.raw_texts) != len(page_set.pages):
        return None
    return page_set.raw_texts[index] or None


def editable_text(page_set: PageSet, index: int | None = None) -> str:
    """Markup to show in an editor: the stored raw text, else a serialization."""
    if not page_set.pages:
        return ""

    idx = page_set.page_index if index is None else index
    raw = raw_text_for(page_set, idx)
    if raw is not None:
        return raw

    return serialize_page(page_set.pages[idx])
