from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO

_MESSAGE_LIMIT = 2000
_TRACEBACK_LIMIT = 12000


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def _error_fields(exc: BaseException) -> dict[str, str]:
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return {
        "type": type(exc).__name__,
        "message": _clip(str(exc), _MESSAGE_LIMIT),
        "traceback": _clip(trace, _TRACEBACK_LIMIT),
    }


class FeedEventLog:
    """
    Append-only JSONL log of parser and page-store events.

    Every line carries ts, level, event and session_id; events about one
    conversation message also carry message_id. The file is opened on the
    first event and always appended to, so successive CLI invocations share
    one log and are told apart by session_id.
    """

    def __init__(self, path: str | Path, *, session_id: str | None = None) -> None:
        self.path = Path(path)
        self.session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._fp: TextIO | None = None
        self._lock = Lock()

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                self._fp.close()
                self._fp = None

    def __enter__(self) -> "FeedEventLog":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def session_started(self, *, command: str, config_hash: str) -> None:
        self._emit("INFO", "session_started", None, command=command, config_sha256=config_hash)

    def block_skipped(self, *, block_index: int, platform: str, exc: BaseException) -> None:
        self._emit(
            "WARN",
            "post_block_skipped",
            None,
            block_index=block_index,
            platform=platform,
            error=_error_fields(exc),
        )

    def video_context_dropped(self, *, platform: str, posts: int) -> None:
        self._emit("WARN", "video_context_dropped", None, platform=platform, posts=posts)

    def page_event(self, event: str, *, message_id: str, **data: Any) -> None:
        self._emit("INFO", event, message_id, **data)

    def empty_parse(self, *, message_id: str, chars: int, platform: str | None) -> None:
        self._emit("WARN", "empty_parse", message_id, chars=chars, platform=platform)

    def failure(
        self,
        event: str,
        *,
        exc: BaseException,
        message_id: str | None = None,
        **data: Any,
    ) -> None:
        self._emit("ERROR", event, message_id, error=_error_fields(exc), **data)

    def _emit(self, level: str, event: str, message_id: str | None, **data: Any) -> None:
        record: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "session_id": self.session_id,
        }
        if message_id:
            record["message_id"] = message_id
        if data:
            record["data"] = data

        line = json.dumps(record, ensure_ascii=False, sort_keys=True, default=str)
        with self._lock:
            if self._fp is None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._fp = self.path.open("a", encoding="utf-8", newline="\n")
            self._fp.write(line + "\n")
            self._fp.flush()
