from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Mapping, Protocol

from .errors import StorageError
from .storage_schema import initialize_sqlite


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_dumps(value: Any) -> str:
    return json.dumps(
        value,
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


def _message_key(message_id: str) -> str:
    key = str(message_id if message_id is not None else "").strip()
    if not key:
        raise ValueError("message_id must be non-empty")
    return key


class FeedStateStore(Protocol):
    """Opaque per-message key-value store for persisted PageSet blobs."""

    def get(self, message_id: str) -> dict[str, Any] | None: ...

    def put(self, message_id: str, state: Mapping[str, Any]) -> None: ...


class InMemoryFeedStore:
    def __init__(self) -> None:
        self._states: dict[str, str] = {}
        self._lock = Lock()

    def get(self, message_id: str) -> dict[str, Any] | None:
        with self._lock:
            raw = self._states.get(_message_key(message_id))
        return json.loads(raw) if raw is not None else None

    def put(self, message_id: str, state: Mapping[str, Any]) -> None:
        payload = _json_dumps(dict(state))
        with self._lock:
            self._states[_message_key(message_id)] = payload

    def message_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._states)


class SQLiteFeedStore:
    """
    SQLite-backed feed state, one JSON blob per message id.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self._lock = Lock()

    @classmethod
    def open(cls, path: str | Path) -> "SQLiteFeedStore":
        db_path = str(path)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(db_path, check_same_thread=False)
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to open sqlite database: {db_path}: {e}") from e

        try:
            initialize_sqlite(conn)
        except Exception as e:
            conn.close()
            raise StorageError(f"Failed to initialize sqlite schema: {e}") from e

        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteFeedStore":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def get(self, message_id: str) -> dict[str, Any] | None:
        key = _message_key(message_id)

        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT state_json FROM feed_states WHERE message_id = ?",
                    (key,),
                ).fetchone()
            except sqlite3.DatabaseError as e:
                raise StorageError(f"Failed to read feed state: {e}") from e

        if row is None:
            return None

        raw = (row["state_json"] or "").strip()
        if not raw:
            return None

        try:
            state = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Stored state_json could not be parsed for {key}: {e}") from e

        if not isinstance(state, dict):
            raise StorageError(f"Stored state for {key} is not an object")
        return state

    def put(self, message_id: str, state: Mapping[str, Any]) -> None:
        key = _message_key(message_id)
        payload = _json_dumps(dict(state))
        ts = _utc_now_iso()

        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        """
                        INSERT INTO feed_states(message_id, state_json, created_at, updated_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(message_id) DO UPDATE SET
                          state_json = excluded.state_json,
                          updated_at = excluded.updated_at
                        """.strip(),
                        (key, payload, ts, ts),
                    )
            except sqlite3.DatabaseError as e:
                raise StorageError(f"Failed to write feed state: {e}") from e

    def message_ids(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT message_id FROM feed_states ORDER BY message_id"
            ).fetchall()
        return [str(r["message_id"]) for r in rows]
