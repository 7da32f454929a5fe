from __future__ import annotations

import sqlite3
import tempfile
import threading
import unittest
from pathlib import Path

from sns_feed.errors import StorageError
from sns_feed.storage import InMemoryFeedStore, SQLiteFeedStore


class TestSQLiteFeedStore(unittest.TestCase):
    def test_put_get_and_reopen(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            db_path = Path(td) / "nested" / "feed.sqlite"
            state = {"pages": [], "rawTexts": [], "pageIndex": 0, "note": "한국어"}

            with SQLiteFeedStore.open(db_path) as store:
                self.assertIsNone(store.get("m1"))
                store.put("m1", state)
                self.assertEqual(store.get("m1"), state)

            with SQLiteFeedStore.open(db_path) as store:
                self.assertEqual(store.get("m1"), state)
                store.put("m1", {"pageIndex": 1})
                self.assertEqual(store.get("m1"), {"pageIndex": 1})
                store.put("m0", {})
                self.assertEqual(store.message_ids(), ["m0", "m1"])

    def test_migrations_are_idempotent(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            db_path = Path(td) / "feed.sqlite"
            SQLiteFeedStore.open(db_path).close()
            SQLiteFeedStore.open(db_path).close()

            conn = sqlite3.connect(db_path)
            try:
                versions = [r[0] for r in conn.execute("SELECT version FROM schema_migrations")]
            finally:
                conn.close()
            self.assertEqual(versions, [1])

    def test_corrupt_state_raises_storage_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            db_path = Path(td) / "feed.sqlite"
            with SQLiteFeedStore.open(db_path) as store:
                store.put("m", {"ok": True})

            conn = sqlite3.connect(db_path)
            try:
                with conn:
                    conn.execute("UPDATE feed_states SET state_json = '{not json'")
            finally:
                conn.close()

            with SQLiteFeedStore.open(db_path) as store:
                with self.assertRaises(StorageError):
                    store.get("m")

    def test_empty_message_id_is_rejected(self) -> None:
        with SQLiteFeedStore.open(":memory:") as store:
            with self.assertRaises(ValueError):
                store.put("  ", {})

    def test_writes_from_threads(self) -> None:
        with SQLiteFeedStore.open(":memory:") as store:
            threads = [
                threading.Thread(target=store.put, args=(f"m{i}", {"i": i})) for i in range(10)
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=5)
            self.assertEqual(len(store.message_ids()), 10)


class TestInMemoryFeedStore(unittest.TestCase):
    def test_returns_copies(self) -> None:
        store = InMemoryFeedStore()
        state = {"pages": [[{"content": "a"}]]}
        store.put("m", state)
        state["pages"].clear()

        loaded = store.get("m")
        assert loaded is not None
        self.assertEqual(loaded["pages"], [[{"content": "a"}]])
        loaded["pages"].clear()
        self.assertEqual(store.get("m"), {"pages": [[{"content": "a"}]]})
        self.assertEqual(store.message_ids(), ["m"])


if __name__ == "__main__":
    unittest.main()
