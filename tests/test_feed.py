from __future__ import annotations

import json
import tempfile
import threading
import unittest
from pathlib import Path

from sns_feed.errors import EmptyParseError, GenerationError, GenerationInProgressError
from sns_feed.feed import FeedService
from sns_feed.parser import DocumentParser
from sns_feed.event_log import FeedEventLog
from sns_feed.storage import InMemoryFeedStore


def _markup(*contents: str) -> str:
    return "\n\n".join(f"[POST]\nUser: @bot\nContent: {c}\n[/POST]" for c in contents)


class _ScriptedGenerator:
    def __init__(self, *responses: str) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[str, str]] = []

    def __call__(self, source_text: str, platform: str) -> str:
        self.calls.append((source_text, platform))
        return self._responses.pop(0)


class TestGenerate(unittest.TestCase):
    def test_replace_then_append(self) -> None:
        store = InMemoryFeedStore()
        gen = _ScriptedGenerator(
            "Some story.\n" + _markup("one"),
            _markup("two", "three"),
            _markup("four"),
        )
        service = FeedService(store, generator=gen)

        ps = service.generate("m1", "hello")
        self.assertEqual(len(ps), 1)
        self.assertEqual(ps.raw_texts, [_markup("one")])
        self.assertEqual(gen.calls, [("hello", "twitter")])

        ps = service.generate("m1", "hello", mode="append")
        self.assertEqual(len(ps), 2)
        self.assertEqual(ps.page_index, 1)
        self.assertEqual([p.content for p in ps.current_page], ["two", "three"])

        ps = service.generate("m1", "hello", mode="replace", platform="instagram")
        self.assertEqual(len(ps), 2)
        self.assertEqual(ps.current_page[0].content, "four")
        self.assertEqual(ps.current_page[0].platform, "instagram")
        self.assertEqual(ps.platform, "instagram")

        stored = store.get("m1")
        assert stored is not None
        self.assertEqual(len(stored["pages"]), len(stored["rawTexts"]))

    def test_video_response_becomes_video_comment_page(self) -> None:
        gen = _ScriptedGenerator(
            "[VIDEO]\nChannel: Chef\nTitle: Pasta\n[/VIDEO]\n[POST]\nUser: @a\nContent: nice\n[/POST]"
        )
        service = FeedService(InMemoryFeedStore(), generator=gen)

        ps = service.generate("m", "src")
        post = ps.current_page[0]
        self.assertEqual(post.platform, "youtube")
        self.assertEqual(post.video_context.channel_name, "Chef")
        self.assertEqual(post.video_context.video_title, "Pasta")
        self.assertEqual(ps.platform, "youtube")
        self.assertEqual(service.load("m").platform, "youtube")
        self.assertEqual(gen.calls, [("src", "twitter")])

    def test_generator_failures(self) -> None:
        def _boom(source_text: str, platform: str) -> str:
            raise TimeoutError("slow upstream")

        with self.assertRaises(GenerationError):
            FeedService(InMemoryFeedStore(), generator=_boom).generate("m", "x")

        with self.assertRaises(GenerationError):
            FeedService(InMemoryFeedStore(), generator=lambda s, p: "  ").generate("m", "x")

        with self.assertRaises(GenerationError):
            FeedService(InMemoryFeedStore()).generate("m", "x")

    def test_response_without_posts(self) -> None:
        store = InMemoryFeedStore()
        service = FeedService(store, generator=lambda s, p: "only prose")
        with self.assertRaises(EmptyParseError):
            service.generate("m", "x")
        self.assertIsNone(store.get("m"))
        self.assertFalse(service.is_generating("m"))

    def test_overlapping_generation_is_rejected(self) -> None:
        started = threading.Event()
        release = threading.Event()

        def _slow(source_text: str, platform: str) -> str:
            started.set()
            release.wait(timeout=5)
            return _markup("slow")

        service = FeedService(InMemoryFeedStore(), generator=_slow)
        results: list[int] = []
        worker = threading.Thread(target=lambda: results.append(len(service.generate("m", "x"))))
        worker.start()
        try:
            self.assertTrue(started.wait(timeout=5))
            self.assertTrue(service.is_generating("m"))
            with self.assertRaises(GenerationInProgressError):
                service.generate("m", "again")
        finally:
            release.set()
            worker.join(timeout=5)

        self.assertEqual(results, [1])
        self.assertFalse(service.is_generating("m"))

    def test_concurrent_appends_keep_every_page(self) -> None:
        store = InMemoryFeedStore()
        service = FeedService(store)
        parser = DocumentParser()
        barrier = threading.Barrier(8)

        def _append(n: int) -> None:
            posts = parser.parse(_markup(f"post {n}"))
            barrier.wait(timeout=5)
            service.store_page("m", posts, _markup(f"post {n}"), mode="append")

        threads = [threading.Thread(target=_append, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        ps = service.load("m")
        self.assertEqual(len(ps), 8)
        self.assertEqual(len(ps.raw_texts), 8)
        self.assertEqual(service._locks, {})


class TestEditFlow(unittest.TestCase):
    def _service_with_pages(self, *contents: str) -> FeedService:
        service = FeedService(InMemoryFeedStore())
        parser = DocumentParser()
        for c in contents:
            service.store_page("m", parser.parse(_markup(c)), _markup(c), mode="append")
        return service

    def test_edit_text_returns_raw_markup(self) -> None:
        service = self._service_with_pages("a", "b")
        self.assertEqual(service.edit_text("m"), _markup("b"))

    def test_save_edit_replaces_current_page(self) -> None:
        service = self._service_with_pages("a", "b")
        ps = service.save_edit("m", _markup("edited", "more"))
        self.assertEqual(len(ps), 2)
        self.assertEqual([p.content for p in ps.current_page], ["edited", "more"])
        self.assertEqual(ps.raw_texts[1], _markup("edited", "more"))
        self.assertEqual(service.load("m").pages[0][0].content, "a")

    def test_blank_edit_deletes_current_page(self) -> None:
        service = self._service_with_pages("a", "b")
        ps = service.save_edit("m", "   \n")
        self.assertEqual(len(ps), 1)
        self.assertEqual(ps.current_page[0].content, "a")

    def test_edit_without_posts_is_reported(self) -> None:
        service = self._service_with_pages("a")
        with self.assertRaises(EmptyParseError):
            service.save_edit("m", "I removed the tags by accident")
        self.assertEqual(service.load("m").current_page[0].content, "a")

    def test_edit_keeps_page_platform(self) -> None:
        service = FeedService(InMemoryFeedStore())
        posts = DocumentParser().parse(_markup("a"), platform="instagram")
        service.store_page("m", posts, None, mode="append", platform="instagram")
        ps = service.save_edit("m", _markup("b"))
        self.assertEqual(ps.current_page[0].platform, "instagram")

    def test_delete_and_navigate(self) -> None:
        service = self._service_with_pages("a", "b", "c")
        self.assertEqual(service.prev_page("m").page_index, 1)
        self.assertEqual(service.prev_page("m").page_index, 0)
        self.assertEqual(service.prev_page("m").page_index, 0)
        self.assertEqual(service.next_page("m").page_index, 1)

        ps = service.delete_page("m")
        self.assertEqual([p[0].content for p in ps.pages], ["a", "c"])
        self.assertEqual(ps.current_page[0].content, "c")

        service.delete_page("m")
        service.delete_page("m")
        ps = service.delete_page("m")
        self.assertEqual(len(ps), 0)
        self.assertEqual(ps.page_index, 0)
        self.assertEqual(service._locks, {})

    def test_collapsed_flag_persists(self) -> None:
        service = self._service_with_pages("a")
        service.set_collapsed("m", True)
        self.assertTrue(service.load("m").collapsed)


class TestFeedLogging(unittest.TestCase):
    def test_events_are_logged(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            log_path = Path(td) / "feed.jsonl"
            with FeedEventLog(log_path) as logger:
                service = FeedService(
                    InMemoryFeedStore(),
                    generator=lambda s, p: _markup("x"),
                    logger=logger,
                )
                service.generate("m", "src", mode="append")
                service.save_edit("m", _markup("y"))
                service.delete_page("m")

            events = [
                json.loads(line)
                for line in log_path.read_text(encoding="utf-8").splitlines()
                if line.strip()
            ]

        names = [e["event"] for e in events]
        self.assertEqual(names, ["page_appended", "edit_saved", "page_deleted"])
        self.assertTrue(all(e["message_id"] == "m" for e in events))

    def test_video_context_dropped_under_explicit_platform(self) -> None:
        response = "[VIDEO]\nChannel: Chef\nTitle: Pasta\n[/VIDEO]\n" + _markup("x")
        with tempfile.TemporaryDirectory() as td:
            log_path = Path(td) / "feed.jsonl"
            with FeedEventLog(log_path) as logger:
                service = FeedService(
                    InMemoryFeedStore(),
                    generator=lambda s, p: response,
                    logger=logger,
                )
                ps = service.generate("m", "src", platform="twitter")

            events = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]

        self.assertEqual(ps.current_page[0].platform, "twitter")
        dropped = [e for e in events if e["event"] == "video_context_dropped"]
        self.assertEqual(len(dropped), 1)
        self.assertEqual(dropped[0]["level"], "WARN")
        self.assertEqual(dropped[0]["data"], {"platform": "twitter", "posts": 1})


if __name__ == "__main__":
    unittest.main()
