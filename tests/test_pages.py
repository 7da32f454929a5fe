from __future__ import annotations

import unittest

from sns_feed.errors import PageIndexError
from sns_feed.pages import (
    PageSet,
    append_page,
    delete_page,
    editable_text,
    next_page,
    normalize_pages,
    prev_page,
    raw_text_for,
    replace_page,
    select_page,
)
from sns_feed.post import InstagramPost, TwitterPost


def _post(content: str, **kwargs: object) -> TwitterPost:
    return TwitterPost(id=f"id-{content}", username="@a", content=content, **kwargs)


class TestNormalizePages(unittest.TestCase):
    def test_empty_and_non_list(self) -> None:
        self.assertEqual(normalize_pages([]), [])
        self.assertEqual(normalize_pages(None), [])
        self.assertEqual(normalize_pages({"pages": []}), [])

    def test_flat_list_is_one_page(self) -> None:
        post_a = _post("a")
        self.assertEqual(normalize_pages([post_a]), [[post_a]])

    def test_empty_pages_are_filtered(self) -> None:
        post_a = _post("a")
        self.assertEqual(normalize_pages([[], [post_a]]), [[post_a]])

    def test_dicts_are_coerced_and_junk_dropped(self) -> None:
        pages = normalize_pages(
            [[{"username": "@x", "content": "hi", "displayName": "X"}, "junk", 3]],
            platform="instagram",
        )
        self.assertEqual(len(pages), 1)
        self.assertEqual(len(pages[0]), 1)
        post = pages[0][0]
        assert isinstance(post, InstagramPost)
        self.assertEqual(post.display_name, "X")

    def test_legacy_post_shapes(self) -> None:
        raw = [
            {
                "platform": "twitter",
                "username": "@x",
                "content": "quoting",
                "photo": "a cat",
                "quoteRt": {"displayName": "Y", "username": "@y", "content": "orig"},
                "stats": {"likes": 12, "retweets": "3R", "quotes": "1Q", "replies": "4"},
            },
            {
                "platform": "messenger",
                "username": "me",
                "content": "yo",
                "conversationContext": {"type": "1on1", "participants": ["me", "you"]},
            },
        ]
        pages = normalize_pages(raw)
        tweet, message = pages[0]
        assert isinstance(tweet, TwitterPost)
        self.assertEqual(tweet.media[0].description, "a cat")
        assert tweet.quoted_post is not None
        self.assertEqual(tweet.quoted_post.username, "@y")
        self.assertEqual(tweet.stats.likes, "12")
        self.assertEqual(tweet.stats.shares, "3R")
        self.assertEqual(tweet.stats.secondary_shares, "1Q")
        self.assertEqual(tweet.stats.reply_count_hint, 4)
        self.assertEqual(message.conversation_context.type, "direct")


class TestPageOperations(unittest.TestCase):
    def test_append_selects_new_page(self) -> None:
        ps = PageSet()
        self.assertEqual(append_page(ps, [_post("a")], "raw a"), 0)
        self.assertEqual(append_page(ps, [_post("b")], None), 1)
        self.assertEqual(ps.page_index, 1)
        self.assertEqual(len(ps.pages), len(ps.raw_texts))
        self.assertEqual(ps.raw_texts, ["raw a", None])

    def test_empty_page_is_rejected(self) -> None:
        ps = PageSet()
        with self.assertRaises(ValueError):
            append_page(ps, [], "x")
        with self.assertRaises(ValueError):
            replace_page(ps, 0, [], "x")

    def test_replace_on_empty_set_appends(self) -> None:
        ps = PageSet()
        self.assertEqual(replace_page(ps, 5, [_post("a")], "raw"), 0)
        self.assertEqual(len(ps), 1)

    def test_replace_keeps_lockstep(self) -> None:
        ps = PageSet()
        append_page(ps, [_post("a")], "raw a")
        append_page(ps, [_post("b")], "raw b")
        replace_page(ps, 0, [_post("c")], "raw c")
        self.assertEqual(ps.pages[0][0].content, "c")
        self.assertEqual(ps.raw_texts, ["raw c", "raw b"])

    def test_delete_last_remaining_page(self) -> None:
        ps = PageSet()
        append_page(ps, [_post("a")], "raw")
        delete_page(ps, 0)
        self.assertEqual(ps.pages, [])
        self.assertEqual(ps.raw_texts, [])
        self.assertEqual(ps.page_index, 0)

    def test_delete_before_current_keeps_selection(self) -> None:
        ps = PageSet()
        for name in ("a", "b", "c"):
            append_page(ps, [_post(name)], name)
        delete_page(ps, 0)
        self.assertEqual(ps.current_page[0].content, "c")
        self.assertEqual(ps.raw_texts, ["b", "c"])

    def test_delete_current_last_page_clamps(self) -> None:
        ps = PageSet()
        for name in ("a", "b"):
            append_page(ps, [_post(name)], name)
        delete_page(ps, 1)
        self.assertEqual(ps.page_index, 0)
        self.assertEqual(ps.current_page[0].content, "a")

    def test_out_of_range_index(self) -> None:
        ps = PageSet()
        append_page(ps, [_post("a")], "raw")
        with self.assertRaises(PageIndexError):
            delete_page(ps, 3)
        with self.assertRaises(PageIndexError):
            select_page(ps, -1)
        with self.assertRaises(IndexError):
            raw_text_for(ps, 1)

    def test_navigation(self) -> None:
        ps = PageSet()
        for name in ("a", "b"):
            append_page(ps, [_post(name)], name)
        self.assertFalse(next_page(ps))
        self.assertTrue(prev_page(ps))
        self.assertFalse(prev_page(ps))
        self.assertEqual(ps.page_index, 0)
        select_page(ps, 1)
        self.assertEqual(ps.page_index, 1)


class TestRawTexts(unittest.TestCase):
    def test_mismatched_lengths_are_reset(self) -> None:
        ps = PageSet(pages=[[_post("a")], [_post("b")]], raw_texts=["only one"], page_index=9)
        self.assertEqual(ps.raw_texts, [None, None])
        self.assertEqual(ps.page_index, 1)

    def test_editable_text_prefers_raw(self) -> None:
        ps = PageSet()
        append_page(ps, [_post("a")], "[POST]\nUser: @a\nContent: a\n[/POST]")
        self.assertEqual(editable_text(ps), "[POST]\nUser: @a\nContent: a\n[/POST]")

    def test_editable_text_rebuilds_missing_raw(self) -> None:
        ps = PageSet()
        append_page(ps, [_post("rebuilt")], None)
        self.assertIsNone(raw_text_for(ps, 0))
        text = editable_text(ps)
        self.assertIn("[POST]", text)
        self.assertIn("Content: rebuilt", text)

    def test_editable_text_of_empty_set(self) -> None:
        self.assertEqual(editable_text(PageSet()), "")


class TestStoredShape(unittest.TestCase):
    def test_round_trip_through_stored_blob(self) -> None:
        ps = PageSet(platform="twitter")
        append_page(ps, [_post("a")], "raw a")
        append_page(ps, [_post("b")], None)
        ps.collapsed = True

        blob = ps.to_stored()
        self.assertEqual(blob["rawTexts"], ["raw a", ""])
        self.assertEqual(blob["pages"][0][0]["username"], "@a")
        self.assertIn("displayName", blob["pages"][0][0])

        restored = PageSet.from_stored(blob)
        self.assertEqual(len(restored), 2)
        self.assertEqual(restored.page_index, 1)
        self.assertTrue(restored.collapsed)
        self.assertEqual(restored.raw_texts, ["raw a", None])
        self.assertEqual(restored.pages[0][0].id, "id-a")

    def test_legacy_data_key_and_bad_raw_texts(self) -> None:
        blob = {
            "data": [{"username": "@x", "content": "old"}],
            "rawTexts": ["a", "b"],
            "pageIndex": "oops",
        }
        ps = PageSet.from_stored(blob)
        self.assertEqual(len(ps), 1)
        self.assertEqual(ps.pages[0][0].platform, "twitter")
        self.assertEqual(ps.raw_texts, [None])
        self.assertEqual(ps.page_index, 0)

    def test_unset_platform_is_stored_as_empty_string(self) -> None:
        blob = PageSet().to_stored()
        self.assertEqual(blob["platform"], "")
        self.assertIsNone(PageSet.from_stored(blob).platform)

    def test_missing_blob(self) -> None:
        ps = PageSet.from_stored(None)
        self.assertEqual(len(ps), 0)
        self.assertEqual(ps.current_page, [])


if __name__ == "__main__":
    unittest.main()
