import unittest

from relay.reddit.items import (
    Comment,
    Post,
    PostFlair,
    is_removed,
    post_flair_text,
    resolve_author_name,
)

from fakes import make_comment, make_post


class TestContentItems(unittest.TestCase):
    def test_post_urls_and_ids(self):
        post = make_post("t3_abc")
        self.assertEqual(post.item_type, "post")
        self.assertEqual(post.unique_id, "t3_abc")
        self.assertEqual(post.reddit_url, "https://www.reddit.com/r/testsub/comments/abc/a_post/")

    def test_comment_unique_id_includes_parent(self):
        comment = make_comment("t1_xyz", parent_id="t1_parent")
        self.assertEqual(comment.item_type, "comment")
        self.assertEqual(comment.unique_id, "t1_parent/t1_xyz")

    def test_comment_without_parent(self):
        comment = Comment(id="t1_xyz")
        self.assertEqual(comment.unique_id, "unknown/t1_xyz")
        self.assertTrue(comment.is_top_level)

    def test_top_level_detection(self):
        self.assertTrue(make_comment(parent_id="t3_abc").is_top_level)
        self.assertFalse(make_comment(parent_id="t1_other").is_top_level)


class TestIsRemoved(unittest.TestCase):
    def test_clean_item(self):
        self.assertFalse(is_removed(make_post()))

    def test_removal_signals(self):
        """Each moderation signal on its own marks the item removed."""
        for kwargs in (
            {"spam": True},
            {"removed": True},
            {"removed_by_category": "automod_filtered"},
            {"banned_by": "AutoModerator"},
            {"banned_by": True},
            {"banned_by": "true"},
            {"removal_reason": "legal"},
        ):
            with self.subTest(**{k: str(v) for k, v in kwargs.items()}):
                self.assertTrue(is_removed(make_post(**kwargs)))

    def test_other_categories_are_not_removal(self):
        self.assertFalse(is_removed(make_post(removed_by_category="reddit")))
        self.assertFalse(is_removed(make_post(banned_by="some_mod")))


class TestHelpers(unittest.TestCase):
    def test_resolve_author_name(self):
        post = make_post(author_name="alice")
        self.assertEqual(resolve_author_name(post, "override"), "override")
        self.assertEqual(resolve_author_name(post), "alice")
        self.assertEqual(resolve_author_name(Post(id="t3_x")), "unknown")

    def test_post_flair_text(self):
        self.assertEqual(post_flair_text(make_post(flair=PostFlair(text="News"))), "News")
        self.assertIsNone(post_flair_text(make_post()))
        self.assertIsNone(post_flair_text(make_comment()))


if __name__ == "__main__":
    unittest.main()
