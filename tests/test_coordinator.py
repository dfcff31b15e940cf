import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from relay.config import MINIMUM_DELAY, SettingsError
from relay.context import ItemCreatedEvent, ModActionEvent
from relay.coordinator import (
    FRONT_PAGE_CHECK_SCHEDULED_JOB,
    FRONT_PAGE_LIMIT,
    RELAY_SCHEDULED_JOB,
    SCHEDULED_JOBS,
    handle_item_created,
    handle_mod_action,
    resolve_post_images,
    run_front_page_check,
    run_relay_job,
    schedule_relay,
    wait_for_safety_checks,
)
from relay.reddit.items import PostFlair

from fakes import (
    WEBHOOK_URL,
    FakeReddit,
    FakeScheduler,
    FakeStore,
    FakeWebhook,
    make_comment,
    make_context,
    make_post,
)


class CoordinatorTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.reddit = FakeReddit()
        self.store = FakeStore()
        self.scheduler = FakeScheduler()
        self.webhook = FakeWebhook()

    def context(self, **values):
        return make_context(
            values,
            reddit=self.reddit,
            store=self.store,
            scheduler=self.scheduler,
            webhook=self.webhook,
        )

    def flag(self, item_id, field):
        return self.store.data.get(item_id, {}).get(field)


class TestImmediateRelay(CoordinatorTestCase):
    async def test_relays_new_post_once(self):
        """With no delay the webhook is called immediately and the item is marked."""
        ctx = self.context()
        post = self.reddit.add(make_post(title="Hello"))

        job_id = await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        self.assertIsNone(job_id)
        self.assertEqual(len(self.webhook.calls), 1)
        url, payload = self.webhook.calls[0]
        self.assertEqual(url, WEBHOOK_URL)
        self.assertTrue(payload["content"].startswith("New [post]("))
        self.assertEqual(payload["embeds"][0]["title"], "Hello")
        self.assertEqual(self.flag(post.id, "relayed"), "true")
        self.assertEqual(self.flag(post.id, "scheduled"), "true")
        self.assertEqual(self.flag(post.id, "shouldRelay"), "true")
        self.assertEqual(self.scheduler.jobs, [])

    async def test_image_post_embeds_image_instead_of_link(self):
        """A direct image link becomes the embed image, not a link description."""
        ctx = self.context(**{"image-embed-count": 1})
        post = self.reddit.add(make_post(url="https://example.com/pic.png"))

        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        self.assertEqual(len(self.webhook.calls), 1)
        embed = self.webhook.calls[0][1]["embeds"][0]
        self.assertEqual(embed["image"]["url"], "https://example.com/pic.png")
        self.assertFalse(embed.get("description"))

    async def test_already_scheduled_is_not_enqueued_again(self):
        """Once an item is scheduled, a later delayed call registers nothing."""
        ctx = self.context(**{"post-delay": 5})
        post = self.reddit.add(make_post())
        settings = await ctx.load_settings()

        await schedule_relay(ctx, settings, post, "alice", delay=0)
        second = await schedule_relay(ctx, settings, post, "alice")

        self.assertIsNone(second)
        self.assertEqual(len(self.webhook.calls), 1)
        self.assertEqual(self.scheduler.jobs, [])

    async def test_filtered_item_is_not_relayed(self):
        ctx = self.context(**{"content-type": ["comment"]})
        post = self.reddit.add(make_post())

        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        self.assertEqual(self.webhook.calls, [])
        self.assertIsNone(self.flag(post.id, "shouldRelay"))
        self.assertIsNone(self.flag(post.id, "scheduled"))

    async def test_removed_item_not_relayed_when_ignoring_removed(self):
        """ignore-removed never lets a removed item reach the webhook."""
        ctx = self.context(**{"ignore-removed": True})
        post = self.reddit.add(make_post(removed_by_category="automod_filtered"))

        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        self.assertEqual(self.webhook.calls, [])
        self.assertIsNone(self.flag(post.id, "relayed"))

    async def test_removed_item_relayed_when_not_ignoring(self):
        ctx = self.context()
        post = self.reddit.add(make_post(spam=True))

        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        self.assertEqual(len(self.webhook.calls), 1)

    async def test_failed_delivery_still_marks_relayed(self):
        self.webhook.status_code = 0
        ctx = self.context()
        post = self.reddit.add(make_post())

        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        self.assertEqual(len(self.webhook.calls), 1)
        self.assertEqual(self.flag(post.id, "relayed"), "true")

    async def test_comment_payload_uses_parent_title(self):
        ctx = self.context()
        self.reddit.add(make_post("t3_abc", title="Parent title"))
        comment = self.reddit.add(make_comment(body="Reply body"))

        await handle_item_created(ctx, ItemCreatedEvent(item=comment, author_name="bob"))

        _, payload = self.webhook.calls[0]
        self.assertEqual(payload["embeds"][0]["title"], "New comment on: Parent title")
        self.assertEqual(payload["embeds"][0]["description"], "Reply body")

    async def test_invalid_settings_raise(self):
        ctx = self.context(**{"webhook-url": ""})
        with self.assertRaises(SettingsError):
            await handle_item_created(ctx, ItemCreatedEvent(item=make_post(), author_name="alice"))
        self.assertEqual(self.webhook.calls, [])

    async def test_subreddit_lookup_failure_does_not_abort(self):
        self.reddit.fail.add("subreddit")
        ctx = self.context()
        post = self.reddit.add(make_post())

        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        self.assertEqual(len(self.webhook.calls), 1)


class TestDelayedRelay(CoordinatorTestCase):
    async def test_post_delay_registers_job(self):
        ctx = self.context(**{"post-delay": 5})
        post = self.reddit.add(make_post())
        before = datetime.now(timezone.utc)

        job_id = await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        self.assertEqual(job_id, "job-1")
        self.assertEqual(self.webhook.calls, [])
        [job] = self.scheduler.jobs
        self.assertEqual(job["name"], RELAY_SCHEDULED_JOB)
        self.assertGreaterEqual(job["run_at"], before + timedelta(minutes=5))
        self.assertEqual(job["data"]["itemId"], post.id)
        self.assertEqual(job["data"]["itemType"], "post")
        self.assertEqual(job["data"]["uniqueId"], post.unique_id)
        self.assertEqual(job["data"]["webhookUrl"], WEBHOOK_URL)
        self.assertIn("embeds", job["data"]["data"])
        self.assertEqual(self.flag(post.id, "scheduled"), "true")
        self.assertIsNone(self.flag(post.id, "relayed"))

    async def test_comment_delay_used_for_comments(self):
        ctx = self.context(**{"post-delay": 5, "comment-delay": 10})
        comment = self.reddit.add(make_comment())
        before = datetime.now(timezone.utc)

        await handle_item_created(ctx, ItemCreatedEvent(item=comment, author_name="bob"))

        [job] = self.scheduler.jobs
        self.assertGreaterEqual(job["run_at"], before + timedelta(minutes=10))
        self.assertEqual(job["data"]["uniqueId"], "t3_abc/t1_xyz")

    async def test_approved_event_uses_after_approval_delay(self):
        ctx = self.context(**{"post-delay": 5, "post-delay-after-approval": 20})
        post = self.reddit.add(make_post())
        before = datetime.now(timezone.utc)

        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice", approved=True))

        [job] = self.scheduler.jobs
        self.assertGreaterEqual(job["run_at"], before + timedelta(minutes=20))

    async def test_run_relay_job_posts_stored_payload(self):
        ctx = self.context(**{"post-delay": 5})
        post = self.reddit.add(make_post())
        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))
        job = self.scheduler.jobs[0]

        relayed = await run_relay_job(ctx, job["data"])

        self.assertTrue(relayed)
        self.assertEqual(self.webhook.calls, [(WEBHOOK_URL, job["data"]["data"])])
        self.assertEqual(self.flag(post.id, "relayed"), "true")

    async def test_run_relay_job_skips_item_removed_meanwhile(self):
        """The removal gate is applied again when the deferred relay runs."""
        ctx = self.context(**{"post-delay": 5, "ignore-removed": True})
        post = self.reddit.add(make_post())
        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))
        self.reddit.add(make_post(post.id, removed=True))

        relayed = await run_relay_job(ctx, self.scheduler.jobs[0]["data"])

        self.assertFalse(relayed)
        self.assertEqual(self.webhook.calls, [])
        self.assertIsNone(self.flag(post.id, "relayed"))

    async def test_run_relay_job_composes_missing_payload(self):
        ctx = self.context()
        post = self.reddit.add(make_post(title="Fresh"))

        await run_relay_job(ctx, {"itemType": "post", "itemId": post.id})

        _, payload = self.webhook.calls[0]
        self.assertEqual(payload["embeds"][0]["title"], "Fresh")

    async def test_scheduled_jobs_registry(self):
        self.assertIs(SCHEDULED_JOBS[RELAY_SCHEDULED_JOB], run_relay_job)
        self.assertIs(SCHEDULED_JOBS[FRONT_PAGE_CHECK_SCHEDULED_JOB], run_front_page_check)


class TestSafetyChecks(CoordinatorTestCase):
    async def test_waits_until_item_is_clear(self):
        ctx = self.context()
        flagged = make_post(removed_by_category="automod_filtered")
        clear = make_post()

        with patch.object(self.reddit, "get_post_by_id", side_effect=[flagged, flagged, clear]) as mock_get:
            result = await wait_for_safety_checks(ctx, flagged, attempts=5, interval=0)

        self.assertIs(result, clear)
        self.assertEqual(mock_get.call_count, 3)

    async def test_gives_up_after_attempts(self):
        ctx = self.context()
        flagged = self.reddit.add(make_post(removed=True))

        result = await wait_for_safety_checks(ctx, flagged, attempts=3, interval=0)

        self.assertTrue(result.removed)

    async def test_fetch_error_returns_last_copy(self):
        self.reddit.fail.add("post")
        ctx = self.context()
        post = make_post()

        self.assertIs(await wait_for_safety_checks(ctx, post, attempts=3, interval=0), post)

    async def test_item_created_uses_refreshed_copy(self):
        """Safety checks run unless skipped and the refreshed item is what gets gated."""
        ctx = self.context(**{"skip-safety-checks": False, "ignore-removed": True})
        post = make_post()
        self.reddit.add(make_post(post.id, removed=True))

        with patch("relay.coordinator.SAFETY_CHECK_INTERVAL", 0):
            await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        self.assertEqual(self.webhook.calls, [])
        self.assertIsNone(self.flag(post.id, "relayed"))


class TestApprovalRetry(CoordinatorTestCase):
    async def test_retry_scheduled_for_held_item(self):
        """An approved item that was scheduled but never relayed gets a retry at the minimum delay."""
        ctx = self.context(**{"retry-on-approval": True})
        post = self.reddit.add(make_post())
        await self.store.hset(post.id, {"scheduled": "true"})
        before = datetime.now(timezone.utc)

        job_id = await handle_mod_action(ctx, ModActionEvent("approvelink", post.id, "post"))

        self.assertEqual(job_id, "job-1")
        [job] = self.scheduler.jobs
        self.assertEqual(job["name"], RELAY_SCHEDULED_JOB)
        self.assertGreaterEqual(job["run_at"], before + timedelta(minutes=MINIMUM_DELAY))
        self.assertLess(job["run_at"], before + timedelta(minutes=MINIMUM_DELAY + 1))
        self.assertEqual(job["data"]["itemId"], post.id)

    async def test_retry_uses_configured_delay(self):
        ctx = self.context(**{"retry-on-approval": True, "comment-delay-after-approval": 15})
        comment = self.reddit.add(make_comment())
        await self.store.hset(comment.id, {"scheduled": "true"})
        before = datetime.now(timezone.utc)

        await handle_mod_action(ctx, ModActionEvent("approvecomment", comment.id, "comment", "t3_abc"))

        self.assertGreaterEqual(self.scheduler.jobs[0]["run_at"], before + timedelta(minutes=15))

    async def test_no_retry_when_disabled(self):
        ctx = self.context()
        post = self.reddit.add(make_post())
        await self.store.hset(post.id, {"scheduled": "true"})

        self.assertIsNone(await handle_mod_action(ctx, ModActionEvent("approvelink", post.id, "post")))
        self.assertEqual(self.scheduler.jobs, [])

    async def test_no_retry_when_never_scheduled(self):
        ctx = self.context(**{"retry-on-approval": True})
        post = self.reddit.add(make_post())

        self.assertIsNone(await handle_mod_action(ctx, ModActionEvent("approvelink", post.id, "post")))

    async def test_no_retry_when_already_relayed(self):
        ctx = self.context(**{"retry-on-approval": True})
        post = self.reddit.add(make_post())
        await self.store.hset(post.id, {"scheduled": "true", "relayed": "true"})

        self.assertIsNone(await handle_mod_action(ctx, ModActionEvent("approvelink", post.id, "post")))

    async def test_other_actions_ignored(self):
        ctx = self.context(**{"retry-on-approval": True})
        post = self.reddit.add(make_post())
        await self.store.hset(post.id, {"scheduled": "true"})

        self.assertIsNone(await handle_mod_action(ctx, ModActionEvent("removelink", post.id, "post")))
        self.assertIsNone(await handle_mod_action(ctx, ModActionEvent("approveuser", post.id, "user")))
        self.assertEqual(self.scheduler.jobs, [])


class TestFrontPage(CoordinatorTestCase):
    async def test_new_post_schedules_front_page_check(self):
        ctx = self.context(**{"relay-mode": ["front-page"]})
        post = self.reddit.add(make_post())
        before = datetime.now(timezone.utc)

        await handle_item_created(ctx, ItemCreatedEvent(item=post, author_name="alice"))

        [job] = self.scheduler.jobs
        self.assertEqual(job["name"], FRONT_PAGE_CHECK_SCHEDULED_JOB)
        self.assertGreaterEqual(job["run_at"], before + timedelta(minutes=MINIMUM_DELAY))
        self.assertEqual(self.webhook.calls, [])
        self.assertIsNone(self.flag(post.id, "scheduled"))

    async def test_comments_ignored_in_front_page_mode(self):
        ctx = self.context(**{"relay-mode": ["front-page"]})
        comment = self.reddit.add(make_comment())

        self.assertIsNone(await handle_item_created(ctx, ItemCreatedEvent(item=comment, author_name="bob")))
        self.assertEqual(self.scheduler.jobs, [])

    async def test_check_schedules_qualifying_posts(self):
        ctx = self.context(**{
            "relay-mode": ["front-page"],
            "front-page-listing": ["day"],
            "front-page-min-score": 10,
            "ignore-post-flair": "meta",
            "ignore-removed": True,
        })
        good = make_post("t3_good", score=50)
        low = make_post("t3_low", score=3)
        done = make_post("t3_done", score=99)
        meta = make_post("t3_meta", score=99, flair=PostFlair(text="Meta"))
        removed = make_post("t3_gone", score=99, removed=True)
        await self.store.hset(done.id, {"relayed": "true"})
        self.reddit.front_page = [good, low, done, meta, removed]

        job_ids = await run_front_page_check(ctx, {})

        self.assertEqual(self.reddit.front_page_requests, [("day", FRONT_PAGE_LIMIT)])
        self.assertEqual(len(job_ids), 1)
        [job] = self.scheduler.jobs
        self.assertEqual(job["data"]["itemId"], "t3_good")
        self.assertEqual(self.flag("t3_good", "scheduled"), "true")
        self.assertIsNone(self.flag("t3_low", "scheduled"))

    async def test_check_is_idempotent(self):
        """A post scheduled by one sweep is not scheduled again by the next."""
        ctx = self.context(**{"relay-mode": ["front-page"]})
        self.reddit.front_page = [make_post("t3_one", score=5)]

        await run_front_page_check(ctx, {})
        await run_front_page_check(ctx, {})

        self.assertEqual(len(self.scheduler.jobs), 1)


class TestResolvePostImages(unittest.TestCase):
    def test_counts(self):
        post = make_post(is_gallery=True, gallery_images=[f"https://i.redd.it/{n}.jpg" for n in range(4)])
        self.assertEqual(resolve_post_images(post, 0), [])
        self.assertEqual(resolve_post_images(post, 1), ["https://i.redd.it/0.jpg"])
        self.assertEqual(len(resolve_post_images(post, 3)), 3)

    def test_no_images(self):
        self.assertEqual(resolve_post_images(make_post(url="https://example.com"), 2), [])


if __name__ == "__main__":
    unittest.main()
