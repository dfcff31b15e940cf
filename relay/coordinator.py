"""
Relay coordination: event triggers, delayed delivery and webhook dispatch.

Per item the flow is New -> filtered out, or New -> scheduled -> relayed.
A moderator approval may schedule the item again while it has not been
relayed yet. Flags live in the host state store under the item id:

- scheduled: a relay was sent or registered for the item
- relayed: the webhook POST was attempted (terminal)
- shouldRelay: the creation event passed the filters

Checks against these flags are plain reads followed by writes, so two
concurrent triggers for the same item can both relay it.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .config import MINIMUM_DELAY, RelayMode, RelaySettings
from .context import ItemCreatedEvent, ModActionEvent, RelayContext, lookup_or_default
from .decision import should_relay
from .discord.message_builder import build_relay_payload
from .reddit.image_resolver import resolve_image_url, resolve_image_urls
from .reddit.items import Comment, ContentItem, Item, Post, is_removed, resolve_author_name

logger = logging.getLogger(__name__)

RELAY_SCHEDULED_JOB = "relay"
FRONT_PAGE_CHECK_SCHEDULED_JOB = "check-front-page"

FRONT_PAGE_LIMIT = 50
SAFETY_CHECK_ATTEMPTS = 10
SAFETY_CHECK_INTERVAL = 2.0  # seconds

APPROVE_ACTIONS = frozenset({"approvelink", "approvecomment", "approve"})

TRUE = "true"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _flag(ctx: RelayContext, item_id: str, field: str) -> bool:
    return (await ctx.store.hget(item_id, field)) == TRUE


# ==================== Message composition ====================

def resolve_post_images(post: Post, image_embed_count: int) -> List[str]:
    """Image URLs to embed for a post, honouring the configured maximum."""
    if image_embed_count == 1:
        single = resolve_image_url(post)
        return [single] if single else []
    if image_embed_count > 1:
        return resolve_image_urls(post, limit=image_embed_count) or []
    return []


async def fetch_parent_post_title(ctx: RelayContext, comment: Comment) -> str:
    """Title of the post a comment belongs to, empty if it cannot be fetched."""
    if not comment.link_id:
        return ""

    async def _title() -> str:
        post = await ctx.reddit.get_post_by_id(comment.link_id)
        return (post.title if post else "") or ""

    return await lookup_or_default(f"parent post {comment.link_id}", _title, "")


async def compose_relay_payload(
    ctx: RelayContext,
    settings: RelaySettings,
    item: Item,
    author_name: str,
) -> Dict[str, Any]:
    """
    Gather what the message needs from Reddit and build the webhook payload.

    Args:
        ctx: Host services
        settings: Settings for this invocation
        item: Post or comment to relay
        author_name: Display name of the author

    Returns:
        Webhook payload
    """
    subreddit_name = await lookup_or_default(
        "current subreddit", ctx.reddit.get_current_subreddit_name, ""
    )

    parent_post_title = ""
    image_urls: List[str] = []
    if isinstance(item, Comment):
        parent_post_title = await fetch_parent_post_title(ctx, item)
    else:
        image_urls = resolve_post_images(item, settings.image_embed_count)
        logger.info(f"Image URLs for {item.unique_id}: {image_urls}")

    return build_relay_payload(
        item,
        author_name,
        settings,
        subreddit_name,
        parent_post_title=parent_post_title,
        image_urls=image_urls,
    )


# ==================== Delivery ====================

async def relay(ctx: RelayContext, item: ContentItem, webhook_url: str, payload: Dict[str, Any]) -> None:
    """
    POST the payload and mark the item relayed.

    The item is marked relayed whatever the HTTP outcome; failed deliveries
    are logged and not retried.
    """
    response = await ctx.webhook.post(webhook_url, payload)
    if response.ok:
        logger.info(f"Webhook response for {item.unique_id}: {response.status_code} {response.text}")
    else:
        logger.error(f"Webhook delivery failed for {item.unique_id}: {response.status_code} {response.text}")

    await ctx.store.hset(item.id, {"relayed": TRUE})


async def register_relay_job(
    ctx: RelayContext,
    item: ContentItem,
    webhook_url: str,
    payload: Dict[str, Any],
    run_at: datetime,
) -> str:
    """Register a deferred relay carrying the pre-built payload."""
    return await ctx.scheduler.run_job(
        RELAY_SCHEDULED_JOB,
        {
            "data": payload,
            "itemType": item.item_type,
            "itemId": item.id,
            "uniqueId": item.unique_id,
            "webhookUrl": webhook_url,
        },
        run_at,
    )


async def schedule_relay(
    ctx: RelayContext,
    settings: RelaySettings,
    item: Item,
    author_name: str,
    approval_retry: bool = False,
    delay: Optional[int] = None,
) -> Optional[str]:
    """
    Relay an item now or register one deferred relay for it.

    Args:
        ctx: Host services
        settings: Settings for this invocation
        item: Post or comment that passed the filters
        author_name: Display name of the author
        approval_retry: Use the after-approval delay for the item type
        delay: Explicit delay in minutes, overriding the settings

    Returns:
        The scheduler job id when a deferred relay was registered, else None
    """
    author_name = resolve_author_name(item, author_name)
    if delay is None:
        delay = settings.delay_for(item.item_type, approval_retry)

    payload = await compose_relay_payload(ctx, settings, item, author_name)

    job_id = None
    if delay == 0:
        if settings.ignore_removed and is_removed(item):
            logger.info(f"Not relaying due to item removed: {item.unique_id}")
            return None
        logger.info(f"Relaying {item.unique_id}")
        await relay(ctx, item, settings.webhook_url, payload)
    else:
        if await _flag(ctx, item.id, "scheduled"):
            logger.info(f"Relay job already scheduled for {item.unique_id}")
            return None

        run_at = _utcnow() + timedelta(minutes=delay)
        logger.info(f"Scheduling relay ({item.unique_id}) for {delay} minutes from now ({run_at.isoformat()})")
        job_id = await register_relay_job(ctx, item, settings.webhook_url, payload, run_at)

    await ctx.store.hset(item.id, {"scheduled": TRUE})
    return job_id


async def wait_for_safety_checks(
    ctx: RelayContext,
    item: Item,
    attempts: Optional[int] = None,
    interval: Optional[float] = None,
) -> Item:
    """
    Give Reddit's automod/safety filters a chance to act on a new item.

    Re-fetches the item until it is no longer flagged as removed or the
    attempts run out, and returns the latest copy.
    """
    attempts = SAFETY_CHECK_ATTEMPTS if attempts is None else attempts
    interval = SAFETY_CHECK_INTERVAL if interval is None else interval

    current = item
    for attempt in range(attempts):
        try:
            current = await ctx.get_item(item.id, item.item_type)
        except Exception as e:
            logger.warning(f"Error waiting for safety checks on {item.unique_id}: {e}")
            return current

        if not is_removed(current):
            return current

        if attempt < attempts - 1:
            await asyncio.sleep(interval)

    logger.info(f"{item.unique_id} still flagged after {attempts} safety checks")
    return current


# ==================== Triggers ====================

async def handle_item_created(ctx: RelayContext, event: ItemCreatedEvent) -> Optional[str]:
    """
    Handle a new post or comment.

    Returns:
        The id of any job registered for the item, else None
    """
    item = event.item
    logger.info(f"Received {item.item_type} create event {item.unique_id} by u/{event.author_name}")

    settings = await ctx.load_settings()

    if not await should_relay(event, settings, ctx):
        logger.info(f"Not relaying {item.unique_id} due to relay rules")
        return None
    await ctx.store.hset(item.id, {"shouldRelay": TRUE})

    if settings.relay_mode == RelayMode.FRONT_PAGE:
        if item.item_type != "post":
            logger.info("Relay mode is 'front-page'; comments are not relayed in this mode")
            return None
        logger.info("Relay mode is 'front-page', scheduling a front page check")
        return await ctx.scheduler.run_job(
            FRONT_PAGE_CHECK_SCHEDULED_JOB,
            {},
            _utcnow() + timedelta(minutes=MINIMUM_DELAY),
        )

    if not settings.skip_safety_checks:
        logger.info(f"Waiting for safety checks on {item.unique_id}")
        item = await wait_for_safety_checks(ctx, item)

    return await schedule_relay(ctx, settings, item, event.author_name, approval_retry=event.approved)


async def handle_mod_action(ctx: RelayContext, event: ModActionEvent) -> Optional[str]:
    """
    Schedule a second relay attempt when a held item is approved.

    Only items that were scheduled but never relayed qualify. The delay is
    the after-approval delay, with 0 raised to MINIMUM_DELAY.

    Returns:
        The id of the registered job, else None
    """
    logger.info(f"Received mod action {event.action} on {event.target_type} {event.target_id}")

    settings = await ctx.load_settings()
    if not settings.retry_on_approval:
        logger.debug("Retry-on-approval is disabled, ignoring mod action")
        return None

    if event.target_type not in ("post", "comment"):
        logger.debug("Mod action target is not a post or comment, ignoring")
        return None

    if event.action not in APPROVE_ACTIONS:
        return None

    item_id = event.target_id
    unique_id = item_id if event.target_type == "post" else f"{event.parent_id or 'unknown'}/{item_id}"

    if not await _flag(ctx, item_id, "scheduled"):
        logger.info(f"No scheduled job found for {unique_id}, not scheduling retry")
        return None

    if await _flag(ctx, item_id, "relayed"):
        logger.info(f"{unique_id} has already been relayed, not scheduling retry")
        return None

    delay = settings.approval_delay_for(event.target_type)
    item = await ctx.get_item(item_id, event.target_type)
    payload = await compose_relay_payload(ctx, settings, item, resolve_author_name(item))

    run_at = _utcnow() + timedelta(minutes=delay)
    logger.info(f"Scheduling retry relay for {unique_id} due to approval, will run at {run_at.isoformat()}")
    return await register_relay_job(ctx, item, settings.webhook_url, payload, run_at)


# ==================== Scheduled jobs ====================

async def run_relay_job(ctx: RelayContext, data: Dict[str, Any]) -> bool:
    """
    Deliver a deferred relay.

    Returns:
        True if the webhook was called
    """
    settings = await ctx.load_settings()
    item_type = data["itemType"]
    unique_id = data.get("uniqueId") or data["itemId"]

    item = await ctx.get_item(data["itemId"], item_type)

    if settings.ignore_removed and is_removed(item):
        logger.info(f"Not relaying due to item removed: {unique_id}")
        return False

    payload = data.get("data")
    if not payload:
        payload = await compose_relay_payload(ctx, settings, item, resolve_author_name(item))

    logger.info(f"Relaying event {unique_id}")
    await relay(ctx, item, data.get("webhookUrl") or settings.webhook_url, payload)
    return True


async def run_front_page_check(ctx: RelayContext, data: Dict[str, Any]) -> List[str]:
    """
    Schedule an immediate relay for every qualifying front page post not yet handled.

    Returns:
        Ids of the registered relay jobs
    """
    settings = await ctx.load_settings()
    posts = await ctx.reddit.get_front_page_posts(settings.front_page_listing.value, FRONT_PAGE_LIMIT)

    job_ids = []
    for post in posts:
        if await _flag(ctx, post.id, "relayed") or await _flag(ctx, post.id, "scheduled"):
            continue

        if post.score < settings.front_page_min_score:
            logger.debug(f"Post {post.id} score {post.score} below {settings.front_page_min_score}")
            continue

        event = ItemCreatedEvent(item=post, author_name=post.author_name)
        if not await should_relay(event, settings, ctx):
            continue

        if settings.ignore_removed and is_removed(post):
            logger.info(f"Not relaying due to item removed: {post.id}")
            continue

        logger.info(f"Post {post.id} is on the front page and has not been relayed, scheduling relay")
        payload = await compose_relay_payload(ctx, settings, post, resolve_author_name(post))
        job_ids.append(await register_relay_job(ctx, post, settings.webhook_url, payload, _utcnow()))
        await ctx.store.hset(post.id, {"scheduled": TRUE})

    return job_ids


SCHEDULED_JOBS = {
    RELAY_SCHEDULED_JOB: run_relay_job,
    FRONT_PAGE_CHECK_SCHEDULED_JOB: run_front_page_check,
}
