"""
Relay decision engine.

Exclusion filters are vetoes: the first one that matches rejects the item.
Inclusion filters each contribute one check when configured, and the item is
relayed if any of them passes. Filters whose setting is empty contribute
nothing, so with no inclusion filters configured every item that survives
the content-type gate and the exclusions is relayed.
"""

import logging
from typing import Dict, List, Optional

from .config import ContentType, RelaySettings
from .context import ItemCreatedEvent, RelayContext, lookup_or_default
from .reddit.items import DELETED_AUTHOR, Comment, ContentItem, post_flair_text

logger = logging.getLogger(__name__)

MODERATORS_TOKEN = "moderators"


class _Lookups:
    """Per-invocation cache of the Reddit lookups the filters share."""

    def __init__(self, ctx: RelayContext, item: ContentItem, author_name: str):
        self.ctx = ctx
        self.item = item
        self.author_name = author_name
        self._subreddit_name: Optional[str] = None
        self._flair_map: Optional[Dict[str, str]] = None
        self._is_moderator: Optional[bool] = None
        self._is_approved: Optional[bool] = None

    async def subreddit_name(self) -> str:
        if self._subreddit_name is None:
            self._subreddit_name = await lookup_or_default(
                "current subreddit", self.ctx.reddit.get_current_subreddit_name, ""
            )
        return self._subreddit_name

    async def is_moderator(self) -> bool:
        if self._is_moderator is None:
            self._is_moderator = await lookup_or_default(
                f"moderator status of u/{self.author_name}",
                lambda: self.ctx.reddit.is_moderator(self.author_name),
                False,
            )
        return self._is_moderator

    async def is_approved(self) -> bool:
        if self._is_approved is None:
            self._is_approved = await lookup_or_default(
                f"approved status of u/{self.author_name}",
                lambda: self.ctx.reddit.is_approved_user(self.author_name),
                False,
            )
        return self._is_approved

    async def user_flair_text(self) -> Optional[str]:
        """Author flair text, resolving a bare flair template id through the subreddit's templates."""
        if self.item.author_flair_text:
            return self.item.author_flair_text
        if not self.item.author_flair_id:
            return None

        if self._flair_map is None:
            templates = await lookup_or_default(
                "user flair templates", self.ctx.reddit.get_user_flair_templates, []
            )
            self._flair_map = {t.id: t.text for t in templates}
        return self._flair_map.get(self.item.author_flair_id) or None

    async def is_shadow_banned(self) -> bool:
        name = await lookup_or_default(
            f"author of {self.item.id}",
            lambda: self.ctx.reddit.get_author_name(self.item),
            None,
        )
        return not name or name == DELETED_AUTHOR

    async def has_parent_comment(self) -> bool:
        """True when a comment replies to another comment that can still be fetched."""
        item = self.item
        if not isinstance(item, Comment) or item.is_top_level:
            return False
        parent = await lookup_or_default(
            f"parent comment {item.parent_id}",
            lambda: self.ctx.reddit.get_comment_by_id(item.parent_id),
            None,
        )
        return parent is not None


def matches_content_type(content_type: ContentType, item_type: str) -> bool:
    return content_type == ContentType.ALL or content_type.value == item_type


async def _excluded(settings: RelaySettings, lookups: _Lookups) -> Optional[str]:
    """Return the name of the first exclusion filter the item hits, or None."""
    item = lookups.item
    author = lookups.author_name.lower()

    if settings.ignore_usernames and author in settings.ignore_usernames:
        return "ignored username"

    if settings.ignore_user_flairs:
        flair = await lookups.user_flair_text()
        if flair and flair.lower() in settings.ignore_user_flairs:
            return "ignored user flair"

    if settings.ignore_post_flairs:
        flair = post_flair_text(item)
        if flair and flair.lower() in settings.ignore_post_flairs:
            return "ignored post flair"

    if settings.ignore_shadowbanned:
        if not await lookups.is_moderator() and await lookups.is_shadow_banned():
            return "author may be shadowbanned"

    if settings.relay_replies and isinstance(item, Comment):
        if not await lookups.has_parent_comment():
            return "not a reply to a comment"

    return None


async def _inclusion_checks(settings: RelaySettings, lookups: _Lookups) -> List[bool]:
    """One boolean per configured inclusion filter."""
    item = lookups.item
    author = lookups.author_name.lower()
    checks = []

    if settings.subreddit_only:
        subreddit = (await lookups.subreddit_name()).lower()
        checks.append(subreddit in settings.subreddit_only)

    if settings.specific_usernames:
        matched = author in settings.specific_usernames
        if not matched and MODERATORS_TOKEN in settings.specific_usernames:
            matched = await lookups.is_moderator()
        checks.append(matched)

    if settings.user_flairs:
        flair = await lookups.user_flair_text()
        checks.append(bool(flair) and flair.lower() in settings.user_flairs)

    if settings.post_flairs and item.item_type == "post":
        flair = post_flair_text(item)
        checks.append(bool(flair) and flair.lower() in settings.post_flairs)

    if settings.approved_users_only:
        checks.append(await lookups.is_approved())

    if settings.moderators_only:
        checks.append(await lookups.is_moderator())

    return checks


async def should_relay(event: ItemCreatedEvent, settings: RelaySettings, ctx: RelayContext) -> bool:
    """
    Decide whether a newly created item should be relayed.

    Args:
        event: The creation event carrying the item and its author
        settings: Settings resolved for this invocation
        ctx: Host services used for subreddit, flair and user lookups

    Returns:
        True if the item passes every exclusion and at least one configured
        inclusion filter (or none are configured)
    """
    item = event.item
    author_name = event.author_name or item.author_name or ""
    logger.info(f"Checking if we should relay {item.item_type} {item.unique_id}")

    if not matches_content_type(settings.content_type, item.item_type):
        logger.info(f"Not relaying {item.unique_id}: content type is {settings.content_type.value}")
        return False

    lookups = _Lookups(ctx, item, author_name)

    reason = await _excluded(settings, lookups)
    if reason:
        logger.info(f"Not relaying {item.unique_id}: {reason}")
        return False

    checks = await _inclusion_checks(settings, lookups)
    decision = any(checks) if checks else True

    logger.info(f"Should relay {item.unique_id}: {decision} (inclusion checks: {checks})")
    return decision
