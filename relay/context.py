"""
Host interfaces the relay runs against.

Every external call the relay makes (settings, state store, Reddit lookups,
scheduling, webhook delivery) goes through a RelayContext, so the core can be
driven by the bundled bot or by fakes in tests.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, TypeVar

from .config import RelaySettings, SettingsError
from .reddit.items import Comment, ContentItem, FlairTemplate, Item, Post

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SettingsSource(Protocol):
    """Supplies the raw option mapping, read fresh on every invocation."""

    async def get_all(self) -> Mapping[str, Any]: ...


class StateStore(Protocol):
    """Hash-per-key store holding the relay flags of each item."""

    async def hget(self, key: str, field: str) -> Optional[str]: ...

    async def hset(self, key: str, mapping: Dict[str, str]) -> None: ...


class RedditAPI(Protocol):
    """Reddit lookups the relay needs for its subreddit."""

    async def get_current_subreddit_name(self) -> str: ...

    async def get_post_by_id(self, post_id: str) -> Post: ...

    async def get_comment_by_id(self, comment_id: str) -> Comment: ...

    async def get_user_flair_templates(self) -> List[FlairTemplate]: ...

    async def is_moderator(self, username: str) -> bool: ...

    async def is_approved_user(self, username: str) -> bool: ...

    async def get_author_name(self, item: ContentItem) -> Optional[str]: ...

    async def get_front_page_posts(self, listing: str, limit: int) -> List[Post]: ...


class Scheduler(Protocol):
    """Registers a named job to run at a later time with a JSON-serialisable payload."""

    async def run_job(self, name: str, data: Dict[str, Any], run_at: datetime) -> str: ...


@dataclass(frozen=True)
class WebhookResponse:
    """Outcome of a webhook POST. status_code is 0 when the request never completed."""
    status_code: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class WebhookTransport(Protocol):
    """Performs a single JSON POST to a webhook URL."""

    async def post(self, webhook_url: str, payload: Dict[str, Any]) -> WebhookResponse: ...


@dataclass
class RelayContext:
    """Bundle of host services passed to every relay operation."""
    settings: SettingsSource
    store: StateStore
    reddit: RedditAPI
    scheduler: Scheduler
    webhook: WebhookTransport

    async def load_settings(self) -> RelaySettings:
        """
        Read and validate the current settings.

        Raises:
            SettingsError: If the settings cannot be parsed or are invalid
        """
        settings = RelaySettings.from_mapping(await self.settings.get_all())
        errors = settings.validate()
        if errors:
            raise SettingsError(errors)
        return settings

    async def get_item(self, item_id: str, item_type: str) -> Item:
        if item_type == "post":
            return await self.reddit.get_post_by_id(item_id)
        return await self.reddit.get_comment_by_id(item_id)


@dataclass(frozen=True)
class ItemCreatedEvent:
    """A new post or comment. approved is set when the host re-delivers an item after approval."""
    item: Item
    author_name: str = ""
    approved: bool = False


@dataclass(frozen=True)
class ModActionEvent:
    """A moderator action on a post or comment."""
    action: str
    target_id: str
    target_type: str
    parent_id: Optional[str] = None


async def lookup_or_default(what: str, fn: Callable[[], Awaitable[T]], default: T) -> T:
    """
    Run a non-essential lookup, substituting a default on failure.

    Any exception is logged at WARNING and the default returned; the caller
    carries on as if the lookup had produced nothing.

    Args:
        what: Description used in the log line
        fn: Zero-argument coroutine function performing the lookup
        default: Value returned when the lookup raises

    Returns:
        The lookup result, or default
    """
    try:
        return await fn()
    except Exception as e:
        logger.warning(f"Lookup failed ({what}): {e}")
        return default
