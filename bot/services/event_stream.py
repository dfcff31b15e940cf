import asyncio
import logging
from typing import Awaitable, Callable, Optional

from asyncprawcore.exceptions import Forbidden

from relay.context import ItemCreatedEvent, ModActionEvent

from ..reddit.client import RedditClient
from ..reddit.mapping import comment_to_item, submission_to_post

logger = logging.getLogger(__name__)

ItemHandler = Callable[[ItemCreatedEvent], Awaitable[None]]
ModActionHandler = Callable[[ModActionEvent], Awaitable[None]]

RESTART_DELAY = 10.0  # seconds

TARGET_TYPES = {
    "t3": "post",
    "t1": "comment",
}


def mod_action_from_log(entry) -> Optional[ModActionEvent]:
    """Build a ModActionEvent from a mod log entry, None if it does not target a post or comment."""
    target = getattr(entry, "target_fullname", None) or ""
    prefix, _, _ = target.partition("_")
    target_type = TARGET_TYPES.get(prefix)
    if target_type is None:
        return None
    return ModActionEvent(
        action=entry.action,
        target_id=target,
        target_type=target_type,
    )


class EventStream:
    """Streams new posts, new comments and mod log entries from the watched subreddit."""

    def __init__(
        self,
        reddit: RedditClient,
        on_item: ItemHandler,
        on_mod_action: ModActionHandler,
        restart_delay: float = RESTART_DELAY,
    ):
        self.reddit = reddit
        self.on_item = on_item
        self.on_mod_action = on_mod_action
        self.restart_delay = restart_delay
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start one background task per stream."""
        self._tasks = [
            asyncio.create_task(self._supervise("submissions", self._stream_submissions)),
            asyncio.create_task(self._supervise("comments", self._stream_comments)),
            asyncio.create_task(self._supervise("modlog", self._stream_modlog)),
        ]
        logger.info("Event streams started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Event streams stopped")

    async def _supervise(self, name: str, run: Callable[[], Awaitable[None]]) -> None:
        """Keep a stream running, restarting it after errors."""
        while True:
            try:
                await run()
                return
            except asyncio.CancelledError:
                raise
            except Forbidden:
                logger.warning(f"Not permitted to read the {name} stream, it will not be watched")
                return
            except Exception as e:
                logger.error(f"{name} stream failed: {e}; restarting in {self.restart_delay}s")
                await asyncio.sleep(self.restart_delay)

    async def _stream_submissions(self) -> None:
        subreddit = await self.reddit.get_subreddit()
        async for submission in subreddit.stream.submissions(skip_existing=True):
            post = submission_to_post(submission)
            await self.on_item(ItemCreatedEvent(item=post, author_name=post.author_name))

    async def _stream_comments(self) -> None:
        subreddit = await self.reddit.get_subreddit()
        async for reddit_comment in subreddit.stream.comments(skip_existing=True):
            comment = comment_to_item(reddit_comment)
            await self.on_item(ItemCreatedEvent(item=comment, author_name=comment.author_name))

    async def _stream_modlog(self) -> None:
        subreddit = await self.reddit.get_subreddit()
        async for entry in subreddit.mod.stream.log(skip_existing=True):
            event = mod_action_from_log(entry)
            if event is not None:
                await self.on_mod_action(event)
