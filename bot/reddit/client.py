"""Reddit API client wrapper for the watched subreddit."""

import logging
from typing import List, Optional

import asyncpraw
from asyncpraw.models import Subreddit
from asyncprawcore.exceptions import Forbidden, NotFound

from relay.reddit.items import Comment, ContentItem, DELETED_AUTHOR, FlairTemplate, Post

from ..config import RedditConfig
from .mapping import comment_to_item, submission_to_post, submissions_to_posts

logger = logging.getLogger(__name__)

POST_PREFIX = "t3_"
COMMENT_PREFIX = "t1_"


def strip_prefix(fullname: str, prefix: str) -> str:
    """Turn a fullname like t3_abc into the bare id asyncpraw expects."""
    if fullname.startswith(prefix):
        return fullname[len(prefix):]
    return fullname


class RedditClient:
    """Wrapper for the Reddit API client, scoped to a single subreddit."""

    def __init__(self, config: RedditConfig):
        """
        Initialize the Reddit client with configuration.

        Args:
            config: Reddit credentials and the subreddit to watch
        """
        self.config = config
        self._reddit: Optional[asyncpraw.Reddit] = None
        self._subreddit: Optional[Subreddit] = None

    async def initialize(self) -> asyncpraw.Reddit:
        """
        Initialize and authenticate the Reddit client.

        Returns:
            Authenticated asyncpraw.Reddit instance

        Raises:
            ValueError: If credentials are missing or authentication fails
        """
        if not self._reddit:
            logger.info("Initializing Reddit client")

            if not all([self.config.client_id, self.config.client_secret]):
                raise ValueError("Missing Reddit API credentials")

            self._reddit = asyncpraw.Reddit(
                client_id=self.config.client_id,
                client_secret=self.config.client_secret,
                username=self.config.username or None,
                password=self.config.password or None,
                user_agent=self.config.user_agent,
            )

            if self.config.username:
                try:
                    me = await self._reddit.user.me()
                    logger.info(f"Authenticated as {me.name}")
                except Exception as e:
                    await self._reddit.close()
                    self._reddit = None
                    logger.error(f"Authentication failed: {e}")
                    raise ValueError(f"Reddit authentication failed: {e}") from e

        return self._reddit

    @property
    def reddit(self) -> asyncpraw.Reddit:
        if not self._reddit:
            raise ValueError("Reddit client not initialized")
        return self._reddit

    async def get_subreddit(self) -> Subreddit:
        """Get the watched subreddit, fetched once and cached."""
        if self._subreddit is None:
            logger.debug(f"Fetching subreddit: {self.config.subreddit}")
            self._subreddit = await self.reddit.subreddit(self.config.subreddit, fetch=True)
        return self._subreddit

    async def close(self) -> None:
        """Close the Reddit client and release resources."""
        if self._reddit:
            logger.info("Closing Reddit client")
            await self._reddit.close()
            self._reddit = None
            self._subreddit = None

    # ==================== Relay lookups ====================

    async def get_current_subreddit_name(self) -> str:
        subreddit = await self.get_subreddit()
        return subreddit.display_name

    async def get_post_by_id(self, post_id: str) -> Post:
        submission = await self.reddit.submission(id=strip_prefix(post_id, POST_PREFIX))
        return submission_to_post(submission)

    async def get_comment_by_id(self, comment_id: str) -> Comment:
        comment = await self.reddit.comment(id=strip_prefix(comment_id, COMMENT_PREFIX))
        return comment_to_item(comment)

    async def get_user_flair_templates(self) -> List[FlairTemplate]:
        subreddit = await self.get_subreddit()
        templates = []
        async for template in subreddit.flair.templates:
            templates.append(FlairTemplate(id=template["id"], text=template.get("text") or ""))
        return templates

    async def is_moderator(self, username: str) -> bool:
        if not username or username == DELETED_AUTHOR:
            return False
        subreddit = await self.get_subreddit()
        moderators = await subreddit.moderator(redditor=username)
        return len(moderators) > 0

    async def is_approved_user(self, username: str) -> bool:
        if not username or username == DELETED_AUTHOR:
            return False
        subreddit = await self.get_subreddit()
        async for _ in subreddit.contributor(redditor=username):
            return True
        return False

    async def get_author_name(self, item: ContentItem) -> Optional[str]:
        """
        The author's name as seen from outside, None when the account cannot be loaded.

        Shadowbanned and suspended accounts return 404 or come back flagged
        suspended, so both map to None.
        """
        if not item.author_name or item.author_name == DELETED_AUTHOR:
            return None
        try:
            redditor = await self.reddit.redditor(item.author_name, fetch=True)
        except (NotFound, Forbidden):
            return None
        if getattr(redditor, "is_suspended", False):
            return None
        return redditor.name

    async def get_front_page_posts(self, listing: str, limit: int) -> List[Post]:
        """Posts currently in the subreddit's hot listing or top listing for a time window."""
        subreddit = await self.get_subreddit()
        if listing == "hot":
            generator = subreddit.hot(limit=limit)
        else:
            generator = subreddit.top(time_filter=listing, limit=limit)

        submissions = [submission async for submission in generator]
        return submissions_to_posts(submissions)
