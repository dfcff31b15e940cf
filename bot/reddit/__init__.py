"""Reddit adapter for the relay bot."""

from .client import RedditClient
from .mapping import comment_to_item, submission_to_post

__all__ = [
    "RedditClient",
    "comment_to_item",
    "submission_to_post",
]
