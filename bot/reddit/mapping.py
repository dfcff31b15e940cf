"""Mapping functions to convert Reddit API objects to relay items."""

import logging
from typing import Any, List, Optional

from asyncpraw.models import Comment as RedditComment
from asyncpraw.models import Submission

from relay.reddit.items import DELETED_AUTHOR, Comment, Post, PostFlair

logger = logging.getLogger(__name__)


def _author_name(thing: Any) -> str:
    # Deleted accounts come back without an author
    author = getattr(thing, "author", None)
    if author is None:
        return DELETED_AUTHOR
    return getattr(author, "name", None) or str(author)


def _moderation_fields(thing: Any) -> dict:
    return {
        "spam": bool(getattr(thing, "spam", False)),
        "removed": bool(getattr(thing, "removed", False)),
        "removed_by_category": getattr(thing, "removed_by_category", None),
        "banned_by": getattr(thing, "banned_by", None),
        "removal_reason": getattr(thing, "removal_reason", None),
    }


def _post_flair(submission: Submission) -> Optional[PostFlair]:
    text = getattr(submission, "link_flair_text", None)
    template_id = getattr(submission, "link_flair_template_id", None)
    if not text and not template_id:
        return None
    return PostFlair(
        text=text or "",
        background_color=getattr(submission, "link_flair_background_color", None) or "",
        template_id=template_id,
    )


def submission_to_post(submission: Submission) -> Post:
    """
    Convert an asyncpraw Submission object to a Post.

    Args:
        submission: The Reddit submission object from asyncpraw

    Returns:
        A Post keyed by the submission's fullname (t3_...)
    """
    return Post(
        id=submission.fullname,
        permalink=getattr(submission, "permalink", "") or "",
        author_name=_author_name(submission),
        author_flair_text=getattr(submission, "author_flair_text", None),
        author_flair_id=getattr(submission, "author_flair_template_id", None),
        title=getattr(submission, "title", "") or "",
        selftext=getattr(submission, "selftext", "") or "",
        url=getattr(submission, "url", "") or "",
        url_overridden_by_dest=getattr(submission, "url_overridden_by_dest", None),
        flair=_post_flair(submission),
        score=int(getattr(submission, "score", 0) or 0),
        is_self=bool(getattr(submission, "is_self", False)),
        is_gallery=bool(getattr(submission, "is_gallery", False)),
        preview=getattr(submission, "preview", None),
        media_metadata=getattr(submission, "media_metadata", None),
        gallery_data=getattr(submission, "gallery_data", None),
        **_moderation_fields(submission),
    )


def comment_to_item(comment: RedditComment) -> Comment:
    """
    Convert an asyncpraw Comment object to a Comment.

    Args:
        comment: The Reddit comment object from asyncpraw

    Returns:
        A Comment keyed by the comment's fullname (t1_...)
    """
    return Comment(
        id=comment.fullname,
        permalink=getattr(comment, "permalink", "") or "",
        author_name=_author_name(comment),
        author_flair_text=getattr(comment, "author_flair_text", None),
        author_flair_id=getattr(comment, "author_flair_template_id", None),
        body=getattr(comment, "body", "") or "",
        parent_id=getattr(comment, "parent_id", None),
        link_id=getattr(comment, "link_id", None),
        **_moderation_fields(comment),
    )


def submissions_to_posts(submissions: List[Submission]) -> List[Post]:
    """Convert a list of submissions, skipping any that fail to map."""
    posts = []

    for submission in submissions:
        try:
            posts.append(submission_to_post(submission))
        except Exception as e:
            logger.warning(f"Failed to convert submission {getattr(submission, 'id', '?')}: {e}")

    return posts
