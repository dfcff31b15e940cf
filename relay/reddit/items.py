"""
Content items as seen by the relay.

Posts and comments are separate dataclasses sharing a ContentItem base, each
carrying only the fields that apply to it. Items are snapshots: the relay
inspects them and never mutates them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


REDDIT_BASE_URL = "https://www.reddit.com"
DELETED_AUTHOR = "[deleted]"


@dataclass(frozen=True)
class PostFlair:
    """Post flair: label text plus optional styling."""
    text: str = ""
    background_color: str = ""
    template_id: Optional[str] = None


@dataclass(frozen=True)
class FlairTemplate:
    """A user flair template defined by the subreddit."""
    id: str
    text: str = ""


@dataclass(frozen=True)
class ContentItem:
    """Fields shared by posts and comments."""
    id: str
    permalink: str = ""
    author_name: str = ""
    author_flair_text: Optional[str] = None
    author_flair_id: Optional[str] = None

    # Moderation flags
    spam: bool = False
    removed: bool = False
    removed_by_category: Optional[str] = None
    banned_by: Any = None
    removal_reason: Optional[str] = None

    item_type = "item"

    @property
    def reddit_url(self) -> str:
        return f"{REDDIT_BASE_URL}{self.permalink}"

    @property
    def unique_id(self) -> str:
        return self.id


@dataclass(frozen=True)
class Post(ContentItem):
    """A submission."""
    title: str = ""
    selftext: str = ""
    url: str = ""
    url_overridden_by_dest: Optional[str] = None
    flair: Optional[PostFlair] = None
    score: int = 0
    is_self: bool = False
    is_gallery: bool = False

    # Raw media structures, as returned by the Reddit API
    preview: Optional[Dict[str, Any]] = None
    media_metadata: Optional[Dict[str, Any]] = None
    gallery_data: Optional[Dict[str, Any]] = None

    # Pre-resolved media lists some hosts provide
    gallery_images: List[str] = field(default_factory=list)
    media_urls: List[str] = field(default_factory=list)

    item_type = "post"

    def media_fields(self) -> Dict[str, Any]:
        """Return the fields the image resolver reads, keyed like the Reddit JSON."""
        return {
            "url": self.url,
            "url_overridden_by_dest": self.url_overridden_by_dest,
            "selftext": self.selftext,
            "is_self": self.is_self,
            "is_gallery": self.is_gallery,
            "preview": self.preview,
            "media_metadata": self.media_metadata,
            "gallery_data": self.gallery_data,
            "gallery_images": list(self.gallery_images),
            "media_urls": list(self.media_urls),
        }


@dataclass(frozen=True)
class Comment(ContentItem):
    """A comment. parent_id is a fullname (t1_ for comments, t3_ for the post)."""
    body: str = ""
    parent_id: Optional[str] = None
    link_id: Optional[str] = None

    item_type = "comment"

    @property
    def unique_id(self) -> str:
        return f"{self.parent_id or 'unknown'}/{self.id}"

    @property
    def is_top_level(self) -> bool:
        """True when the comment replies to the post rather than to another comment."""
        return not self.parent_id or self.parent_id.startswith("t3_")


Item = Union[Post, Comment]


def is_removed(item: ContentItem) -> bool:
    """Whether the item has been removed, marked spam, or filtered by automod/safety checks."""
    banned_by = item.banned_by
    return bool(
        item.spam
        or item.removed
        or item.removed_by_category == "automod_filtered"
        or banned_by == "AutoModerator"
        or banned_by is True
        or str(banned_by).lower() == "true"
        or item.removal_reason == "legal"
    )


def resolve_author_name(item: ContentItem, author_name: Optional[str] = None) -> str:
    """Best display name for the item's author."""
    return author_name or item.author_name or "unknown"


def post_flair_text(item: ContentItem) -> Optional[str]:
    """Flair text of a post, None for comments and unflaired posts."""
    if isinstance(item, Post) and item.flair and item.flair.text:
        return item.flair.text
    return None
