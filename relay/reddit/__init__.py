"""
Reddit-side helpers: content item types and image URL resolution.
"""

from .items import (
    Post,
    Comment,
    ContentItem,
    PostFlair,
    FlairTemplate,
    is_removed,
    resolve_author_name,
)
from .image_resolver import (
    resolve_image_url,
    resolve_image_urls,
    looks_like_image,
    decode_url,
)

__all__ = [
    # Items
    'Post',
    'Comment',
    'ContentItem',
    'PostFlair',
    'FlairTemplate',
    'is_removed',
    'resolve_author_name',
    # Images
    'resolve_image_url',
    'resolve_image_urls',
    'looks_like_image',
    'decode_url',
]
