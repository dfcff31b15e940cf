"""
Discord message building for the Reddit relay

Provides functions for turning a post or comment into the JSON body of a
Discord webhook message: a short content line plus rich embeds.
"""

import colorsys
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import discord

from ..config import DEFAULT_FLAIR_COLOR, RelaySettings
from ..reddit.items import REDDIT_BASE_URL, Comment, ContentItem, Post, post_flair_text


ELLIPSIS = "…"
LINK_MARKER = "\U0001F517"

TITLE_LIMIT = 256
POST_DESCRIPTION_LIMIT = 1024
COMMENT_DESCRIPTION_LIMIT = 2000

ALLOWED_MENTIONS = {"parse": ["roles", "users", "everyone"]}

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")
_IMAGE_MARKDOWN_RE = re.compile(r"!\[[^\]]*\]\([^)]+\)")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def truncate_text(text: Optional[str], max_length: int) -> str:
    """
    Truncate text to max_length characters.

    Text longer than the limit is cut to max_length - 1 characters and an
    ellipsis is appended, so the result is exactly max_length long.

    Args:
        text: Text to truncate (None is treated as empty)
        max_length: Maximum length of the result

    Returns:
        The text, truncated if necessary
    """
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length - 1] + ELLIPSIS


def render_template(template: str, variables: Dict[str, str]) -> str:
    """Substitute {name} placeholders. Unknown placeholders render as empty strings."""
    return _PLACEHOLDER_RE.sub(lambda m: variables.get(m.group(1)) or "", template)


def clean_selftext(text: Optional[str]) -> str:
    """Strip inline image markdown and collapse runs of blank lines."""
    text = _IMAGE_MARKDOWN_RE.sub("", text or "")
    text = _EXCESS_NEWLINES_RE.sub("\n\n", text)
    return text.strip()


def hex_to_color(value: Optional[str]) -> Optional[int]:
    """Convert a "#rrggbb" or "#rgb" colour to an integer, None if it is not a colour."""
    if not value:
        return None
    digits = value.strip().lstrip("#")
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    if len(digits) != 6:
        return None
    try:
        return int(digits, 16)
    except ValueError:
        return None


# No gray square emoji exists; the grey heart stands in for mid grays
GRAY_BLOCK = "\U0001FA76"


def color_block(color: int) -> str:
    """Pick the coloured square emoji closest to a colour."""
    r, g, b = ((color >> 16) & 0xFF) / 255, ((color >> 8) & 0xFF) / 255, (color & 0xFF) / 255
    hue, lightness, saturation = colorsys.rgb_to_hls(r, g, b)

    if saturation < 0.2 or lightness < 0.1 or lightness > 0.95:
        if lightness < 0.25:
            return "⬛"
        return "⬜" if lightness > 0.75 else GRAY_BLOCK

    degrees = hue * 360
    if degrees < 15 or degrees >= 345:
        return "\U0001F7E5"
    if degrees < 45:
        return "\U0001F7EB" if lightness < 0.35 else "\U0001F7E7"
    if degrees < 70:
        return "\U0001F7E8"
    if degrees < 170:
        return "\U0001F7E9"
    if degrees < 260:
        return "\U0001F7E6"
    return "\U0001F7EA"


def flair_accent(post: Post) -> int:
    """Embed colour taken from the post flair background, gray when unset."""
    background = post.flair.background_color if post.flair else None
    color = hex_to_color(background)
    if color is None:
        color = hex_to_color(DEFAULT_FLAIR_COLOR)
    return color


def author_profile_url(author_name: str) -> str:
    return f"{REDDIT_BASE_URL}/u/{author_name}"


def _link(url: str, suppress_embed: bool) -> str:
    # Discord does not unfurl links wrapped in angle brackets
    return f"<{url}>" if suppress_embed else url


def build_content_line(item: ContentItem, author_name: str, settings: RelaySettings) -> str:
    """
    Build the plain message line, e.g. "New [post](url) by [u/name](profile)!".

    Args:
        item: The post or comment being relayed
        author_name: Display name of the author
        settings: Relay settings controlling link suppression and role pings

    Returns:
        Message content
    """
    item_link = _link(item.reddit_url, settings.suppress_item_embed)
    message = f"New [{item.item_type}]({item_link})"

    if not settings.suppress_submitter:
        author_link = _link(author_profile_url(author_name), settings.suppress_author_embed)
        message += f" by [u/{author_name}]({author_link})"
    message += "!"

    if settings.ping_role and settings.ping_role_id:
        message += f"\n<@&{settings.ping_role_id}>"

    return message


def build_post_description(
    post: Post,
    author_name: str,
    settings: RelaySettings,
    subreddit_name: str,
) -> str:
    """Post embed description: the configured template, else the cleaned selftext."""
    template = settings.post_embed_template
    if template and template.strip():
        raw = render_template(template, {
            "title": post.title or "",
            "selftext": post.selftext or "",
            "url": post.reddit_url,
            "author": author_name,
            "subreddit": subreddit_name,
            "flair": post_flair_text(post) or "",
        })
        return truncate_text(raw, POST_DESCRIPTION_LIMIT)

    if post.selftext and post.selftext.strip():
        return truncate_text(clean_selftext(post.selftext), POST_DESCRIPTION_LIMIT)

    return ""


def build_comment_description(
    comment: Comment,
    author_name: str,
    settings: RelaySettings,
    subreddit_name: str,
    parent_post_title: str,
) -> str:
    """Comment embed description: the configured template, else the comment body."""
    template = settings.comment_embed_template
    if template and template.strip():
        raw = render_template(template, {
            "body": comment.body or "",
            "postTitle": parent_post_title,
            "url": comment.reddit_url,
            "author": author_name,
            "subreddit": subreddit_name,
        })
        return truncate_text(raw, COMMENT_DESCRIPTION_LIMIT)

    return truncate_text(comment.body, COMMENT_DESCRIPTION_LIMIT)


def build_embeds(
    item: ContentItem,
    author_name: str,
    settings: RelaySettings,
    subreddit_name: str,
    parent_post_title: str = "",
    image_urls: Sequence[str] = (),
    now: Optional[datetime] = None,
) -> List[discord.Embed]:
    """
    Build the embeds for an item.

    The first embed carries the title, description, author and first image.
    Each further image gets an image-only embed. Footer and timestamp go on
    the last embed so they render below every image.
    """
    image_urls = list(image_urls) if isinstance(item, Post) else []
    color = None

    if isinstance(item, Post):
        title = truncate_text(item.title, TITLE_LIMIT)
        description = build_post_description(item, author_name, settings, subreddit_name)
        if not description and item.url and not image_urls:
            description = f"{LINK_MARKER} {item.url}"
        if settings.flair_color_accent:
            color = flair_accent(item)
            description = f"{color_block(color)} {description}".rstrip()
    else:
        title = truncate_text(f"New comment on: {parent_post_title}", TITLE_LIMIT)
        description = build_comment_description(
            item, author_name, settings, subreddit_name, parent_post_title
        )

    main = discord.Embed(
        title=title,
        url=None if settings.suppress_item_embed else item.reddit_url,
        description=description,
        color=color,
    )
    if not settings.suppress_submitter:
        main.set_author(
            name=f"u/{author_name}",
            url=None if settings.suppress_author_embed else author_profile_url(author_name),
        )
    if image_urls:
        main.set_image(url=image_urls[0])

    embeds = [main]
    for url in image_urls[1:]:
        extra = discord.Embed()
        extra.set_image(url=url)
        embeds.append(extra)

    last = embeds[-1]
    last.set_footer(text=f"r/{subreddit_name}")
    last.timestamp = now or datetime.now(timezone.utc)

    return embeds


def build_relay_payload(
    item: ContentItem,
    author_name: str,
    settings: RelaySettings,
    subreddit_name: str,
    parent_post_title: str = "",
    image_urls: Sequence[str] = (),
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the complete webhook body for an item.

    Args:
        item: The post or comment being relayed
        author_name: Display name of the author
        settings: Relay settings
        subreddit_name: Name of the subreddit, used in the footer and templates
        parent_post_title: Title of the post a comment belongs to
        image_urls: Resolved image URLs (posts only)
        now: Timestamp for the footer (default: current UTC time)

    Returns:
        JSON-serialisable webhook payload
    """
    embeds = build_embeds(
        item, author_name, settings, subreddit_name,
        parent_post_title=parent_post_title, image_urls=image_urls, now=now,
    )
    return {
        "content": build_content_line(item, author_name, settings),
        "allowed_mentions": {"parse": list(ALLOWED_MENTIONS["parse"])},
        "embeds": [embed.to_dict() for embed in embeds],
    }
