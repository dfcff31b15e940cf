"""
Relay settings.

The host hands over a flat mapping of kebab-case option names to raw values
(strings, numbers, booleans, or single-item lists for select fields). It is
parsed into an immutable RelaySettings once per invocation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, List, Mapping, Optional


# Minutes. Delays below this (other than 0) are rejected at validation time.
MINIMUM_DELAY = 3

DEFAULT_FLAIR_COLOR = "#808080"


class SettingsError(ValueError):
    """Raised when relay settings cannot be parsed or fail validation."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class ContentType(str, Enum):
    """Which kinds of items are relayed."""
    ALL = "all"
    POST = "post"
    COMMENT = "comment"


class RelayMode(str, Enum):
    """When items are relayed."""
    IMMEDIATELY = "immediately"
    FRONT_PAGE = "front-page"


class FrontPageListing(str, Enum):
    """Listing used by the front-page sweep. Anything but HOT is a top() time filter."""
    HOT = "hot"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


def parse_comma_list(value: Any) -> FrozenSet[str]:
    """Split a comma-separated option into a set of trimmed, lower-cased entries."""
    if not value:
        return frozenset()
    if isinstance(value, (list, tuple, set, frozenset)):
        parts = [str(v) for v in value]
    else:
        parts = str(value).split(",")
    return frozenset(p.strip().lower() for p in parts if p.strip())


def _select_value(value: Any) -> Optional[str]:
    # select fields arrive as ["value"]
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None or value == "":
        return None
    return str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_int(value: Any, name: str, errors: List[str]) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        errors.append(f"'{name}' must be a whole number (got {value!r})")
        return 0


def _as_enum(enum_cls, value: Any, default, name: str, errors: List[str]):
    raw = _select_value(value)
    if raw is None:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        errors.append(f"'{name}' must be one of: {allowed} (got {raw!r})")
        return default


def validate_delay(value: Optional[int]) -> Optional[str]:
    """Return an error message for a delay that is non-zero but below the minimum."""
    value = value or 0
    if value != 0 and value < MINIMUM_DELAY:
        return f"Please enter a delay of at least {MINIMUM_DELAY} minutes"
    return None


@dataclass(frozen=True)
class RelaySettings:
    """Typed view of every relay option."""
    webhook_url: str = ""
    subreddit_only: FrozenSet[str] = frozenset()

    # Discord
    ping_role: bool = False
    ping_role_id: str = ""
    suppress_author_embed: bool = False
    suppress_item_embed: bool = False

    # Embeds
    image_embed_count: int = 0
    post_embed_template: str = ""
    comment_embed_template: str = ""
    flair_color_accent: bool = False

    # Behavior
    content_type: ContentType = ContentType.ALL
    relay_mode: RelayMode = RelayMode.IMMEDIATELY
    front_page_listing: FrontPageListing = FrontPageListing.HOT
    front_page_min_score: int = 0
    post_delay: int = 0
    comment_delay: int = 0
    post_delay_after_approval: int = 0
    comment_delay_after_approval: int = 0
    retry_on_approval: bool = False
    skip_safety_checks: bool = False
    ignore_removed: bool = False
    suppress_submitter: bool = False

    # Filters
    specific_usernames: FrozenSet[str] = frozenset()
    user_flairs: FrozenSet[str] = frozenset()
    post_flairs: FrozenSet[str] = frozenset()
    approved_users_only: bool = False
    moderators_only: bool = False
    ignore_usernames: FrozenSet[str] = frozenset()
    ignore_user_flairs: FrozenSet[str] = frozenset()
    ignore_post_flairs: FrozenSet[str] = frozenset()
    ignore_shadowbanned: bool = False
    relay_replies: bool = False

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> "RelaySettings":
        """
        Build settings from the host's option mapping.

        Args:
            values: Option name -> raw value, names as shown in the settings form

        Returns:
            Parsed RelaySettings

        Raises:
            SettingsError: If a value has the wrong type or an unknown choice
        """
        values = dict(values or {})
        errors: List[str] = []

        def text(name: str) -> str:
            raw = values.get(name)
            return "" if raw is None else str(raw).strip()

        settings = cls(
            webhook_url=text("webhook-url"),
            subreddit_only=parse_comma_list(values.get("subreddit-only")),
            ping_role=_as_bool(values.get("ping-role")),
            ping_role_id=text("ping-role-id"),
            suppress_author_embed=_as_bool(values.get("suppress-author-embed")),
            suppress_item_embed=_as_bool(values.get("suppress-item-embed")),
            image_embed_count=_as_int(values.get("image-embed-count"), "image-embed-count", errors),
            post_embed_template=str(values.get("post-embed-template") or ""),
            comment_embed_template=str(values.get("comment-embed-template") or ""),
            flair_color_accent=_as_bool(values.get("flair-color-accent")),
            content_type=_as_enum(ContentType, values.get("content-type"), ContentType.ALL, "content-type", errors),
            relay_mode=_as_enum(RelayMode, values.get("relay-mode"), RelayMode.IMMEDIATELY, "relay-mode", errors),
            front_page_listing=_as_enum(
                FrontPageListing, values.get("front-page-listing"), FrontPageListing.HOT,
                "front-page-listing", errors,
            ),
            front_page_min_score=_as_int(values.get("front-page-min-score"), "front-page-min-score", errors),
            post_delay=_as_int(values.get("post-delay"), "post-delay", errors),
            comment_delay=_as_int(values.get("comment-delay"), "comment-delay", errors),
            post_delay_after_approval=_as_int(
                values.get("post-delay-after-approval"), "post-delay-after-approval", errors
            ),
            comment_delay_after_approval=_as_int(
                values.get("comment-delay-after-approval"), "comment-delay-after-approval", errors
            ),
            retry_on_approval=_as_bool(values.get("retry-on-approval")),
            skip_safety_checks=_as_bool(values.get("skip-safety-checks")),
            ignore_removed=_as_bool(values.get("ignore-removed")),
            suppress_submitter=_as_bool(values.get("suppress-submitter")),
            specific_usernames=parse_comma_list(values.get("specific-username")),
            user_flairs=parse_comma_list(values.get("user-flair")),
            post_flairs=parse_comma_list(values.get("post-flair")),
            approved_users_only=_as_bool(values.get("approved-users-only")),
            moderators_only=_as_bool(values.get("moderators-only")),
            ignore_usernames=parse_comma_list(values.get("ignore-specific-username")),
            ignore_user_flairs=parse_comma_list(values.get("ignore-user-flair")),
            ignore_post_flairs=parse_comma_list(values.get("ignore-post-flair")),
            ignore_shadowbanned=_as_bool(values.get("ignore-shadowbanned")),
            relay_replies=_as_bool(values.get("relay-replies")),
        )

        if errors:
            raise SettingsError(errors)
        return settings

    def validate(self) -> List[str]:
        """
        Validate the settings.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.webhook_url:
            errors.append("Please enter a webhook URL")

        for name in ("post_delay", "comment_delay", "post_delay_after_approval", "comment_delay_after_approval"):
            message = validate_delay(getattr(self, name))
            if message:
                errors.append(f"{name.replace('_', '-')}: {message}")

        if self.image_embed_count < 0:
            errors.append("image-embed-count must be 0 or greater")

        return errors

    def delay_for(self, item_type: str, approval_retry: bool = False) -> int:
        """Delay in minutes for an item type, using the after-approval value for approval retries."""
        if item_type == "post":
            return self.post_delay_after_approval if approval_retry else self.post_delay
        return self.comment_delay_after_approval if approval_retry else self.comment_delay

    def approval_delay_for(self, item_type: str) -> int:
        """Delay for a retry triggered by a moderator approval. Never zero."""
        return self.delay_for(item_type, approval_retry=True) or MINIMUM_DELAY
