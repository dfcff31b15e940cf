"""
Discord webhook delivery for the Reddit relay

Provides the webhook transport used by the relay and helpers for validating
webhook URLs and keeping their tokens out of logs.
"""

import asyncio
import logging
import re
from typing import Any, Dict, Tuple

import requests

from ..context import WebhookResponse

logger = logging.getLogger(__name__)


# Discord webhook URL patterns
WEBHOOK_URL_PATTERNS = [
    r"https?://(?:www\.|canary\.|ptb\.)?discord(?:app)?\.com/api/webhooks/\d+/[\w-]+",
]

_WEBHOOK_TOKEN_RE = re.compile(r"(https?://[^/\s]+/api/webhooks/\d+/)([\w-]+)")


def validate_webhook_url(url: str) -> Tuple[bool, str]:
    """
    Validate a Discord webhook URL.

    Args:
        url: The webhook URL to validate

    Returns:
        Tuple of (is_valid, message)
    """
    if not url:
        return False, "Webhook URL is empty"

    if not url.startswith("http"):
        return False, "Webhook URL must start with http:// or https://"

    # Check against known patterns
    for pattern in WEBHOOK_URL_PATTERNS:
        if re.match(pattern, url, re.IGNORECASE):
            return True, "Valid Discord webhook URL"

    # More lenient check
    if "discord" in url.lower() and "webhook" in url.lower():
        return True, "Appears to be a Discord webhook URL"

    return False, "URL does not appear to be a valid Discord webhook URL"


def sanitize_webhook_for_logging(url: str) -> str:
    """
    Sanitize a webhook URL for safe logging (hide the token portion).

    Args:
        url: The webhook URL

    Returns:
        Sanitized URL safe for logging
    """
    if not url:
        return ""

    # Pattern: https://discord.com/api/webhooks/{id}/{token}
    match = re.match(r"(https?://[^/]+/api/webhooks/\d+/)(.+)", url)
    if match:
        return f"{match.group(1)}[REDACTED]"

    return "[REDACTED_WEBHOOK_URL]"


def sanitize_token_from_text(text: str, webhook_url: str) -> str:
    """
    Remove a webhook's token from arbitrary text such as an error body.

    Args:
        text: Text that may contain the webhook URL or its token
        webhook_url: The webhook URL whose token should be hidden

    Returns:
        Text with every occurrence of the token replaced by [REDACTED]
    """
    if not text:
        return ""

    text = _WEBHOOK_TOKEN_RE.sub(lambda m: f"{m.group(1)}[REDACTED]", text)

    match = _WEBHOOK_TOKEN_RE.match(webhook_url or "")
    if match:
        text = text.replace(match.group(2), "[REDACTED]")

    return text


def post_webhook_payload(webhook_url: str, payload: Dict[str, Any], timeout: int = 30) -> requests.Response:
    """
    POST a JSON payload to a webhook once.

    Raises:
        requests.exceptions.RequestException: On network failure or timeout
    """
    return requests.post(
        webhook_url,
        json=payload,
        headers={"Content-Type": "application/json"},
        timeout=timeout,
    )


class DiscordWebhookClient:
    """
    Webhook transport used by the relay.

    Each relay is a single attempt: non-2xx responses and network failures
    are reported back, never retried.
    """

    MAX_RESPONSE_LOG_LENGTH = 500

    def __init__(self, timeout: int = 30):
        """
        Initialize the webhook client.

        Args:
            timeout: Request timeout in seconds
        """
        self.timeout = timeout

    async def post(self, webhook_url: str, payload: Dict[str, Any]) -> WebhookResponse:
        """
        Send a payload to a webhook.

        Args:
            webhook_url: Discord webhook URL
            payload: JSON message body

        Returns:
            WebhookResponse with the HTTP status (0 if the request failed) and
            the response text with the webhook token removed
        """
        try:
            response = await asyncio.to_thread(post_webhook_payload, webhook_url, payload, self.timeout)
        except requests.exceptions.Timeout:
            logger.error(f"Webhook request to {sanitize_webhook_for_logging(webhook_url)} timed out")
            return WebhookResponse(status_code=0, text="Request timed out")
        except requests.exceptions.RequestException as e:
            text = sanitize_token_from_text(str(e), webhook_url)
            logger.error(f"Webhook request to {sanitize_webhook_for_logging(webhook_url)} failed: {text}")
            return WebhookResponse(status_code=0, text=text)

        text = sanitize_token_from_text(response.text or "", webhook_url)
        return WebhookResponse(
            status_code=response.status_code,
            text=text[:self.MAX_RESPONSE_LOG_LENGTH],
        )
