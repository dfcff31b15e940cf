"""
Discord Integration Utilities

Provides the webhook transport and message building.
"""

from .webhook_client import (
    DiscordWebhookClient,
    validate_webhook_url,
    sanitize_webhook_for_logging,
    sanitize_token_from_text,
)
from .message_builder import (
    build_relay_payload,
    build_content_line,
    truncate_text,
    render_template,
)

__all__ = [
    # Webhook client
    'DiscordWebhookClient',
    'validate_webhook_url',
    'sanitize_webhook_for_logging',
    'sanitize_token_from_text',
    # Message building
    'build_relay_payload',
    'build_content_line',
    'truncate_text',
    'render_template',
]
