"""
Reddit to Discord relay

Decides which new posts and comments of a subreddit are relayed, builds the
Discord webhook message for them and delivers it now or after a delay.
Organized into:
- reddit: content items and image URL resolution
- discord: webhook transport and message building
- decision / coordinator: relay rules and delivery flow
"""

from .config import RelaySettings, SettingsError, MINIMUM_DELAY
from .context import RelayContext, ItemCreatedEvent, ModActionEvent, WebhookResponse
from .decision import should_relay
from .coordinator import (
    handle_item_created,
    handle_mod_action,
    schedule_relay,
    relay,
    SCHEDULED_JOBS,
)
from .logging_config import setup_logging

__version__ = "0.1.0"

__all__ = [
    # Settings
    'RelaySettings',
    'SettingsError',
    'MINIMUM_DELAY',
    # Host context
    'RelayContext',
    'ItemCreatedEvent',
    'ModActionEvent',
    'WebhookResponse',
    # Relay flow
    'should_relay',
    'handle_item_created',
    'handle_mod_action',
    'schedule_relay',
    'relay',
    'SCHEDULED_JOBS',
    # Logging
    'setup_logging',
]
