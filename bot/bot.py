import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Set

from relay.config import SettingsError
from relay.context import ItemCreatedEvent, ModActionEvent, RelayContext
from relay.coordinator import SCHEDULED_JOBS, handle_item_created, handle_mod_action
from relay.discord.webhook_client import DiscordWebhookClient, validate_webhook_url

from .config import BotConfig, YamlSettingsSource
from .database.repository import Repository
from .reddit.client import RedditClient
from .services.event_stream import EventStream
from .services.scheduler import JobScheduler

logger = logging.getLogger(__name__)


class RelayBot:
    """
    Relays new posts and comments of one subreddit to a Discord webhook.
    """

    def __init__(self, config: BotConfig):
        self.config = config

        # Database
        self.repository = Repository(config.database.url)

        # Reddit
        self.reddit = RedditClient(config.reddit)

        # Services
        self.scheduler = JobScheduler(
            self.repository,
            poll_interval=config.scheduler.poll_interval,
            batch_size=config.scheduler.batch_size,
        )
        self.ctx = RelayContext(
            settings=YamlSettingsSource(config.relay.settings_path),
            store=self.repository,
            reddit=self.reddit,
            scheduler=self.scheduler,
            webhook=DiscordWebhookClient(),
        )
        self.events = EventStream(self.reddit, self.on_item_created, self.on_mod_action)

        for name, handler in SCHEDULED_JOBS.items():
            self.scheduler.register_handler(name, partial(handler, self.ctx))

        self._pending: Set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

    async def check_settings(self) -> None:
        """
        Load the relay settings once at startup.

        Raises:
            SettingsError: If the settings are invalid
        """
        settings = await self.ctx.load_settings()
        is_valid, error = validate_webhook_url(settings.webhook_url)
        if not is_valid:
            logger.warning(f"Webhook URL does not look like a Discord webhook: {error}")
        logger.info(
            f"Relay settings loaded (content type: {settings.content_type.value}, "
            f"mode: {settings.relay_mode.value})"
        )

    async def setup(self) -> None:
        """Async setup before the bot starts."""
        await self.check_settings()

        await self.repository.init_db()
        logger.info("Database initialized.")

        await self.reddit.initialize()
        subreddit = await self.reddit.get_current_subreddit_name()
        logger.info(f"Watching r/{subreddit}")

        await self.scheduler.start()
        await self.events.start()

    async def run(self) -> None:
        """Set up, then run until stop() is called."""
        try:
            await self.setup()
            await self._stopped.wait()
        finally:
            await self.close()

    def stop(self) -> None:
        self._stopped.set()

    async def close(self) -> None:
        """Cleanup on shutdown."""
        logger.info("Shutting down bot...")
        await self.events.stop()
        await self.scheduler.stop()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self.reddit.close()
        await self.repository.close()

    # -- Event handlers --

    async def on_item_created(self, event: ItemCreatedEvent) -> None:
        self._spawn(handle_item_created(self.ctx, event), f"create {event.item.unique_id}")

    async def on_mod_action(self, event: ModActionEvent) -> None:
        self._spawn(handle_mod_action(self.ctx, event), f"{event.action} {event.target_id}")

    def _spawn(self, coro: Awaitable[Any], label: str) -> None:
        """Run a trigger in the background so a slow safety check does not hold up the stream."""
        task = asyncio.ensure_future(self._dispatch(coro, label))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _dispatch(self, coro: Awaitable[Any], label: str) -> None:
        """Await one trigger invocation, logging and dropping any failure."""
        try:
            await coro
        except SettingsError as e:
            logger.error(f"Invalid relay settings, dropping {label}: {'; '.join(e.errors)}")
        except Exception as e:
            logger.exception(f"Error handling {label}: {e}")
