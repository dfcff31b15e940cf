import asyncio
import logging
import os
import signal
from pathlib import Path

from bot.config import BotConfig, get_config, reload_config
from bot.bot import RelayBot
from relay.config import SettingsError
from relay.logging_config import setup_logging


async def _run(bot: RelayBot) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.stop)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass
    await bot.run()


def load_config() -> BotConfig:
    """Load the config file named by RELAYBOT_CONFIG_PATH, else bot/config.yaml."""
    if config_path := os.getenv("RELAYBOT_CONFIG_PATH"):
        return reload_config(Path(config_path))
    return get_config()


def main():
    # Load configuration
    try:
        config = load_config()
    except Exception as e:
        setup_logging()
        logging.getLogger("bot").critical(f"Failed to load configuration: {e}")
        return

    setup_logging(config.log_level)
    logger = logging.getLogger("bot")

    errors = config.validate()
    if errors:
        for error in errors:
            logger.critical(error)
        return

    # Initialize and run bot
    bot = RelayBot(config)

    try:
        asyncio.run(_run(bot))
    except KeyboardInterrupt:
        logger.info("Bot stopped by user.")
    except SettingsError as e:
        logger.critical(f"Invalid relay settings: {'; '.join(e.errors)}")
    except Exception as e:
        logger.critical(f"Bot crashed: {e}")


if __name__ == "__main__":
    main()
