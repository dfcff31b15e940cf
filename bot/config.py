"""
Configuration management for the relay bot.

Process configuration is loaded from (in priority order):
1. Environment variables (highest priority)
2. Config file (bot/config.yaml)
3. Defaults (lowest priority)

Relay settings (webhook, filters, delays, templates) live in a separate YAML
file that is re-read on every event, so they can be edited while the bot runs.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


@dataclass
class RedditConfig:
    """Reddit API credentials and the subreddit to watch."""
    client_id: str = ""
    client_secret: str = ""
    username: str = ""
    password: str = ""
    user_agent: str = "reddit-discord-relay/0.1"
    subreddit: str = ""


@dataclass
class DatabaseConfig:
    """Database configuration."""
    url: str = ""

    def __post_init__(self):
        if not self.url:
            # Default to SQLite in bot/data directory
            bot_dir = Path(__file__).parent
            data_dir = bot_dir / "data"
            data_dir.mkdir(exist_ok=True)
            self.url = f"sqlite+aiosqlite:///{data_dir}/relay.db"


@dataclass
class SchedulerConfig:
    """Scheduled job polling."""
    poll_interval: float = 5.0
    batch_size: int = 20


@dataclass
class RelayFileConfig:
    """Where the relay settings are read from."""
    settings_path: str = ""

    def __post_init__(self):
        if not self.settings_path:
            self.settings_path = str(Path(__file__).parent / "settings.yaml")


@dataclass
class BotConfig:
    """Main bot configuration container."""
    reddit: RedditConfig = field(default_factory=RedditConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    relay: RelayFileConfig = field(default_factory=RelayFileConfig)
    log_level: str = "INFO"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "BotConfig":
        """
        Load configuration from file and environment variables.

        Args:
            config_path: Optional path to config.yaml file

        Returns:
            Loaded BotConfig instance
        """
        config = cls()

        # Load from config file if exists
        if config_path is None:
            config_path = Path(__file__).parent / "config.yaml"

        if config_path.exists():
            config._load_from_file(config_path)

        # Override with environment variables
        config._load_from_env()

        return config

    def _load_from_file(self, path: Path) -> None:
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Reddit config
        if "reddit" in data:
            reddit_data = data["reddit"] or {}
            for key in ("client_id", "client_secret", "username", "password", "user_agent", "subreddit"):
                if key in reddit_data:
                    setattr(self.reddit, key, str(reddit_data[key] or ""))

        # Database config
        if "database" in data:
            db_data = data["database"] or {}
            if "url" in db_data:
                self.database.url = db_data["url"]

        # Scheduler config
        if "scheduler" in data:
            scheduler_data = data["scheduler"] or {}
            if "poll_interval" in scheduler_data:
                self.scheduler.poll_interval = float(scheduler_data["poll_interval"])
            if "batch_size" in scheduler_data:
                self.scheduler.batch_size = int(scheduler_data["batch_size"])

        # Relay settings file
        if "relay" in data:
            relay_data = data["relay"] or {}
            if "settings_path" in relay_data:
                self.relay.settings_path = relay_data["settings_path"]

        if "log_level" in data:
            self.log_level = data["log_level"]

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        # Reddit
        if client_id := os.getenv("RELAYBOT_REDDIT_CLIENT_ID"):
            self.reddit.client_id = client_id
        if client_secret := os.getenv("RELAYBOT_REDDIT_CLIENT_SECRET"):
            self.reddit.client_secret = client_secret
        if username := os.getenv("RELAYBOT_REDDIT_USERNAME"):
            self.reddit.username = username
        if password := os.getenv("RELAYBOT_REDDIT_PASSWORD"):
            self.reddit.password = password
        if user_agent := os.getenv("RELAYBOT_REDDIT_USER_AGENT"):
            self.reddit.user_agent = user_agent
        if subreddit := os.getenv("RELAYBOT_SUBREDDIT"):
            self.reddit.subreddit = subreddit

        # Database
        if db_url := os.getenv("RELAYBOT_DATABASE_URL"):
            self.database.url = db_url

        # Scheduler
        if poll_interval := os.getenv("RELAYBOT_POLL_INTERVAL"):
            self.scheduler.poll_interval = float(poll_interval)

        # Relay settings
        if settings_path := os.getenv("RELAYBOT_SETTINGS_PATH"):
            self.relay.settings_path = settings_path

        if log_level := os.getenv("RELAYBOT_LOG_LEVEL"):
            self.log_level = log_level

    def validate(self) -> list[str]:
        """
        Validate the configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not all([self.reddit.client_id, self.reddit.client_secret]):
            errors.append("Reddit API credentials are required (set RELAYBOT_REDDIT_CLIENT_ID/SECRET)")

        if not self.reddit.subreddit:
            errors.append("Subreddit is required (set RELAYBOT_SUBREDDIT)")

        if self.scheduler.poll_interval <= 0:
            errors.append("Scheduler poll interval must be positive")

        return errors


class YamlSettingsSource:
    """Relay settings stored as a flat YAML mapping, read on every call."""

    def __init__(self, path: str):
        self.path = Path(path)

    async def get_all(self) -> Mapping[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data: Dict[str, Any] = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Relay settings file {self.path} must contain a mapping")
        return data


# Global config instance (lazy loaded)
_config: Optional[BotConfig] = None


def get_config() -> BotConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = BotConfig.load()
    return _config


def reload_config(config_path: Optional[Path] = None) -> BotConfig:
    """Reload configuration from disk."""
    global _config
    _config = BotConfig.load(config_path)
    return _config
