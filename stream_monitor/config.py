"""Configuration settings module."""
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

from dotenv import load_dotenv

from .errors import ConfigurationError

EVENT_TYPES = ("live", "update", "vod")

# Helix accepts at most 100 user_login parameters per /streams query
MAX_BATCH_SIZE = 100


def _split(value):
    return [item.strip() for item in value.split(",") if item.strip()]


def _unique(items):
    """Drop repeated entries, keeping first-seen order."""
    return list(dict.fromkeys(items))


def _flag(value):
    return value.strip().lower() == "true"


@dataclass
class MonitorConfig:
    """Settings read once at startup and passed to every component."""

    # Twitch API credentials (acquired and refreshed outside this service)
    twitch_client_id: str = ""
    twitch_access_token: str = ""
    channels: List[str] = field(default_factory=list)

    # Polling
    polling_interval: float = 60.0
    offline_grace_minutes: float = 2.0
    batch_size: int = MAX_BATCH_SIZE
    max_concurrency: int = 4
    request_timeout: float = 10.0
    max_attempts: int = 5

    # Notification sink
    notify_webhook_url: str = ""
    enabled_events: List[str] = field(default_factory=lambda: list(EVENT_TYPES))
    top_clips: int = 0

    # State management
    cache_enabled: bool = True
    cache_path: str = ".cache"

    # Diagnostics server
    status_enabled: bool = False
    status_host: str = "0.0.0.0"
    status_port: int = 5000
    status_secret: str = ""

    # Logging
    log_dir: str = "logs"
    debug: bool = False

    @property
    def offline_grace_period(self):
        return timedelta(minutes=self.offline_grace_minutes)

    @classmethod
    def from_env(cls, environ=None):
        """Build the configuration from environment variables.

        A ``.env`` file is loaded first when reading the real process
        environment. Values that fail to parse raise ConfigurationError.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ
        env = environ.get

        try:
            return cls(
                twitch_client_id=env("TWITCH_CLIENT_ID", ""),
                twitch_access_token=env("TWITCH_ACCESS_TOKEN", ""),
                channels=_unique(name.lower() for name in _split(env("TWITCH_CHANNELS", ""))),
                polling_interval=float(env("POLLING_INTERVAL", "60")),
                offline_grace_minutes=float(env("OFFLINE_GRACE_PERIOD", "2")),
                batch_size=int(env("BATCH_SIZE", str(MAX_BATCH_SIZE))),
                max_concurrency=int(env("MAX_CONCURRENCY", "4")),
                request_timeout=float(env("REQUEST_TIMEOUT", "10")),
                max_attempts=int(env("MAX_ATTEMPTS", "5")),
                notify_webhook_url=env("NOTIFY_WEBHOOK_URL", ""),
                enabled_events=[name.lower() for name in
                                _split(env("ENABLED_EVENTS", ",".join(EVENT_TYPES)))],
                top_clips=int(env("TOP_CLIPS", "0")),
                cache_enabled=_flag(env("CACHE_ENABLED", "true")),
                cache_path=env("CACHE_PATH", ".cache"),
                status_enabled=_flag(env("STATUS_ENABLED", "false")),
                status_host=env("STATUS_HOST", "0.0.0.0"),
                status_port=int(env("STATUS_PORT", "5000")),
                status_secret=env("STATUS_SECRET", ""),
                log_dir=env("LOG_DIR", "logs"),
                debug=_flag(env("DEBUG", "false")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

    def validate(self):
        """Validate that all required configuration is present."""
        missing_vars = []
        if not self.twitch_client_id:
            missing_vars.append("TWITCH_CLIENT_ID")
        if not self.twitch_access_token:
            missing_vars.append("TWITCH_ACCESS_TOKEN")
        if not self.channels:
            missing_vars.append("TWITCH_CHANNELS")
        if not self.notify_webhook_url:
            missing_vars.append("NOTIFY_WEBHOOK_URL")
        if missing_vars:
            raise ConfigurationError(
                f"Missing required configuration variables: {', '.join(missing_vars)}")

        problems = []
        if self.polling_interval <= 0:
            problems.append("POLLING_INTERVAL must be positive")
        if self.offline_grace_minutes < 0:
            problems.append("OFFLINE_GRACE_PERIOD must not be negative")
        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            problems.append(f"BATCH_SIZE must be between 1 and {MAX_BATCH_SIZE}")
        if self.max_concurrency < 1:
            problems.append("MAX_CONCURRENCY must be at least 1")
        if self.max_attempts < 1:
            problems.append("MAX_ATTEMPTS must be at least 1")
        if self.request_timeout <= 0:
            problems.append("REQUEST_TIMEOUT must be positive")
        if self.top_clips < 0:
            problems.append("TOP_CLIPS must not be negative")
        unknown = [name for name in self.enabled_events if name not in EVENT_TYPES]
        if unknown:
            problems.append(f"ENABLED_EVENTS has unknown event types: {', '.join(unknown)}")
        if problems:
            raise ConfigurationError("; ".join(problems))
        return self
