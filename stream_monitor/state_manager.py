"""State manager for persisting channel state between restarts."""
import json
import logging
import os

from .errors import PersistenceError
from .models import ChannelState

logger = logging.getLogger(__name__)


class StateManager:
    """Stores one JSON snapshot per channel in a cache directory.

    Snapshots are written to a ``-part`` file and renamed over the real one so
    that readers never observe a half-written document.
    """

    def __init__(self, cache_path):
        """Initialize the state manager with the cache directory path."""
        self.cache_path = cache_path
        self._ensure_directory()

    def _ensure_directory(self):
        """Ensure the cache directory exists."""
        if not os.path.isdir(self.cache_path):
            os.makedirs(self.cache_path, exist_ok=True)
            logger.info("Created cache directory: %s", self.cache_path)

    def _path(self, channel_id):
        return os.path.join(self.cache_path, f"{channel_id}.json")

    def _sync_directory(self):
        # Makes the rename itself survive a power loss
        fd = os.open(self.cache_path, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)

    def load(self):
        """Load every persisted channel state.

        Unreadable or malformed snapshots are logged and come back as a fresh
        offline state.
        """
        states = {}
        try:
            names = sorted(os.listdir(self.cache_path))
        except FileNotFoundError:
            logger.info("Cache directory %s not found, starting cold", self.cache_path)
            return states

        for name in names:
            if not name.endswith(".json") or name.endswith("-part.json"):
                continue
            channel_id = name[:-len(".json")]
            states[channel_id] = self._read(channel_id)

        if states:
            logger.info("Loaded %d cached channel states", len(states))
        return states

    def _read(self, channel_id):
        try:
            with open(self._path(channel_id), "r", encoding="utf-8") as f:
                return ChannelState.from_dict(json.load(f))
        except OSError as e:
            logger.error("Could not read cached state for %s: %s", channel_id, e)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Failed to parse cached state for %s, treating as offline: %s",
                           channel_id, e)
        return ChannelState()

    def save(self, channel_id, state):
        """Durably write the state for one channel."""
        target = self._path(channel_id)
        partial = os.path.join(self.cache_path, f"{channel_id}-part.json")
        try:
            with open(partial, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(partial, target)
            self._sync_directory()
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to save state for {channel_id}: {e}") from e
        logger.debug("Saved state for %s (%s)", channel_id, state.status.value)

    def remove(self, channel_id):
        """Delete the persisted state for a channel, if any."""
        try:
            os.remove(self._path(channel_id))
            logger.info("Removed cached state for %s", channel_id)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"Failed to remove state for {channel_id}: {e}") from e


class MemoryStateManager:
    """Drop-in replacement for StateManager when the cache is disabled."""

    def __init__(self):
        self._snapshots = {}

    def load(self):
        return {channel_id: ChannelState.from_dict(snapshot)
                for channel_id, snapshot in dict(self._snapshots).items()}

    def save(self, channel_id, state):
        self._snapshots[channel_id] = state.to_dict()

    def remove(self, channel_id):
        self._snapshots.pop(channel_id, None)


def create_state_manager(config):
    """Pick the file-backed or in-memory store according to configuration."""
    if config.cache_enabled:
        return StateManager(config.cache_path)
    logger.info("State cache disabled, channel state will not survive restarts")
    return MemoryStateManager()
