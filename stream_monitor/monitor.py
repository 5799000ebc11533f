"""Main monitoring service for Twitch stream status."""
import logging
import signal
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor

from .client import RateLimitedClient
from .errors import ClientError, PersistenceError
from .models import ChannelState, PollResult, utcnow
from .notifier import NotificationDispatcher
from .state_machine import ChannelStateMachine
from .state_manager import create_state_manager
from .twitch import TwitchClient

logger = logging.getLogger(__name__)


def chunked(items, size):
    """Split ``items`` into consecutive lists of at most ``size`` entries."""
    return [items[i:i + size] for i in range(0, len(items), size)]


def normalize_channels(names):
    """Lowercase channel logins and drop repeats, keeping the given order."""
    return list(dict.fromkeys(name.lower() for name in names))


class StreamMonitor:
    """Polls every configured channel on a fixed cadence and reports transitions.

    The monitor is the only writer of channel state. Each tick polls all
    channels, advances their state machines against one shared timestamp,
    persists every changed state and only then dispatches the resulting
    notifications.
    """

    def __init__(self, config, client=None, twitch=None, store=None, dispatcher=None,
                 clock=utcnow):
        """Initialize the monitor with configuration and optional collaborators."""
        self.config = config
        self.channels = normalize_channels(config.channels)
        self.running = False
        self._stop_event = threading.Event()
        self._clock = clock

        # Initialize services
        self.client = client or RateLimitedClient.from_config(config)
        self.twitch = twitch or TwitchClient.from_config(config, self.client)
        self.store = store if store is not None else create_state_manager(config)
        self.dispatcher = dispatcher or NotificationDispatcher.from_config(config, self.client)
        self.machine = ChannelStateMachine(config.offline_grace_period)

        self.states = {}
        self._unsaved = set()
        self._executor = None
        self._load_states()

    def _load_states(self):
        """Restore persisted states and forget channels no longer configured."""
        loaded = self.store.load()
        for channel_id, state in loaded.items():
            if channel_id in self.channels:
                self.states[channel_id] = state
                continue
            try:
                self.store.remove(channel_id)
            except PersistenceError as e:
                logger.error("%s", e)

        restored = [cid for cid, state in self.states.items() if state.segments]
        if restored:
            logger.info("Resuming tracked streams: %s", ", ".join(sorted(restored)))

    def setup_signal_handlers(self):
        """Set up signal handlers for graceful shutdown."""
        # pylint: disable=unused-argument
        def signal_handler(sig, frame):
            logger.info("Received signal %s, finishing current tick before shutdown...", sig)
            self.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def stop(self):
        """Ask the run loop to exit once the in-flight tick has finished."""
        self.running = False
        self._stop_event.set()

    def _map(self, fn, items):
        if self._executor is None:
            return [fn(item) for item in items]
        return list(self._executor.map(fn, items))

    def poll(self, now):
        """Query all channels in batches.

        Returns the poll results by channel and the set of channels whose batch
        failed this tick.
        """
        batches = chunked(self.channels, self.config.batch_size)

        def query(batch):
            try:
                return batch, self.twitch.get_streams(batch, now), None
            except ClientError as e:
                return batch, None, e

        results = {}
        failed = set()
        for batch, live, error in self._map(query, batches):
            if error is not None:
                logger.error("Status query failed for %s, keeping previous state: %s",
                             ", ".join(batch), error)
                failed.update(batch)
                continue
            for channel_id in batch:
                results[channel_id] = live.get(channel_id) or PollResult.offline(channel_id, now)
        return results, failed

    def tick(self, now=None):
        """Run one poll-evaluate-persist-dispatch cycle.

        Returns the list of ``(channel_id, transition)`` pairs emitted.
        """
        now = now or self._clock()
        results, failed = self.poll(now)

        emitted = []
        for channel_id in self.channels:
            if channel_id in failed:
                continue
            state = self.states.get(channel_id) or ChannelState()
            new_state, transition = self.machine.advance(state, results[channel_id], now)

            if new_state != state or channel_id not in self.states:
                self.states[channel_id] = new_state
                self._unsaved.add(channel_id)
            saved = channel_id not in self._unsaved or self._persist(channel_id, new_state)

            if transition.event_type is None:
                continue
            if not saved:
                # Never send an event without a durable record of it
                logger.error("%s: withholding %s notification, state was not saved",
                             channel_id, type(transition).__name__)
                continue
            logger.info("%s: %s", channel_id, type(transition).__name__)
            emitted.append((channel_id, transition))

        if emitted:
            self._map(lambda item: self.dispatcher.dispatch(*item), emitted)
        return emitted

    def _persist(self, channel_id, state):
        """Write one channel's state, returning False if the store failed."""
        try:
            self.store.save(channel_id, state)
        except PersistenceError as e:
            logger.error("%s (will retry next tick)", e)
            return False
        self._unsaved.discard(channel_id)
        return True

    def run_forever(self, channels=None, interval=None):
        """Start the monitoring loop.

        Ticks start every ``interval`` seconds. A tick that runs longer than the
        interval delays the next one instead of overlapping it.
        """
        if channels is not None:
            self.channels = normalize_channels(channels)
        interval = interval or self.config.polling_interval

        logger.info("Starting stream monitor for %d channels every %ss: %s",
                    len(self.channels), interval, ", ".join(self.channels))
        self.running = True
        self._stop_event.clear()

        with ThreadPoolExecutor(max_workers=self.config.max_concurrency,
                                thread_name_prefix="monitor") as executor:
            self._executor = executor
            try:
                while self.running:
                    started = time.monotonic()
                    try:
                        self.tick()
                    except Exception as e:
                        logger.error("Unhandled exception in monitoring loop: %s", e)
                        logger.debug(traceback.format_exc())

                    remaining = interval - (time.monotonic() - started)
                    if remaining <= 0:
                        logger.warning("Tick took longer than the %ss interval, "
                                       "starting the next one late", interval)
                        continue
                    self._stop_event.wait(remaining)
            finally:
                self._executor = None

        logger.info("Stream monitor stopped")

    def run(self):
        """Run until interrupted by SIGINT or SIGTERM."""
        self.setup_signal_handlers()
        self.run_forever()
