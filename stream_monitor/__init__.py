"""
A service that tracks Twitch channels going live, changing games and
ending their streams, and forwards each change to a notification sink.
"""

from .config import MonitorConfig
from .monitor import StreamMonitor
from .notifier import NotificationDispatcher
from .state_machine import ChannelStateMachine
from .state_manager import MemoryStateManager, StateManager
