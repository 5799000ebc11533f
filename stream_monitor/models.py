"""Data types shared by the poller, state machine, store and dispatcher."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, List, Optional, Tuple


def utcnow():
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value):
    """Parse an ISO 8601 timestamp (Helix uses a trailing Z) into aware UTC."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected timestamp string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value):
    """Serialize an aware datetime, passing None through."""
    if value is None:
        return None
    return value.isoformat()


class ChannelStatus(Enum):
    """Tracked status of a channel."""

    OFFLINE = "offline"
    LIVE = "live"
    PENDING_OFFLINE = "pending_offline"


@dataclass(frozen=True)
class Segment:
    """An interval of a live session spent on one game."""

    game_id: Optional[str]
    game_name: Optional[str]
    started_at: datetime
    ended_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "gameId": self.game_id,
            "gameName": self.game_name,
            "startedAt": format_timestamp(self.started_at),
            "endedAt": format_timestamp(self.ended_at),
        }

    @classmethod
    def from_dict(cls, data):
        started_at = parse_timestamp(data["startedAt"])
        if started_at is None:
            raise ValueError("Segment is missing startedAt")
        return cls(
            game_id=data.get("gameId"),
            game_name=data.get("gameName"),
            started_at=started_at,
            ended_at=parse_timestamp(data.get("endedAt")),
        )


@dataclass
class ChannelState:
    """Everything the monitor remembers about one channel between ticks."""

    status: ChannelStatus = ChannelStatus.OFFLINE
    current_game_id: Optional[str] = None
    current_game_name: Optional[str] = None
    stream_started_at: Optional[datetime] = None
    grace_deadline: Optional[datetime] = None
    segments: List[Segment] = field(default_factory=list)

    def to_dict(self):
        """Project the state onto its persisted snapshot."""
        return {
            "status": self.status.value,
            "currentGameId": self.current_game_id,
            "currentGameName": self.current_game_name,
            "streamStartedAt": format_timestamp(self.stream_started_at),
            "graceDeadline": format_timestamp(self.grace_deadline),
            "segments": [segment.to_dict() for segment in self.segments],
        }

    @classmethod
    def from_dict(cls, data):
        """Rebuild a state from a persisted snapshot.

        Raises ValueError, KeyError or TypeError when the snapshot is malformed
        or violates the status/segments invariants.
        """
        if not isinstance(data, dict):
            raise TypeError("Snapshot must be a JSON object")

        status = ChannelStatus(data["status"])
        segments = [Segment.from_dict(item) for item in data.get("segments") or []]
        state = cls(
            status=status,
            current_game_id=data.get("currentGameId"),
            current_game_name=data.get("currentGameName"),
            stream_started_at=parse_timestamp(data.get("streamStartedAt")),
            grace_deadline=parse_timestamp(data.get("graceDeadline")),
            segments=segments,
        )

        if status is ChannelStatus.OFFLINE and segments:
            raise ValueError("Offline snapshot must not carry segments")
        if status is not ChannelStatus.OFFLINE and not segments:
            raise ValueError(f"{status.value} snapshot has no segments")
        if status is ChannelStatus.PENDING_OFFLINE and state.grace_deadline is None:
            raise ValueError("Pending offline snapshot has no grace deadline")
        return state


@dataclass(frozen=True)
class PollResult:
    """One channel's status as observed by a single poll query."""

    channel_id: str
    is_live: bool
    game_id: Optional[str] = None
    game_name: Optional[str] = None
    started_at: Optional[datetime] = None
    observed_at: Optional[datetime] = None

    @classmethod
    def offline(cls, channel_id, observed_at):
        return cls(channel_id=channel_id, is_live=False, observed_at=observed_at)


@dataclass(frozen=True)
class Transition:
    """Outcome of advancing a channel's state with a poll result."""

    event_type: ClassVar[Optional[str]] = None


@dataclass(frozen=True)
class NoChange(Transition):
    pass


NO_CHANGE = NoChange()


@dataclass(frozen=True)
class WentLive(Transition):
    event_type: ClassVar[str] = "live"

    game_id: Optional[str]
    game_name: Optional[str]
    started_at: datetime


@dataclass(frozen=True)
class GameChanged(Transition):
    event_type: ClassVar[str] = "update"

    old: Segment
    new: Segment
    started_at: Optional[datetime]


@dataclass(frozen=True)
class WentOffline(Transition):
    event_type: ClassVar[str] = "vod"

    segments: Tuple[Segment, ...]
    started_at: Optional[datetime]
    ended_at: datetime
