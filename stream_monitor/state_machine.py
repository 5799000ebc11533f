"""Per-channel live/offline state machine with an offline grace period."""
import logging
from dataclasses import replace
from datetime import timedelta

from .models import (
    NO_CHANGE,
    ChannelState,
    ChannelStatus,
    GameChanged,
    Segment,
    WentLive,
    WentOffline,
)

logger = logging.getLogger(__name__)


def same_game(game_id, game_name, other_id, other_name):
    """Compare two games by stable id when both have one, else by name."""
    if game_id and other_id:
        return game_id == other_id
    return (game_name or "") == (other_name or "")


class ChannelStateMachine:
    """Classifies poll results into transitions.

    ``advance`` never mutates the state it is given; it returns a new
    ChannelState together with the Transition to emit. A stream that dips
    offline is held in PENDING_OFFLINE until the grace period elapses, so short
    outages produce neither an offline nor a duplicate live event.
    """

    def __init__(self, grace_period):
        if isinstance(grace_period, (int, float)):
            grace_period = timedelta(seconds=grace_period)
        if grace_period < timedelta(0):
            raise ValueError("Grace period must not be negative")
        self.grace_period = grace_period

    def advance(self, state, poll, now):
        """Return ``(new_state, transition)`` for one poll observation."""
        if state.status is ChannelStatus.OFFLINE:
            if poll.is_live:
                return self._go_live(poll, now)
            return state, NO_CHANGE

        if state.status is ChannelStatus.LIVE:
            if poll.is_live:
                return self._check_game(state, poll, now)
            deadline = now + self.grace_period
            logger.debug("%s appears offline, waiting until %s",
                         poll.channel_id, deadline.isoformat())
            return replace(state, status=ChannelStatus.PENDING_OFFLINE,
                           grace_deadline=deadline,
                           segments=list(state.segments)), NO_CHANGE

        # PENDING_OFFLINE
        if poll.is_live:
            logger.debug("%s is back online within the grace period", poll.channel_id)
            recovered = replace(state, status=ChannelStatus.LIVE, grace_deadline=None,
                                segments=list(state.segments))
            return self._check_game(recovered, poll, now)
        if now < state.grace_deadline:
            return state, NO_CHANGE
        return self._go_offline(state)

    def _go_live(self, poll, now):
        started_at = poll.started_at or now
        segment = Segment(poll.game_id, poll.game_name, started_at)
        new_state = ChannelState(
            status=ChannelStatus.LIVE,
            current_game_id=poll.game_id,
            current_game_name=poll.game_name,
            stream_started_at=started_at,
            segments=[segment],
        )
        return new_state, WentLive(poll.game_id, poll.game_name, started_at)

    def _check_game(self, state, poll, now):
        if same_game(state.current_game_id, state.current_game_name,
                     poll.game_id, poll.game_name):
            return state, NO_CHANGE

        closed = replace(state.segments[-1], ended_at=now)
        opened = Segment(poll.game_id, poll.game_name, now)
        new_state = replace(
            state,
            current_game_id=poll.game_id,
            current_game_name=poll.game_name,
            segments=state.segments[:-1] + [closed, opened],
        )
        return new_state, GameChanged(closed, opened, state.stream_started_at)

    def _go_offline(self, state):
        # The stream ended when it was first seen offline, not when grace ran out.
        ended_at = state.grace_deadline - self.grace_period
        segments = list(state.segments)
        segments[-1] = replace(segments[-1], ended_at=ended_at)
        transition = WentOffline(tuple(segments), state.stream_started_at, ended_at)
        return ChannelState(), transition
