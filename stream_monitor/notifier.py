"""Notification dispatcher for sending stream events to the configured sink."""
import logging

from .client import ApiRequest
from .errors import ClientError
from .models import GameChanged, WentLive, WentOffline, format_timestamp

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Turns transitions into event payloads and posts them to the webhook sink."""

    def __init__(self, client, webhook_url, enabled_events=("live", "update", "vod"),
                 top_clips=0):
        """Initialize the dispatcher with the shared client and sink settings."""
        self.client = client
        self.webhook_url = webhook_url
        self.enabled_events = set(enabled_events)
        self.top_clips = top_clips

    @classmethod
    def from_config(cls, config, client):
        return cls(client, config.notify_webhook_url,
                   enabled_events=config.enabled_events, top_clips=config.top_clips)

    def build_payload(self, channel_id, transition):
        """Build the event payload handed to the external formatter."""
        payload = {
            "channelId": channel_id,
            "eventType": transition.event_type,
        }

        if isinstance(transition, WentLive):
            payload.update({
                "gameId": transition.game_id,
                "gameName": transition.game_name,
                "startedAt": format_timestamp(transition.started_at),
            })
        elif isinstance(transition, GameChanged):
            payload.update({
                "gameId": transition.new.game_id,
                "gameName": transition.new.game_name,
                "previousGameId": transition.old.game_id,
                "previousGameName": transition.old.game_name,
                "startedAt": format_timestamp(transition.started_at),
            })
        elif isinstance(transition, WentOffline):
            last = transition.segments[-1] if transition.segments else None
            payload.update({
                "gameId": last.game_id if last else None,
                "gameName": last.game_name if last else None,
                "startedAt": format_timestamp(transition.started_at),
                "endedAt": format_timestamp(transition.ended_at),
                "segments": [segment.to_dict() for segment in transition.segments],
                "topClips": self.top_clips,
            })
        else:
            raise ValueError(f"Cannot build a payload for {transition!r}")

        return payload

    def dispatch(self, channel_id, transition):
        """Deliver one transition, returning False if delivery failed.

        Failures are logged and never requeued.
        """
        if transition.event_type is None:
            return True

        if transition.event_type not in self.enabled_events:
            logger.debug("Event %s disabled, not notifying for %s",
                         transition.event_type, channel_id)
            return True

        payload = self.build_payload(channel_id, transition)
        request = ApiRequest("POST", self.webhook_url, endpoint="webhook", json=payload)

        try:
            self.client.call(request)
        except ClientError as e:
            logger.error("Failed to deliver %s event for %s: %s",
                         transition.event_type, channel_id, e)
            return False

        logger.info("Delivered %s event for %s", transition.event_type, channel_id)
        return True
