"""Twitch Helix stream status queries."""
import logging

from .client import ApiRequest
from .errors import MalformedResponseError
from .models import PollResult, parse_timestamp

logger = logging.getLogger(__name__)

HELIX_URL = "https://api.twitch.tv/helix"


class TwitchClient:
    """Queries Helix for the live status of batches of channels.

    Credentials are obtained elsewhere: ``token_provider`` is called before
    every request and must return a currently valid app access token.
    """

    def __init__(self, client, client_id, token_provider, base_url=HELIX_URL):
        self.client = client
        self.client_id = client_id
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_config(cls, config, client):
        token = config.twitch_access_token
        return cls(client, config.twitch_client_id, lambda: token)

    def _headers(self):
        return {
            "Client-ID": self.client_id,
            "Authorization": f"Bearer {self.token_provider()}",
        }

    def get_streams(self, logins, observed_at):
        """Return a PollResult for every login that Helix reports as live.

        Logins missing from the result are offline. Raises ClientError when the
        query fails and MalformedResponseError when the body cannot be read.
        """
        params = [("user_login", login) for login in logins]
        params.append(("first", str(len(logins))))
        request = ApiRequest("GET", f"{self.base_url}/streams", endpoint="helix",
                             params=params, headers=self._headers())

        response = self.client.call(request)
        try:
            entries = response.json()["data"]
            results = {}
            for entry in entries:
                result = self._parse_stream(entry, observed_at)
                results[result.channel_id] = result
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise MalformedResponseError(f"Malformed /streams response: {e}") from e

        logger.debug("Helix reports %d of %d channels live", len(results), len(logins))
        return results

    @staticmethod
    def _parse_stream(entry, observed_at):
        return PollResult(
            channel_id=entry["user_login"].lower(),
            is_live=entry.get("type") == "live",
            game_id=entry.get("game_id") or None,
            game_name=entry.get("game_name") or None,
            started_at=parse_timestamp(entry.get("started_at")),
            observed_at=observed_at,
        )
