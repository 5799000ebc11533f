"""
Pytest configuration
Provides common fixtures for building configs, responses and fake clocks
"""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import requests

from stream_monitor.config import MonitorConfig


def make_response(status_code=200, body=None, headers=None):
    """Build a real requests.Response with the given status, JSON body and headers."""
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body if body is not None else {}).encode()
    response.headers.update(headers or {})
    response.encoding = "utf-8"
    return response


def stream_entry(login, game_id="509658", game_name="Just Chatting",
                 started_at="2024-05-01T18:00:00Z", kind="live"):
    """A /helix/streams data entry as Twitch returns it."""
    return {
        "id": "40952121085",
        "user_id": "101051819",
        "user_login": login,
        "user_name": login.capitalize(),
        "game_id": game_id,
        "game_name": game_name,
        "type": kind,
        "title": "test stream",
        "started_at": started_at,
    }


class FakeClock:
    """Monotonic clock whose sleep just advances time."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def t0():
    return datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def minute():
    return timedelta(minutes=1)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def session():
    """A mock requests.Session; set session.request.side_effect per test."""
    return Mock(spec=requests.Session)


@pytest.fixture
def config(tmp_path):
    """Configuration for tests (no real credentials needed)"""
    return MonitorConfig(
        twitch_client_id="test_client_id",
        twitch_access_token="test_token",
        channels=["alpha", "bravo", "charlie"],
        polling_interval=60,
        offline_grace_minutes=2,
        batch_size=100,
        max_concurrency=2,
        notify_webhook_url="https://hooks.example.com/stream-events",
        cache_path=str(tmp_path / "cache"),
        log_dir=str(tmp_path / "logs"),
    )
