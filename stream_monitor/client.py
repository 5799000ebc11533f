"""Shared HTTP client with bounded concurrency, retries and rate-limit handling."""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from .errors import (
    FatalRequestError,
    RateLimitedError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

# Wait applied to a 429 response that carries no usable Retry-After header
DEFAULT_RATE_LIMIT_WAIT = 10.0


@dataclass
class ApiRequest:
    """A pre-authorized request. ``endpoint`` groups requests sharing a rate limit."""

    method: str
    url: str
    endpoint: str = "default"
    params: Any = None
    json: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


def _header_float(response, name):
    value = response.headers.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        logger.error("Failed to parse %s header %r", name, value)
        return None


class RateLimitedClient:
    """Sends requests for both the poller and the dispatcher.

    At most ``max_concurrency`` requests are in flight at once. Timeouts,
    connection errors, 5xx and 429 responses are retried with exponential
    backoff up to ``max_attempts`` attempts; any other failure is raised
    immediately. Rate-limit hints returned by the server block further calls to
    the same endpoint class until they expire.
    """

    def __init__(self, max_concurrency=4, timeout=10.0, max_attempts=5,
                 min_backoff=1.0, max_backoff=16.0, session=None,
                 sleep=time.sleep, clock=time.monotonic, wall_clock=time.time):
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff
        self.session = session or requests.Session()
        self._slots = threading.BoundedSemaphore(max_concurrency)
        self._sleep = sleep
        self._clock = clock
        self._wall_clock = wall_clock
        self._lock = threading.Lock()
        self._blocked_until = {}

    @classmethod
    def from_config(cls, config):
        return cls(
            max_concurrency=config.max_concurrency,
            timeout=config.request_timeout,
            max_attempts=config.max_attempts,
        )

    def call(self, request):
        """Send ``request`` and return the successful response.

        Raises a ClientError subclass once retries are exhausted or on a
        failure that cannot be retried.
        """
        backoff = self.min_backoff
        error = None

        for attempt in range(1, self.max_attempts + 1):
            self._wait_for_endpoint(request.endpoint)

            with self._slots:
                try:
                    response = self._send(request)
                except requests.Timeout as e:
                    error = TransientNetworkError(f"Request timed out: {e}")
                except (requests.ConnectionError, requests.exceptions.ChunkedEncodingError) as e:
                    error = TransientNetworkError(f"Connection error: {e}")
                except requests.RequestException as e:
                    raise FatalRequestError(f"Invalid request: {e}") from e
                else:
                    self._record_hints(request.endpoint, response)
                    error = self._classify(response)
                    if error is None:
                        return response

            if not error.retryable:
                raise error

            if attempt == self.max_attempts:
                break

            if isinstance(error, RateLimitedError):
                # The endpoint block set by _record_hints covers the wait
                logger.warning("Rate limited on %s, retrying after %.1f seconds (attempt %d/%d)",
                               request.endpoint, error.retry_after, attempt, self.max_attempts)
                continue

            logger.warning("%s on %s, retrying in %.1f seconds (attempt %d/%d)",
                           error, request.endpoint, backoff, attempt, self.max_attempts)
            self._sleep(backoff)
            backoff = min(backoff * 2, self.max_backoff)

        logger.error("Giving up on %s %s after %d attempts: %s",
                     request.method, request.url, self.max_attempts, error)
        raise error

    def _send(self, request):
        return self.session.request(
            request.method,
            request.url,
            params=request.params,
            json=request.json,
            headers=request.headers,
            timeout=self.timeout,
        )

    @staticmethod
    def _classify(response):
        status = response.status_code
        if 200 <= status < 300:
            return None
        if status == 429:
            retry_after = _header_float(response, "Retry-After")
            if retry_after is None:
                retry_after = DEFAULT_RATE_LIMIT_WAIT
            return RateLimitedError("HTTP 429 Too Many Requests", retry_after=retry_after)
        if status >= 500:
            return TransientNetworkError(f"Server error: HTTP {status}", status_code=status)
        return FatalRequestError(f"HTTP {status}: {response.text[:200]}", status_code=status)

    def _record_hints(self, endpoint, response):
        """Remember how long ``endpoint`` must stay quiet according to the server."""
        delay = None

        if response.status_code == 429:
            delay = _header_float(response, "Retry-After")
            if delay is None:
                delay = DEFAULT_RATE_LIMIT_WAIT
        elif response.headers.get("Ratelimit-Remaining") == "0":
            # Helix reports the bucket reset as an epoch timestamp
            reset = _header_float(response, "Ratelimit-Reset")
            if reset is not None:
                delay = reset - self._wall_clock()
        elif response.headers.get("X-RateLimit-Remaining") == "0":
            delay = _header_float(response, "X-RateLimit-Reset-After")

        if delay is None or delay <= 0:
            return

        until = self._clock() + delay
        with self._lock:
            if until > self._blocked_until.get(endpoint, 0):
                self._blocked_until[endpoint] = until
        logger.debug("Endpoint %s rate limited for %.1f seconds", endpoint, delay)

    def _wait_for_endpoint(self, endpoint):
        with self._lock:
            until = self._blocked_until.get(endpoint)
        if until is None:
            return
        delay = until - self._clock()
        if delay > 0:
            logger.info("Waiting %.1f seconds for %s rate limit to reset", delay, endpoint)
            self._sleep(delay)
