"""Exception types raised by the stream monitor."""


class StreamMonitorError(Exception):
    """Base class for all stream monitor errors."""


class ConfigurationError(StreamMonitorError):
    """Raised at startup when required configuration is missing or invalid."""


class PersistenceError(StreamMonitorError):
    """Raised when channel state could not be written to the store."""


class ClientError(StreamMonitorError):
    """An outbound API call failed."""

    retryable = False

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class RetryableError(ClientError):
    """A failure that may succeed if the call is attempted again."""

    retryable = True


class TransientNetworkError(RetryableError):
    """Timeout, connection failure or a 5xx response."""


class RateLimitedError(RetryableError):
    """The server rejected the call with 429 Too Many Requests."""

    def __init__(self, message, retry_after=None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class MalformedResponseError(RetryableError):
    """The response body could not be deserialized."""


class FatalRequestError(ClientError):
    """A failure that will not go away by retrying (4xx other than 429)."""
