"""Exception types for agentfetch.

Every failure surfaced by the clients is one of the classes below. Raw
transport status codes never reach callers on their own; they travel as
attributes of these exceptions.
"""

from typing import Optional


class AgentFetchError(Exception):
    """Base exception for agentfetch."""


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigurationError(AgentFetchError):
    """Base exception for configuration problems detected before any request."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when no API key was given and the credential resolver has none."""


# =============================================================================
# TRANSPORT / HTTP
# =============================================================================


class UnauthorizedError(AgentFetchError):
    """The backend rejected the API key or the session credential."""

    def __init__(self, message: str = "Unauthorized", status_code: Optional[int] = 401):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(AgentFetchError):
    """HTTP 429 persisted after every allowed attempt.

    Attributes:
        retry_after: Server-advertised wait in seconds, when it sent one
    """

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class HttpError(AgentFetchError):
    """Non-2xx response that is neither 401 nor 429."""

    def __init__(self, status_code: int, detail: str = ""):
        message = f"HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600


class NetworkError(AgentFetchError):
    """Connection refused, DNS failure, timeout or a broken stream."""

    def __init__(self, detail: str):
        super().__init__(f"Network error: {detail}")
        self.detail = detail


class InvalidResponseError(AgentFetchError):
    """The response body did not have the expected shape."""

    def __init__(self, detail: str = "Invalid response"):
        super().__init__(detail)
        self.detail = detail


# =============================================================================
# AGENT / STREAM
# =============================================================================


class AgentFailedError(AgentFetchError):
    """The remote agent reported that it could not achieve the goal."""

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[str] = None):
        super().__init__(f"Agent failed: {message}")
        self.message = message
        self.code = code
        self.status = status


class StreamTerminatedEarlyError(AgentFetchError):
    """The event stream closed before a COMPLETE event arrived."""

    def __init__(self, message: str = "Event stream ended without a COMPLETE event"):
        super().__init__(message)


# =============================================================================
# SESSIONS
# =============================================================================


class SessionError(AgentFetchError):
    """Base exception for remote browser session lifecycle errors."""


class SessionNotFoundError(SessionError):
    """No remote browser session is cached."""

    def __init__(self, message: str = "No active remote browser session"):
        super().__init__(message)


class SessionCreateFailedError(SessionError):
    def __init__(self, detail: str):
        super().__init__(f"Failed to create remote browser session: {detail}")
        self.detail = detail


class SessionDestroyFailedError(SessionError):
    def __init__(self, detail: str):
        super().__init__(f"Failed to destroy remote browser session: {detail}")
        self.detail = detail
