"""Retry budget, backoff and request cadence."""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from .errors import AgentFetchError, HttpError, NetworkError, RateLimitedError

T = TypeVar('T')

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]
# (error, attempt) -> seconds to wait before the next attempt, or None for "do not retry"
ClassifyFn = Callable[[AgentFetchError, int], Optional[float]]


@dataclass
class RetryConfig:
    """Attempt budget and timing.

    Args:
        max_attempts: Total attempts including the first one (default: 3)
        backoff_ms: Base backoff, doubled per attempt: 1s, 2s, 4s (default: 1000)
        rate_limit_wait_ms: Wait after a 429 without Retry-After (default: 5000)
        min_interval_ms: Minimum spacing between request starts (default: 1000)
    """
    max_attempts: int = 3
    backoff_ms: int = 1000
    rate_limit_wait_ms: int = 5000
    min_interval_ms: int = 1000

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def backoff_s(self, attempt: int) -> float:
        """Backoff after the 0-based *attempt* failed."""
        return self.backoff_ms * (2 ** attempt) / 1000.0

    @property
    def rate_limit_wait_s(self) -> float:
        return self.rate_limit_wait_ms / 1000.0

    @property
    def min_interval_s(self) -> float:
        return self.min_interval_ms / 1000.0


@dataclass
class RetryState:
    """Per-call attempt bookkeeping.

    Attributes:
        attempt: 0-based index of the current attempt
        last_error: Most recent failure, if any
        last_request_at: Monotonic start time of the latest attempt
        next_delay_s: Sleep chosen before the next attempt (set while retrying)
    """
    attempt: int = 0
    last_error: Optional[AgentFetchError] = None
    last_request_at: Optional[float] = None
    next_delay_s: Optional[float] = None


class CadenceGate:
    """Enforces a minimum interval between request starts.

    Shared by every call made through one client, so concurrent callers are
    spaced against each other as well as against their own retries. The start
    time is recorded when the gate opens, before the request is sent, which
    keeps the spacing intact when that request is later cancelled.
    """

    def __init__(
        self,
        min_interval_s: float,
        *,
        _sleep: SleepFn = asyncio.sleep,
        _clock: ClockFn = time.monotonic,
    ):
        self.min_interval_s = min_interval_s
        self._sleep = _sleep
        self._clock = _clock
        self._lock = asyncio.Lock()
        self._last_start: Optional[float] = None

    @property
    def last_start(self) -> Optional[float]:
        return self._last_start

    async def wait(self) -> float:
        """Wait until a request may start; returns the recorded start time."""
        async with self._lock:
            now = self._clock()
            if self._last_start is not None:
                remaining = self.min_interval_s - (now - self._last_start)
                if remaining > 0:
                    logger.debug("cadence.wait seconds={:.3f}", remaining)
                    await self._sleep(remaining)
                    now = self._clock()
            self._last_start = now
            return now


def classify_transient(config: RetryConfig) -> ClassifyFn:
    """Retry policy for goal execution.

    Transport failures and 5xx back off exponentially, 429 waits for the
    server's Retry-After (or the configured default). Everything else is
    terminal.
    """
    def classify(error: AgentFetchError, attempt: int) -> Optional[float]:
        if isinstance(error, NetworkError):
            return config.backoff_s(attempt)
        if isinstance(error, RateLimitedError):
            if error.retry_after is not None:
                return error.retry_after
            return config.rate_limit_wait_s
        if isinstance(error, HttpError) and error.is_server_error:
            return config.backoff_s(attempt)
        return None

    return classify


def classify_rate_limit_only(config: RetryConfig) -> ClassifyFn:
    """Retry policy for structured queries: only 429 is retried."""
    def classify(error: AgentFetchError, attempt: int) -> Optional[float]:
        if isinstance(error, RateLimitedError):
            return config.backoff_s(attempt)
        return None

    return classify


async def execute_with_retry(
    operation: Callable[[RetryState], Awaitable[T]],
    *,
    config: RetryConfig,
    classify: ClassifyFn,
    cadence: Optional[CadenceGate] = None,
    sleep: SleepFn = asyncio.sleep,
    on_retry: Optional[Callable[[RetryState], None]] = None,
    label: str = 'request',
) -> T:
    """Run *operation* under the attempt budget.

    Each attempt first passes the cadence gate. A failure is retried only when
    *classify* returns a delay and attempts remain; otherwise it is raised
    unchanged.

    Args:
        operation: Coroutine factory receiving the live RetryState
        config: Attempt budget and timing
        classify: Maps a failure to a delay, or None when it is terminal
        cadence: Shared request spacing gate
        sleep: Sleep used between attempts
        on_retry: Observer called before each backoff sleep
        label: Name used in log lines

    Returns:
        The first successful result of *operation*
    """
    state = RetryState()
    for attempt in range(config.max_attempts):
        state.attempt = attempt
        state.next_delay_s = None
        if cadence is not None:
            state.last_request_at = await cadence.wait()
        try:
            return await operation(state)
        except AgentFetchError as e:
            state.last_error = e
            delay = classify(e, attempt)
            if delay is None:
                logger.error("{}.failed attempt={} error={}", label, attempt, e)
                raise
            if attempt == config.max_attempts - 1:
                logger.error("{}.exhausted attempts={} error={}", label, config.max_attempts, e)
                raise
            state.next_delay_s = delay
            logger.warning("{}.retry attempt={} delay={:.1f}s error={}", label, attempt, delay, e)
            if on_retry is not None:
                on_retry(state)
            await sleep(delay)

    # max_attempts >= 1 is enforced by RetryConfig, so the loop always returns or raises
    raise AssertionError('unreachable')
