"""agentfetch - resilient async client for goal-based web automation."""

from loguru import logger

from .orchestrator import GoalExecutionOrchestrator
from .config import (
    ClientConfig,
    GoalRequest,
    ProxyConfig,
    QueryRequest,
    FetchRequest,
    SessionCookie,
    BrowserProfile,
)
from .results import (
    ProgressEvent,
    CompletionEvent,
    CompletionStatus,
    AgentErrorInfo,
    StreamEvent,
    SessionHandle,
)
from .query_client import StructuredQueryClient
from .session import SessionManager
from .sse import StreamEventDecoder, decode_line, iter_events
from .retry import RetryConfig, RetryState, CadenceGate, execute_with_retry
from .credentials import CredentialResolver, StaticCredentials, EnvCredentials
from .schema import validate_and_parse
from .utils import is_valid_profile_urn
from .profiles import Profile, map_profile
from .errors import (
    AgentFetchError,
    ConfigurationError,
    ApiKeyNotConfiguredError,
    UnauthorizedError,
    RateLimitedError,
    HttpError,
    NetworkError,
    InvalidResponseError,
    AgentFailedError,
    StreamTerminatedEarlyError,
    SessionError,
    SessionNotFoundError,
    SessionCreateFailedError,
    SessionDestroyFailedError,
)

from typing import Any, Callable, Optional, Type

logger.disable('agentfetch')


async def run_goal(
    url: str,
    goal: str,
    on_progress: Optional[Callable[[str], None]] = None,
    *,
    config: Optional[ClientConfig] = None,
    schema: Optional[Type] = None,
    timeout_s: Optional[float] = None,
) -> Any:
    """Run one goal without managing an orchestrator.

    Creates a :class:`GoalExecutionOrchestrator`, runs the goal and closes it.
    Prefer a long-lived orchestrator for batches so request spacing is shared.

    Example:
        >>> from agentfetch import run_goal
        >>> result = await run_goal(
        ...     'https://example.com',
        ...     'Return the page heading as {"heading": "..."}',
        ...     on_progress=print,
        ... )
    """
    async with GoalExecutionOrchestrator(config) as agent:
        return await agent.run_goal(url, goal, on_progress, schema=schema, timeout_s=timeout_s)


async def query(
    url: str,
    query: str,
    params: Optional[dict] = None,
    *,
    config: Optional[ClientConfig] = None,
    schema: Optional[Type] = None,
) -> Any:
    """Run one structured query with a short-lived :class:`StructuredQueryClient`.

    Example:
        >>> from agentfetch import query
        >>> data = await query('https://example.com/products', '{ products[] { name price } }')
    """
    async with StructuredQueryClient(config) as client:
        return await client.query_raw(url, query, params, schema=schema)


__version__ = '0.1.0'

__all__ = [
    # Main classes
    'GoalExecutionOrchestrator',
    'StructuredQueryClient',
    'SessionManager',

    # Configuration
    'ClientConfig',
    'RetryConfig',
    'GoalRequest',
    'ProxyConfig',
    'QueryRequest',
    'FetchRequest',
    'SessionCookie',
    'BrowserProfile',

    # Credentials
    'CredentialResolver',
    'StaticCredentials',
    'EnvCredentials',

    # Events / Results
    'ProgressEvent',
    'CompletionEvent',
    'CompletionStatus',
    'AgentErrorInfo',
    'StreamEvent',
    'SessionHandle',

    # Stream decoding
    'StreamEventDecoder',
    'decode_line',
    'iter_events',

    # Retry
    'RetryState',
    'CadenceGate',
    'execute_with_retry',

    # Standalone functions
    'run_goal',
    'query',

    # Utilities
    'validate_and_parse',
    'is_valid_profile_urn',
    'Profile',
    'map_profile',

    # Exceptions
    'AgentFetchError',
    'ConfigurationError',
    'ApiKeyNotConfiguredError',
    'UnauthorizedError',
    'RateLimitedError',
    'HttpError',
    'NetworkError',
    'InvalidResponseError',
    'AgentFailedError',
    'StreamTerminatedEarlyError',
    'SessionError',
    'SessionNotFoundError',
    'SessionCreateFailedError',
    'SessionDestroyFailedError',
]
