"""GoalExecutionOrchestrator: one entry point over the goal, query and session endpoints."""

import asyncio
import dataclasses
import time
import warnings
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Dict, List, Literal, Mapping, Optional, Type

import httpx
from loguru import logger

from .config import DEFAULT_QUERY_PARAMS, BrowserProfile, ClientConfig, FetchRequest, GoalRequest, ProxyConfig, QueryRequest, SessionCookie, build_headers
from .credentials import CredentialResolver, EnvCredentials, resolve_api_key
from .errors import AgentFailedError, AgentFetchError, HttpError, InvalidResponseError, RateLimitedError, StreamTerminatedEarlyError, UnauthorizedError
from .query_client import StructuredQueryClient
from .results import CompletionEvent, ProgressEvent, StreamEvent
from .retry import CadenceGate, ClockFn, RetryState, SleepFn, classify_transient, execute_with_retry
from .schema import validate_and_parse
from .session import SessionManager
from .sse import decode_completion, iter_events
from .utils import parse_retry_after, request_error, response_detail

EventType = Literal['progress', 'retry']
ProgressCallback = Callable[[str], None]


class GoalExecutionOrchestrator:
    """Runs natural-language goals against the remote agent.

    Submits the goal over the event-stream endpoint, hands progress to the
    caller while the agent works, and returns the decoded result. Transport
    failures, 429 and 5xx are retried (3 attempts in total by default); other
    4xx responses and failures reported by the agent itself are raised on
    first occurrence. Every request start, including structured queries and
    session calls made through this instance, is spaced by
    ``retry.min_interval_ms``.

    Example:
        >>> from agentfetch import GoalExecutionOrchestrator
        >>>
        >>> # Minimal usage - uses the TINYFISH_API_KEY env var
        >>> async with GoalExecutionOrchestrator() as agent:
        ...     result = await agent.run_goal(
        ...         'https://news.ycombinator.com',
        ...         'Return the titles of the top 5 stories as {"titles": [...]}',
        ...         on_progress=print,
        ...     )
        >>>
        >>> # Fast path with fallback to the agent
        >>> from agentfetch import FetchRequest
        >>> data = await agent.fetch(FetchRequest(
        ...     url='https://example.com/pricing',
        ...     query='{ plans[] { name price } }',
        ...     goal='List every plan with its monthly price',
        ... ))
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        credentials: Optional[CredentialResolver] = None,
        client: Optional[httpx.AsyncClient] = None,
        *,
        _sleep: SleepFn = asyncio.sleep,
        _clock: ClockFn = time.monotonic,
    ):
        """Initialize the orchestrator.

        Args:
            config: Endpoints, defaults, timeouts and retry budget (default: ClientConfig())
            credentials: API key / session cookie source (default: EnvCredentials())
            client: HTTP client to use. When omitted the orchestrator creates one
                    and closes it in :meth:`close`.
        """
        self.config = config or ClientConfig()
        self.credentials = credentials or EnvCredentials()

        self._client = client or httpx.AsyncClient(timeout=self.config.request_timeout_s)
        self._owns_client = client is None
        self._sleep = _sleep
        self._cadence = CadenceGate(self.config.retry.min_interval_s, _sleep=_sleep, _clock=_clock)

        self._queries = StructuredQueryClient(
            self.config, client=self._client, credentials=self.credentials, cadence=self._cadence, _sleep=_sleep,
        )
        self._sessions = SessionManager(
            self.config, client=self._client, credentials=self.credentials, cadence=self._cadence,
        )
        self._callbacks: Dict[str, List[Callable[[Any], None]]] = {'progress': [], 'retry': []}

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def queries(self) -> StructuredQueryClient:
        return self._queries

    def on(self, event_type: EventType, callback: Callable[[Any], None]):
        """Register event callback.

        Args:
            event_type: 'progress' (called with the purpose string of every
                        progress event of every goal) or 'retry' (called with a
                        RetryState copy before each backoff sleep)
            callback: Callback function invoked with the event payload

        Example:
            >>> agent.on('progress', lambda purpose: print(f'> {purpose}'))
            >>> agent.on('retry', lambda state: print(f'retrying in {state.next_delay_s}s'))
        """
        if event_type not in self._callbacks:
            raise ValueError(f"Unknown event type: {event_type!r}")
        self._callbacks[event_type].append(callback)

    def _emit(self, event_type: EventType, payload: Any):
        for callback in self._callbacks[event_type]:
            callback(payload)

    def _emit_retry(self, state: RetryState):
        self._emit('retry', dataclasses.replace(state))

    def _headers(self, accept: str = 'application/json') -> Dict[str, str]:
        return build_headers(resolve_api_key(self.config.api_key, self.credentials), accept)

    def _stream_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.config.request_timeout_s, read=self.config.stream_timeout_s)

    # =========================================================================
    # GOALS
    # =========================================================================

    async def run_goal(
        self,
        url: str,
        goal: str,
        on_progress: Optional[ProgressCallback] = None,
        *,
        browser_profile: Optional[BrowserProfile] = None,
        proxy: Optional[ProxyConfig] = None,
        schema: Optional[Type] = None,
        timeout_s: Optional[float] = None,
    ) -> Any:
        """Execute a goal and return the agent's JSON result.

        Args:
            url: Page the agent starts on
            goal: Natural-language instruction, ideally naming the JSON shape to return
            on_progress: Called with each progress purpose, in wire order
            browser_profile: Override ``config.default_browser_profile``
            proxy: Override ``config.default_proxy_country``
            schema: Optional Pydantic model / dataclass for the result
            timeout_s: Bound on the whole call, retries and sleeps included.
                       On expiry the stream is closed and asyncio.TimeoutError raised.

        Returns:
            Decoded ``resultJson`` ({} when the agent returned none), or a *schema* instance

        Raises:
            UnauthorizedError: 401
            RateLimitedError: 429 on every attempt
            HttpError: Other 4xx, or 5xx on every attempt
            NetworkError: Transport failure on every attempt
            InvalidResponseError: Stream body could not be decoded
            AgentFailedError: The agent reported FAILED / TIMEOUT
            StreamTerminatedEarlyError: Stream closed without a completion
        """
        request = self.config.goal_request(url, goal, browser_profile=browser_profile, proxy=proxy)
        result = await self._with_deadline(self._run_goal(request, on_progress), timeout_s)
        return validate_and_parse(result, schema)

    async def _run_goal(self, request: GoalRequest, on_progress: Optional[ProgressCallback]) -> Any:
        headers = self._headers('text/event-stream')
        logger.info("goal.start url={} profile={}", request.url, request.browser_profile)

        async def attempt(state: RetryState) -> Any:
            logger.debug("goal.attempt url={} attempt={}", request.url, state.attempt)
            return await self._stream_once(request, headers, on_progress)

        result = await execute_with_retry(
            attempt,
            config=self.config.retry,
            classify=classify_transient(self.config.retry),
            cadence=self._cadence,
            sleep=self._sleep,
            on_retry=self._emit_retry,
            label='goal',
        )
        logger.info("goal.completed url={}", request.url)
        return result

    async def _stream_once(
        self,
        request: GoalRequest,
        headers: Mapping[str, str],
        on_progress: Optional[ProgressCallback],
    ) -> Any:
        """One attempt: open the stream and drain it to the completion."""
        completion: Optional[CompletionEvent] = None
        async with aclosing(self._open_stream(request, headers)) as events:
            async for event in events:
                if isinstance(event, ProgressEvent):
                    self._notify_progress(event.purpose, on_progress)
                else:
                    completion = event

        if completion is None:
            raise StreamTerminatedEarlyError()
        _raise_for_completion(completion)
        return completion.result

    async def _open_stream(self, request: GoalRequest, headers: Mapping[str, str]) -> AsyncIterator[StreamEvent]:
        """POST the goal to the event-stream endpoint and yield decoded events.

        Status errors are raised before the first event; httpx failures are
        translated into the agentfetch error set.
        """
        try:
            async with self._client.stream(
                'POST', self.config.run_sse_url,
                json=request.to_dict(), headers=dict(headers), timeout=self._stream_timeout(),
            ) as response:
                await self._raise_for_status(response)
                async for event in iter_events(response.aiter_lines()):
                    yield event
        except httpx.RequestError as e:
            raise request_error(e) from e

    async def stream_goal(
        self,
        url: str,
        goal: str,
        *,
        browser_profile: Optional[BrowserProfile] = None,
        proxy: Optional[ProxyConfig] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Execute a goal and yield its events as they arrive.

        Yields every ProgressEvent and finally the successful CompletionEvent.
        Runs a single attempt, since events already handed out cannot be
        replayed; wrap it yourself if you need retries.

        Example:
            >>> async for event in agent.stream_goal(url, goal):
            ...     if isinstance(event, ProgressEvent):
            ...         print(event.purpose)
            ...     else:
            ...         data = event.result
        """
        request = self.config.goal_request(url, goal, browser_profile=browser_profile, proxy=proxy)
        headers = self._headers('text/event-stream')
        await self._cadence.wait()
        logger.info("goal.stream url={}", request.url)

        completion: Optional[CompletionEvent] = None
        async with aclosing(self._open_stream(request, headers)) as events:
            async for event in events:
                if isinstance(event, CompletionEvent):
                    completion = event
                    _raise_for_completion(event)
                else:
                    self._emit('progress', event.purpose)
                yield event

        if completion is None:
            logger.error("goal.stream_ended url={}", request.url)
            raise StreamTerminatedEarlyError()

    async def run_goal_blocking(
        self,
        url: str,
        goal: str,
        *,
        browser_profile: Optional[BrowserProfile] = None,
        proxy: Optional[ProxyConfig] = None,
        schema: Optional[Type] = None,
        timeout_s: Optional[float] = None,
    ) -> Any:
        """Execute a goal over the non-streaming endpoint.

        Same retry behaviour and errors as :meth:`run_goal`, without progress.
        A malformed response body raises InvalidResponseError.
        """
        request = self.config.goal_request(url, goal, browser_profile=browser_profile, proxy=proxy)
        headers = self._headers()
        logger.info("goal.start url={} mode=blocking", request.url)

        async def attempt(state: RetryState) -> Any:
            return await self._post_blocking(request, headers)

        result = await self._with_deadline(
            execute_with_retry(
                attempt,
                config=self.config.retry,
                classify=classify_transient(self.config.retry),
                cadence=self._cadence,
                sleep=self._sleep,
                on_retry=self._emit_retry,
                label='goal',
            ),
            timeout_s,
        )
        logger.info("goal.completed url={} mode=blocking", request.url)
        return validate_and_parse(result, schema)

    async def _post_blocking(self, request: GoalRequest, headers: Mapping[str, str]) -> Any:
        try:
            response = await self._client.post(
                self.config.run_url, json=request.to_dict(), headers=dict(headers), timeout=self._stream_timeout(),
            )
        except httpx.RequestError as e:
            raise request_error(e) from e

        await self._raise_for_status(response)
        try:
            body = response.json()
        except ValueError as e:
            raise InvalidResponseError("Goal response is not JSON") from e
        if not isinstance(body, dict):
            raise InvalidResponseError("Goal response is not a JSON object")

        completion = decode_completion(body)
        _raise_for_completion(completion)
        if body.get('resultJson') is None and body.get('result') is not None:
            return body['result']
        return completion.result

    async def _raise_for_status(self, response: httpx.Response):
        """Map a non-2xx goal response onto the error taxonomy."""
        status = response.status_code
        logger.debug("goal.response status={}", status)
        if 200 <= status < 300:
            return
        await response.aread()
        if status == 401:
            raise UnauthorizedError("Goal endpoint rejected the API key", status_code=401)
        if status == 429:
            raise RateLimitedError(retry_after=parse_retry_after(response.headers.get('Retry-After')))
        raise HttpError(status, response_detail(response))

    def _notify_progress(self, purpose: str, on_progress: Optional[ProgressCallback]):
        if on_progress is not None:
            on_progress(purpose)
        self._emit('progress', purpose)

    @staticmethod
    async def _with_deadline(coro, timeout_s: Optional[float]) -> Any:
        if timeout_s is None:
            return await coro
        return await asyncio.wait_for(coro, timeout_s)

    # =========================================================================
    # QUERIES / FETCH
    # =========================================================================

    async def query(
        self,
        url: str,
        query: str,
        params: Optional[Mapping[str, str]] = None,
        *,
        requires_auth: bool = False,
        schema: Optional[Type] = None,
    ) -> Any:
        """Run a structured query (fast path).

        Args:
            url: Page to query
            query: Declarative query expression
            params: Query params (default: ``{"browser_profile": "stealth"}``)
            requires_auth: Run inside the authenticated remote session,
                           creating it from the resolver's cookie if needed
            schema: Optional Pydantic model / dataclass for the result
        """
        request = QueryRequest(url=url, query=query, params=dict(params or {}))
        if requires_auth:
            session_id = await self._sessions.ensure_session()
            if not request.params:
                request = request.with_params(**DEFAULT_QUERY_PARAMS)
            request = request.with_params(session_id=session_id)
        return await self._queries.query(request, schema=schema)

    async def fetch(self, request: FetchRequest) -> Any:
        """Route a request to the structured query or the agent.

        A request with a query takes the fast path. If that response carries
        no usable data (including data the request's mapper rejects) and the
        request also has a goal, the goal is run instead. A request with only
        a goal goes straight to the agent.
        """
        if request.query:
            try:
                data = await self.query(
                    request.url, request.query, request.params,
                    requires_auth=request.requires_auth, schema=request.schema,
                )
                return _apply_mapper(request, data)
            except InvalidResponseError as e:
                if not request.goal:
                    raise
                logger.warning("fetch.fallback url={} error={}", request.url, e)
        result = await self.run_goal(request.url, request.goal, schema=request.schema)
        return _apply_mapper(request, result)

    # =========================================================================
    # SESSIONS
    # =========================================================================

    async def ensure_session(self, cookie: Optional[SessionCookie] = None) -> str:
        """Return the live session id, creating the session on first use."""
        return await self._sessions.ensure_session(cookie)

    async def destroy_session(self):
        """Destroy the live session. Raises SessionNotFoundError when there is none."""
        await self._sessions.destroy_session()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def close(self):
        """Destroy the live session, if any, and close the owned HTTP client."""
        if self._sessions.current_session is not None:
            try:
                await self._sessions.destroy_session()
            except AgentFetchError as e:
                logger.warning("session.cleanup_failed error={}", e)
                warnings.warn(f"Failed to destroy remote browser session: {e}", RuntimeWarning)
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            await self.close()
        except Exception as e:
            warnings.warn(f"Error during cleanup: {e}", RuntimeWarning)


def _raise_for_completion(event: CompletionEvent):
    if event.succeeded:
        return
    error = event.error
    raise AgentFailedError(
        error.message if error else event.status,
        code=error.code if error else None,
        status=event.status,
    )


def _apply_mapper(request: FetchRequest, data: Any) -> Any:
    if request.mapper is None:
        return data
    return request.mapper(data)
