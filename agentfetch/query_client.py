"""StructuredQueryClient for one-shot structured extraction."""

import asyncio
from typing import Any, Mapping, Optional, Type

import httpx
from loguru import logger

from .config import DEFAULT_QUERY_PARAMS, ClientConfig, QueryRequest, build_headers
from .credentials import CredentialResolver, EnvCredentials, resolve_api_key
from .errors import HttpError, InvalidResponseError, RateLimitedError, UnauthorizedError
from .retry import CadenceGate, RetryState, SleepFn, classify_rate_limit_only, execute_with_retry
from .schema import validate_and_parse
from .utils import parse_retry_after, request_error, response_detail


class StructuredQueryClient:
    """Client for the structured query endpoint.

    Sends ``{url, query, params}`` and returns the ``data`` field of the
    response. Only rate limiting is retried (exponential backoff, at most
    ``retry.max_attempts`` attempts in total); 401 and other HTTP errors fail
    on the first response.

    Two creation modes:

    - **Standalone**: creates and owns its ``httpx.AsyncClient``. Use as an
      async context manager to ensure cleanup.
    - **Bound** (``client=...``, as done by the orchestrator): reuses the
      caller's HTTP client and cadence gate. ``close()`` leaves it open.

    Example::

        from agentfetch import StructuredQueryClient, QueryRequest

        async with StructuredQueryClient() as queries:
            data = await queries.query(QueryRequest(
                url='https://example.com/products',
                query='{ products[] { name price } }',
            ))
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        credentials: Optional[CredentialResolver] = None,
        *,
        cadence: Optional[CadenceGate] = None,
        _sleep: SleepFn = asyncio.sleep,
    ):
        self._config = config or ClientConfig()
        self._credentials = credentials or EnvCredentials()
        self._client = client
        self._owns_client = client is None
        self._cadence = cadence
        self._sleep = _sleep

    def _ensure_ready(self) -> httpx.AsyncClient:
        """Create the HTTP client on first use in standalone mode."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.request_timeout_s)
        return self._client

    async def query(self, request: QueryRequest, schema: Optional[Type] = None) -> Any:
        """Execute one structured query.

        Args:
            request: Target URL, query expression and params. Empty params
                     default to ``{"browser_profile": "stealth"}``.
            schema: Optional Pydantic model / dataclass for the returned data

        Returns:
            The decoded ``data`` value (or a *schema* instance)

        Raises:
            UnauthorizedError: 401
            RateLimitedError: 429 on every attempt
            HttpError: Any other non-2xx status
            NetworkError: Transport failure
            InvalidResponseError: Body is not JSON, cannot be decoded or has no ``data``
        """
        if not request.params:
            request = request.with_params(**DEFAULT_QUERY_PARAMS)
        headers = build_headers(resolve_api_key(self._config.api_key, self._credentials))
        client = self._ensure_ready()

        logger.info("query.start url={}", request.url)

        async def attempt(state: RetryState) -> Any:
            return await self._post_once(client, request, headers)

        data = await execute_with_retry(
            attempt,
            config=self._config.retry,
            classify=classify_rate_limit_only(self._config.retry),
            cadence=self._cadence,
            sleep=self._sleep,
            label='query',
        )
        return validate_and_parse(data, schema)

    async def query_raw(
        self,
        url: str,
        query: str,
        params: Optional[Mapping[str, str]] = None,
        schema: Optional[Type] = None,
    ) -> Any:
        """Shorthand for :meth:`query` without building a QueryRequest."""
        return await self.query(QueryRequest(url=url, query=query, params=dict(params or {})), schema=schema)

    async def _post_once(
        self,
        client: httpx.AsyncClient,
        request: QueryRequest,
        headers: Mapping[str, str],
    ) -> Any:
        try:
            response = await client.post(self._config.query_url, json=request.to_dict(), headers=dict(headers))
        except httpx.RequestError as e:
            raise request_error(e) from e

        logger.debug("query.response status={} bytes={}", response.status_code, len(response.content))

        status = response.status_code
        if status == 401:
            raise UnauthorizedError("Structured query rejected the API key", status_code=401)
        if status == 429:
            raise RateLimitedError(retry_after=parse_retry_after(response.headers.get('Retry-After')))
        if not 200 <= status < 300:
            raise HttpError(status, response_detail(response))

        try:
            body = response.json()
        except ValueError as e:
            raise InvalidResponseError("Structured query response is not JSON") from e
        if not isinstance(body, dict) or body.get('data') is None:
            raise InvalidResponseError("Structured query response has no 'data' field")
        return body['data']

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> 'StructuredQueryClient':
        self._ensure_ready()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
