"""Remote browser session lifecycle.

A session is a pre-authenticated browser context living on the backend,
created by injecting a cookie. SessionManager caches at most one of them.
"""

import asyncio
from typing import Any, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from .config import ClientConfig, SessionCookie, build_headers
from .credentials import CredentialResolver, EnvCredentials, resolve_api_key
from .errors import SessionCreateFailedError, SessionDestroyFailedError, SessionNotFoundError, UnauthorizedError
from .results import SessionHandle
from .retry import CadenceGate
from .utils import get_str, request_error, response_detail


class SessionManager:
    """Single-session cache over the session lifecycle endpoint.

    The cached handle is guarded by a lock, so concurrent ``ensure_session()``
    calls with no live session produce exactly one create request and all
    receive the same identifier.

    Example::

        async with SessionManager() as sessions:
            session_id = await sessions.ensure_session(SessionCookie.from_raw(raw_cookie))
            ...
            await sessions.destroy_session()
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        credentials: Optional[CredentialResolver] = None,
        *,
        cadence: Optional[CadenceGate] = None,
    ):
        self._config = config or ClientConfig()
        self._credentials = credentials or EnvCredentials()
        self._client = client
        self._owns_client = client is None
        self._cadence = cadence
        self._lock = asyncio.Lock()
        self._handle: Optional[SessionHandle] = None

    @property
    def current_session(self) -> Optional[SessionHandle]:
        """The cached session, or None."""
        return self._handle

    @property
    def session_id(self) -> Optional[str]:
        return self._handle.session_id if self._handle else None

    def _ensure_ready(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.request_timeout_s)
        return self._client

    async def ensure_session(self, cookie: Optional[SessionCookie] = None) -> str:
        """Return the live session id, creating a session if none is cached.

        Args:
            cookie: Credential for a new session (default: the resolver's cookie).
                    Ignored when a session is already live.

        Returns:
            Session identifier
        """
        async with self._lock:
            if self._handle is not None:
                return self._handle.session_id
            return await self._create_locked(cookie)

    async def create_session(self, cookie: Optional[SessionCookie] = None) -> str:
        """Create a new session and cache it, replacing any cached handle.

        Raises:
            UnauthorizedError: No cookie available, or the backend answered 401/403
            SessionCreateFailedError: Other non-2xx status or a malformed response
            NetworkError: Transport failure
            InvalidResponseError: Body could not be decoded
        """
        async with self._lock:
            return await self._create_locked(cookie)

    async def _create_locked(self, cookie: Optional[SessionCookie]) -> str:
        cookie = cookie or self._credentials.session_cookie()
        if cookie is None:
            raise UnauthorizedError("No session cookie configured", status_code=None)

        headers = build_headers(resolve_api_key(self._config.api_key, self._credentials))
        client = self._ensure_ready()
        if self._cadence is not None:
            await self._cadence.wait()

        logger.info("session.create domain={}", cookie.domain)
        try:
            response = await client.post(
                self._config.sessions_url,
                json={'cookies': [cookie.to_dict()]},
                headers=headers,
            )
        except httpx.RequestError as e:
            raise request_error(e) from e

        if response.status_code in (401, 403):
            raise UnauthorizedError("Session endpoint rejected the credentials", status_code=response.status_code)
        if not 200 <= response.status_code < 300:
            raise SessionCreateFailedError(response_detail(response))

        try:
            body = response.json()
        except ValueError as e:
            raise SessionCreateFailedError("response is not JSON") from e
        session_id = get_str(body, 'session_id')
        if not session_id:
            raise SessionCreateFailedError("response has no session_id")

        if self._handle is not None:
            logger.info("session.replace previous={}", self._handle.session_id)
        self._handle = SessionHandle(session_id=session_id, cdp_url=get_str(body, 'cdp_url'), cookie=cookie)
        logger.info("session.created session_id={}", session_id)
        return session_id

    async def destroy_session(self) -> None:
        """Destroy the cached session and clear the cache.

        Raises:
            SessionNotFoundError: No session is cached
            SessionDestroyFailedError: Non-2xx response (the cache is kept)
            NetworkError: Transport failure (the cache is kept)
        """
        async with self._lock:
            if self._handle is None:
                raise SessionNotFoundError()

            session_id = self._handle.session_id
            headers = build_headers(resolve_api_key(self._config.api_key, self._credentials))
            client = self._ensure_ready()
            if self._cadence is not None:
                await self._cadence.wait()

            logger.info("session.destroy session_id={}", session_id)
            try:
                response = await client.delete(
                    f"{self._config.sessions_url}/{quote(session_id, safe='')}",
                    headers=headers,
                )
            except httpx.RequestError as e:
                raise request_error(e) from e

            if not 200 <= response.status_code < 300:
                raise SessionDestroyFailedError(response_detail(response))

            self._handle = None
            logger.info("session.destroyed session_id={}", session_id)

    async def invalidate(self) -> None:
        """Forget the cached session without contacting the backend."""
        async with self._lock:
            self._handle = None

    async def close(self) -> None:
        """Close the HTTP client if this instance created it.

        Does not destroy the session; call :meth:`destroy_session` first.
        """
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> 'SessionManager':
        self._ensure_ready()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
