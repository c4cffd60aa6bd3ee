"""
Unit tests for SessionManager.

Tests:
- ensure_session() - lazy creation, reuse, single create under concurrency
- create_session() - request body, error mapping, malformed responses
- destroy_session() - DELETE by id, cache handling, errors
- invalidate() / current_session
"""

import asyncio
import json

import pytest

from agentfetch import (
    InvalidResponseError,
    NetworkError,
    SessionCookie,
    SessionCreateFailedError,
    SessionDestroyFailedError,
    SessionHandle,
    SessionManager,
    SessionNotFoundError,
    StaticCredentials,
    UnauthorizedError,
)
from tests.utils.test_helpers import SESSIONS_PATH, TEST_COOKIE, MockBackend, connect_error, corrupt_body, make_config, respond


def _make_manager(backend, cookie=TEST_COOKIE):
    return SessionManager(
        make_config(),
        client=backend.client(),
        credentials=StaticCredentials(key='test-key', cookie=cookie),
    )


def _created(session_id='sess-1', **extra):
    return respond(200, json={'session_id': session_id, **extra})


# =============================================================================
# ENSURE SESSION
# =============================================================================


class TestEnsureSession:
    @pytest.mark.asyncio
    async def test_creates_on_first_call(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, _created('sess-1', cdp_url='wss://cdp.test/1'))
        sessions = _make_manager(backend)

        session_id = await sessions.ensure_session()

        assert session_id == 'sess-1'
        assert sessions.session_id == 'sess-1'
        assert sessions.current_session.cdp_url == 'wss://cdp.test/1'

    @pytest.mark.asyncio
    async def test_reuses_live_session_without_network(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, _created('sess-1'), _created('sess-2'))
        sessions = _make_manager(backend)

        first = await sessions.ensure_session()
        second = await sessions.ensure_session(SessionCookie(name='li_at', value='other', domain='.linkedin.com'))

        assert first == second == 'sess-1'
        assert len(backend.requests) == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_create_once(self):
        async def slow_create(request):
            for _ in range(5):
                await asyncio.sleep(0)
            return _created('sess-shared')(request)

        backend = MockBackend().add('POST', SESSIONS_PATH, slow_create)
        sessions = _make_manager(backend)

        ids = await asyncio.gather(*(sessions.ensure_session() for _ in range(10)))

        assert ids == ['sess-shared'] * 10
        assert len(backend.calls('POST', SESSIONS_PATH)) == 1

    @pytest.mark.asyncio
    async def test_missing_cookie_is_unauthorized(self):
        backend = MockBackend()
        sessions = _make_manager(backend, cookie=None)

        with pytest.raises(UnauthorizedError, match='cookie'):
            await sessions.ensure_session()

        assert backend.requests == []


# =============================================================================
# CREATE SESSION
# =============================================================================


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_request_body(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, _created())
        sessions = _make_manager(backend)

        await sessions.create_session(SessionCookie.from_raw('li_at=abc123'))

        request = backend.requests[0]
        assert request.headers['X-API-Key'] == 'test-key'
        assert request.headers['Content-Type'] == 'application/json'
        assert request.headers['Accept'] == 'application/json'
        assert json.loads(request.content) == {
            'cookies': [{'name': 'li_at', 'value': 'abc123', 'domain': '.linkedin.com', 'path': '/'}],
        }

    @pytest.mark.asyncio
    async def test_undecodable_body(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, corrupt_body())
        sessions = _make_manager(backend)

        with pytest.raises(InvalidResponseError):
            await sessions.create_session()

        assert sessions.current_session is None

    @pytest.mark.asyncio
    async def test_replaces_cached_session(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, _created('sess-1'), _created('sess-2'))
        sessions = _make_manager(backend)

        await sessions.ensure_session()
        await sessions.create_session()

        assert sessions.session_id == 'sess-2'

    @pytest.mark.parametrize('status', [401, 403])
    @pytest.mark.asyncio
    async def test_auth_failures(self, status):
        backend = MockBackend().add('POST', SESSIONS_PATH, respond(status))
        sessions = _make_manager(backend)

        with pytest.raises(UnauthorizedError) as exc_info:
            await sessions.create_session()

        assert exc_info.value.status_code == status
        assert sessions.current_session is None

    @pytest.mark.asyncio
    async def test_other_status_fails_with_detail(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, respond(500, text='pool exhausted'))
        sessions = _make_manager(backend)

        with pytest.raises(SessionCreateFailedError, match='pool exhausted') as exc_info:
            await sessions.create_session()

        assert exc_info.value.detail == 'pool exhausted'

    @pytest.mark.asyncio
    async def test_missing_session_id(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, respond(200, json={'cdp_url': 'wss://x'}))
        sessions = _make_manager(backend)

        with pytest.raises(SessionCreateFailedError, match='session_id'):
            await sessions.create_session()

        assert sessions.current_session is None

    @pytest.mark.asyncio
    async def test_non_json_response(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, respond(200, text='ok'))
        sessions = _make_manager(backend)

        with pytest.raises(SessionCreateFailedError):
            await sessions.create_session()

    @pytest.mark.asyncio
    async def test_network_error(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, connect_error())
        sessions = _make_manager(backend)

        with pytest.raises(NetworkError):
            await sessions.create_session()


# =============================================================================
# DESTROY SESSION
# =============================================================================


class TestDestroySession:
    @pytest.mark.asyncio
    async def test_deletes_by_id_and_clears_cache(self):
        backend = (
            MockBackend()
            .add('POST', SESSIONS_PATH, _created('sess-9'))
            .add('DELETE', f'{SESSIONS_PATH}/sess-9', respond(204))
        )
        sessions = _make_manager(backend)
        await sessions.ensure_session()

        await sessions.destroy_session()

        assert len(backend.calls('DELETE', f'{SESSIONS_PATH}/sess-9')) == 1
        assert sessions.current_session is None

    @pytest.mark.asyncio
    async def test_session_id_escaped_in_path(self):
        backend = (
            MockBackend()
            .add('POST', SESSIONS_PATH, _created('sess 1/x'))
            .add('DELETE', f'{SESSIONS_PATH}/sess 1/x', respond(204))
        )
        sessions = _make_manager(backend)
        await sessions.ensure_session()

        await sessions.destroy_session()

        request = backend.requests[-1]
        assert request.method == 'DELETE'
        assert request.url.raw_path == f'{SESSIONS_PATH}/sess%201%2Fx'.encode()
        assert request.headers['X-API-Key'] == 'test-key'
        assert sessions.current_session is None

    @pytest.mark.asyncio
    async def test_no_session(self):
        backend = MockBackend()
        sessions = _make_manager(backend)

        with pytest.raises(SessionNotFoundError):
            await sessions.destroy_session()

        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_failure_keeps_cache(self):
        backend = (
            MockBackend()
            .add('POST', SESSIONS_PATH, _created('sess-9'))
            .add('DELETE', f'{SESSIONS_PATH}/sess-9', respond(500, text='busy'))
        )
        sessions = _make_manager(backend)
        await sessions.ensure_session()

        with pytest.raises(SessionDestroyFailedError, match='busy'):
            await sessions.destroy_session()

        assert sessions.session_id == 'sess-9'

    @pytest.mark.asyncio
    async def test_new_session_after_destroy(self):
        backend = (
            MockBackend()
            .add('POST', SESSIONS_PATH, _created('sess-1'), _created('sess-2'))
            .add('DELETE', f'{SESSIONS_PATH}/sess-1', respond(200))
        )
        sessions = _make_manager(backend)

        await sessions.ensure_session()
        await sessions.destroy_session()

        assert await sessions.ensure_session() == 'sess-2'


class TestInvalidate:
    @pytest.mark.asyncio
    async def test_drops_handle_without_network(self):
        backend = MockBackend().add('POST', SESSIONS_PATH, _created('sess-1'))
        sessions = _make_manager(backend)
        await sessions.ensure_session()

        await sessions.invalidate()

        assert sessions.current_session is None
        assert len(backend.requests) == 1

    def test_handle_repr_hides_cookie(self):
        handle = SessionHandle(session_id='s', cookie=TEST_COOKIE)

        assert 'cookie-value' not in repr(handle)
