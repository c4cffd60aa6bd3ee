"""Test helpers and utilities."""

import os
import json
from typing import Any, Callable, Dict, List, Optional, Tuple
from pathlib import Path

import httpx
from dotenv import load_dotenv

from agentfetch import ClientConfig, GoalExecutionOrchestrator, RetryConfig, SessionCookie, StaticCredentials

# Load .env from repository root
root_dir = Path(__file__).parent.parent.parent
env_file = root_dir / '.env'
if env_file.exists():
    load_dotenv(env_file)


AGENT_BASE = 'https://agent.test/v1'
QUERY_BASE = 'https://query.test/v1'

RUN_SSE_PATH = '/v1/automation/run-sse'
RUN_PATH = '/v1/automation/run'
QUERY_PATH = '/v1/query-data'
SESSIONS_PATH = '/v1/tetra/sessions'

TEST_COOKIE = SessionCookie(name='li_at', value='cookie-value', domain='.linkedin.com')

Handler = Callable[[httpx.Request], Any]


def get_api_key() -> Optional[str]:
    """API key for integration tests, or None when not configured."""
    return os.getenv('TINYFISH_API_KEY') or None


# =============================================================================
# FAKE TIME
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when the fake sleep is awaited.

    Pass ``clock`` as ``_clock`` and ``clock.sleep`` as ``_sleep``; every
    requested delay is recorded in ``sleeps``.
    """

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# =============================================================================
# MOCK BACKEND
# =============================================================================


def sse_body(*frames: Any) -> bytes:
    """Encode frames as an event stream. Dicts become ``data:`` lines, strings are sent verbatim."""
    lines = []
    for frame in frames:
        lines.append(frame if isinstance(frame, str) else 'data: ' + json.dumps(frame))
        lines.append('')
    return ('\n'.join(lines) + '\n').encode()


def progress(purpose: str) -> Dict[str, Any]:
    return {'type': 'PROGRESS', 'purpose': purpose}


def completed(result: Any = None) -> Dict[str, Any]:
    frame: Dict[str, Any] = {'type': 'COMPLETE', 'status': 'COMPLETED'}
    if result is not None:
        frame['resultJson'] = result
    return frame


def failed(message: Optional[str] = None, status: str = 'FAILED') -> Dict[str, Any]:
    frame: Dict[str, Any] = {'type': 'COMPLETE', 'status': status}
    if message is not None:
        frame['error'] = {'message': message}
    return frame


def respond(status: int = 200, **kwargs: Any) -> Handler:
    """Handler returning a fresh response per request."""
    return lambda request: httpx.Response(status, **kwargs)


def stream(*frames: Any) -> Handler:
    return respond(200, content=sse_body(*frames), headers={'content-type': 'text/event-stream'})


def connect_error(message: str = 'connection refused') -> Handler:
    def handler(request: httpx.Request):
        raise httpx.ConnectError(message, request=request)
    return handler


def corrupt_body(status: int = 200) -> Handler:
    """Response that claims gzip encoding but carries bytes that do not inflate."""
    return respond(status, content=b'not-gzip-at-all', headers={'content-encoding': 'gzip'})


class MockBackend:
    """Route table for ``httpx.MockTransport``.

    Each route holds a queue of handlers; the last one is repeated once the
    others are used up. Unrouted requests get a 404.
    """

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.requests: List[httpx.Request] = []
        self.request_times: List[float] = []
        self._routes: Dict[Tuple[str, str], List[Handler]] = {}

    def add(self, method: str, path: str, *handlers: Handler) -> 'MockBackend':
        self._routes.setdefault((method, path), []).extend(handlers)
        return self

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.clock is not None:
            self.request_times.append(self.clock())
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, text='no route')
        handler = queue.pop(0) if len(queue) > 1 else queue[0]
        response = handler(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


def make_config(**retry_kwargs: Any) -> ClientConfig:
    return ClientConfig(
        agent_endpoint=AGENT_BASE,
        query_endpoint=QUERY_BASE,
        retry=RetryConfig(**retry_kwargs),
    )


def make_orchestrator(
    backend: MockBackend,
    clock: FakeClock,
    config: Optional[ClientConfig] = None,
    cookie: Optional[SessionCookie] = TEST_COOKIE,
) -> GoalExecutionOrchestrator:
    """Orchestrator wired to *backend* with fake time."""
    return GoalExecutionOrchestrator(
        config or make_config(),
        StaticCredentials(key='test-key', cookie=cookie),
        client=backend.client(),
        _sleep=clock.sleep,
        _clock=clock,
    )


# =============================================================================
# LOGGING (integration scripts)
# =============================================================================


def log_section(title: str) -> None:
    """Log test section header.

    Args:
        title: Section title
    """
    print('\n' + '=' * 70)
    print(f'🧪 {title}')
    print('=' * 70 + '\n')


def log_result(success: bool, message: str, details: Any = None) -> None:
    """Log test result.

    Args:
        success: Whether the test passed
        message: Result message
        details: Optional details (string or object)
    """
    icon = '✅' if success else '❌'
    print(f'{icon} {message}')
    if details:
        if isinstance(details, str):
            print(f'   {details}')
        else:
            print(f'   {json.dumps(details, indent=2, default=str)}')


def log_info(message: str) -> None:
    print(f'ℹ️  {message}')
