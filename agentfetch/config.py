"""Configuration and request types for agentfetch."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Type

from .retry import RetryConfig
from .utils import _filter_none


BrowserProfile = Literal['stealth', 'default']

DEFAULT_AGENT_ENDPOINT = 'https://agent.tinyfish.ai/v1'
DEFAULT_QUERY_ENDPOINT = 'https://api.agentql.com/v1'
DEFAULT_QUERY_PARAMS: Dict[str, str] = {'browser_profile': 'stealth'}


@dataclass(frozen=True)
class ProxyConfig:
    """Proxy directive for a goal run.

    Args:
        enabled: Route the remote browser through the backend's proxy pool
        country_code: Exit country (e.g. 'US'); omitted from the wire when None
    """
    enabled: bool = True
    country_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the `proxy_config` request field."""
        return _filter_none({'enabled': self.enabled, 'country_code': self.country_code})


@dataclass(frozen=True)
class GoalRequest:
    """One goal submission: a target page plus a natural-language instruction.

    Args:
        url: Page the remote agent starts on
        goal: What the agent should do there and what JSON to return
        browser_profile: 'stealth' or 'default' (omitted when None)
        proxy: Optional proxy directive
    """
    url: str
    goal: str
    browser_profile: Optional[BrowserProfile] = None
    proxy: Optional[ProxyConfig] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON body of the goal endpoints."""
        return _filter_none({
            'url': self.url,
            'goal': self.goal,
            'browser_profile': self.browser_profile,
            'proxy_config': self.proxy.to_dict() if self.proxy else None,
        })


@dataclass(frozen=True)
class QueryRequest:
    """One structured query against the extraction endpoint.

    Args:
        url: Page to query
        query: Declarative query expression
        params: String parameters such as ``browser_profile`` or ``session_id``
    """
    url: str
    query: str
    params: Mapping[str, str] = field(default_factory=dict)

    def with_params(self, **params: str) -> 'QueryRequest':
        """Return a copy with *params* merged over the existing ones."""
        merged = dict(self.params)
        merged.update(params)
        return QueryRequest(url=self.url, query=self.query, params=merged)

    def to_dict(self) -> Dict[str, Any]:
        return {'url': self.url, 'query': self.query, 'params': dict(self.params)}


@dataclass(frozen=True)
class SessionCookie:
    """Browser cookie injected into a remote session at creation time."""
    name: str
    value: str
    domain: str
    path: str = '/'

    @classmethod
    def from_raw(cls, raw: str, name: str = 'li_at', domain: str = '.linkedin.com', path: str = '/') -> 'SessionCookie':
        """Build a cookie from either ``"<value>"`` or ``"<name>=<value>"``.

        Example:
            >>> SessionCookie.from_raw('li_at=AQED...').value
            'AQED...'
        """
        value = raw.strip()
        prefix = f'{name}='
        if value.startswith(prefix):
            value = value[len(prefix):]
        return cls(name=name, value=value, domain=domain, path=path)

    def to_dict(self) -> Dict[str, str]:
        return {'name': self.name, 'value': self.value, 'domain': self.domain, 'path': self.path}


@dataclass(frozen=True)
class FetchRequest:
    """A request routed by :meth:`GoalExecutionOrchestrator.fetch`.

    A ``query`` selects the fast structured path; a ``goal`` alone selects the
    agent path. When both are set, the goal is the fallback for a query whose
    response carried no data.

    Args:
        url: Target page
        query: Structured query expression (fast path)
        goal: Natural-language goal (slow path)
        requires_auth: Attach an authenticated remote session
        params: Extra query params
        schema: Optional pydantic model / dataclass for the result
        mapper: Called with the (schema-parsed) result before it is returned,
                e.g. :func:`agentfetch.profiles.map_profile`. An
                InvalidResponseError from the mapper on the query path
                triggers the goal fallback.
    """
    url: str
    query: Optional[str] = None
    goal: Optional[str] = None
    requires_auth: bool = False
    params: Optional[Mapping[str, str]] = None
    schema: Optional[Type] = None
    mapper: Optional[Callable[[Any], Any]] = None

    def __post_init__(self):
        if not self.query and not self.goal:
            raise ValueError('FetchRequest needs a query, a goal, or both')


@dataclass
class ClientConfig:
    """Client configuration.

    All fields are optional. The API key falls back to the credential
    resolver (``TINYFISH_API_KEY`` by default).

    Args:
        api_key: Backend API key, sent as ``X-API-Key``
        agent_endpoint: Base URL of the goal (SSE / blocking) endpoints
        query_endpoint: Base URL of the structured query and session endpoints
        default_browser_profile: Profile for goals that do not set one
        default_proxy_country: When set, goals without a proxy directive get one for this country
        request_timeout_s: Timeout for REST calls
        stream_timeout_s: Read timeout while waiting on the event stream
        retry: Attempt budget, backoff and request cadence
    """
    api_key: Optional[str] = None
    agent_endpoint: str = DEFAULT_AGENT_ENDPOINT
    query_endpoint: str = DEFAULT_QUERY_ENDPOINT
    default_browser_profile: Optional[BrowserProfile] = 'stealth'
    default_proxy_country: Optional[str] = None
    request_timeout_s: float = 120.0
    stream_timeout_s: float = 300.0
    retry: RetryConfig = field(default_factory=RetryConfig)

    @property
    def run_sse_url(self) -> str:
        return _join(self.agent_endpoint, '/automation/run-sse')

    @property
    def run_url(self) -> str:
        return _join(self.agent_endpoint, '/automation/run')

    @property
    def query_url(self) -> str:
        return _join(self.query_endpoint, '/query-data')

    @property
    def sessions_url(self) -> str:
        return _join(self.query_endpoint, '/tetra/sessions')

    def goal_request(
        self,
        url: str,
        goal: str,
        browser_profile: Optional[BrowserProfile] = None,
        proxy: Optional[ProxyConfig] = None,
    ) -> GoalRequest:
        """Build a GoalRequest, filling profile and proxy from the defaults."""
        if proxy is None and self.default_proxy_country:
            proxy = ProxyConfig(enabled=True, country_code=self.default_proxy_country)
        return GoalRequest(
            url=url,
            goal=goal,
            browser_profile=browser_profile or self.default_browser_profile,
            proxy=proxy,
        )


def _join(base: str, path: str) -> str:
    return base.rstrip('/') + '/' + path.lstrip('/')


def build_headers(api_key: str, accept: str = 'application/json') -> Dict[str, str]:
    """Headers shared by every endpoint."""
    return {
        'X-API-Key': api_key,
        'Content-Type': 'application/json',
        'Accept': accept,
    }
