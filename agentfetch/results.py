"""Result and event types for agentfetch."""

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

from .config import SessionCookie


CompletionStatus = Literal['COMPLETED', 'FAILED', 'TIMEOUT']

DEFAULT_AGENT_ERROR = 'Unknown agent error'


@dataclass(frozen=True)
class ProgressEvent:
    """Non-terminal progress report from the remote agent.

    Attributes:
        purpose: What the agent is doing right now (e.g. "Clicking Sign in")
        timestamp: Server timestamp, when present
    """
    purpose: str
    timestamp: Optional[str] = None


@dataclass(frozen=True)
class AgentErrorInfo:
    """Error payload of a failed completion."""
    message: str
    code: Optional[str] = None


@dataclass(frozen=True)
class CompletionEvent:
    """Terminal event. Exactly one ends a well-formed stream.

    Attributes:
        status: Raw status string ('COMPLETED', 'FAILED', 'TIMEOUT' or anything else)
        result: Decoded ``resultJson`` on success ({} when the server omitted it)
        error: Failure details when status is not 'COMPLETED'
    """
    status: str
    result: Any = None
    error: Optional[AgentErrorInfo] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 'COMPLETED'


StreamEvent = Union[ProgressEvent, CompletionEvent]


@dataclass
class SessionHandle:
    """Live remote browser session.

    Owned by SessionManager; callers get copies of the identifier only.

    Attributes:
        session_id: Opaque session identifier
        cdp_url: Control-protocol endpoint, when the backend returned one
        cookie: Credential the session was created with
    """
    session_id: str
    cdp_url: Optional[str] = None
    cookie: Optional[SessionCookie] = field(default=None, repr=False)
