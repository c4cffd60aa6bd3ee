"""Credential resolution strategies.

Clients never read the environment themselves; they ask the resolver they
were constructed with.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol, Union, runtime_checkable

from dotenv import dotenv_values

from .config import SessionCookie
from .errors import ApiKeyNotConfiguredError


@runtime_checkable
class CredentialResolver(Protocol):
    """Source of the API key and the session cookie.

    Implement this to plug in a keychain or secret manager.
    """

    def api_key(self) -> Optional[str]:
        """Backend API key, or None if unavailable."""
        ...

    def session_cookie(self) -> Optional[SessionCookie]:
        """Cookie for authenticated sessions, or None if unavailable."""
        ...


@dataclass
class StaticCredentials:
    """Credentials fixed at construction time."""
    key: Optional[str] = None
    cookie: Optional[SessionCookie] = None

    def api_key(self) -> Optional[str]:
        return self.key

    def session_cookie(self) -> Optional[SessionCookie]:
        return self.cookie


@dataclass
class EnvCredentials:
    """Read credentials from environment variables.

    Values in ``os.environ`` win over values from the optional .env file,
    and the file is read without modifying ``os.environ``.

    Args:
        api_key_var: Variable holding the API key (default: TINYFISH_API_KEY)
        cookie_var: Variable holding the session cookie, bare or as ``name=value``
        cookie_name: Cookie name used when building the SessionCookie
        cookie_domain: Cookie domain used when building the SessionCookie
        dotenv_path: .env file to consult, if any
    """
    api_key_var: str = 'TINYFISH_API_KEY'
    cookie_var: str = 'LINKEDIN_LI_AT'
    cookie_name: str = 'li_at'
    cookie_domain: str = '.linkedin.com'
    dotenv_path: Optional[Union[str, Path]] = None

    def _lookup(self, name: str) -> Optional[str]:
        value = os.environ.get(name)
        if value:
            return value
        if self.dotenv_path is not None and Path(self.dotenv_path).is_file():
            file_values: Dict[str, Optional[str]] = dotenv_values(self.dotenv_path)
            return file_values.get(name) or None
        return None

    def api_key(self) -> Optional[str]:
        return self._lookup(self.api_key_var)

    def session_cookie(self) -> Optional[SessionCookie]:
        raw = self._lookup(self.cookie_var)
        if not raw:
            return None
        return SessionCookie.from_raw(raw, name=self.cookie_name, domain=self.cookie_domain)


def resolve_api_key(explicit: Optional[str], resolver: CredentialResolver) -> str:
    """Return *explicit* or the resolver's key, raising when neither exists."""
    key = explicit or resolver.api_key()
    if not key:
        raise ApiKeyNotConfiguredError(
            "No API key configured. Pass ClientConfig(api_key=...) or set TINYFISH_API_KEY."
        )
    return key
