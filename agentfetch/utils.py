"""Shared utilities for agentfetch.

Payloads coming back from the backend are loosely typed JSON. The accessors
here never assume a key is present or has the expected type: they return
``None`` (or an empty list) instead.
"""

from typing import Any, Dict, Iterable, List, Optional

import httpx

from .errors import AgentFetchError, InvalidResponseError, NetworkError


def _filter_none(d: Dict[str, Any]) -> Dict[str, Any]:
    """Filter out None values from a dict. Used for building request bodies."""
    return {k: v for k, v in d.items() if v is not None}


def get_dict(obj: Any, key: str) -> Optional[Dict[str, Any]]:
    """Return ``obj[key]`` when *obj* is a dict and the value is a dict."""
    if not isinstance(obj, dict):
        return None
    value = obj.get(key)
    return value if isinstance(value, dict) else None


def get_list(obj: Any, key: str) -> Optional[List[Any]]:
    if not isinstance(obj, dict):
        return None
    value = obj.get(key)
    return value if isinstance(value, list) else None


def get_str(obj: Any, key: str) -> Optional[str]:
    """Return ``obj[key]`` when it is a string (bools and numbers excluded)."""
    if not isinstance(obj, dict):
        return None
    value = obj.get(key)
    return value if isinstance(value, str) else None


def get_bool(obj: Any, key: str) -> Optional[bool]:
    """Return ``obj[key]`` as a bool, accepting "true"/"yes"/"1" style strings."""
    if not isinstance(obj, dict):
        return None
    value = obj.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('true', 'yes', '1'):
            return True
        if lowered in ('false', 'no', '0'):
            return False
    return None


def first_string(obj: Any, keys: Iterable[str]) -> Optional[str]:
    """First non-empty string (or number rendered as a string) among *keys*.

    Agents name the same field differently from run to run ("name",
    "fullName", ...), so mappers list every spelling they accept.
    """
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, str):
            trimmed = value.strip()
            return trimmed or None
        if isinstance(value, (int, float)):
            return str(value)
    return None


def first_bool(obj: Any, keys: Iterable[str]) -> Optional[bool]:
    for key in keys:
        value = get_bool(obj, key)
        if value is not None:
            return value
    return None


def string_list(obj: Any, keys: Iterable[str]) -> List[str]:
    """First list among *keys*, reduced to its non-empty strings.

    Object entries contribute their "name", "title" or "value" field.
    """
    for key in keys:
        values = get_list(obj, key)
        if values is None:
            continue
        strings: List[str] = []
        for item in values:
            if isinstance(item, str):
                if item.strip():
                    strings.append(item.strip())
            elif isinstance(item, dict):
                text = first_string(item, ('name', 'title', 'value'))
                if text:
                    strings.append(text)
        if strings:
            return strings
    return []


def is_valid_profile_urn(urn: str) -> bool:
    """Check for a profile URN such as ``urn:li:fsd_profile:ACoAA...``.

    Both the ``urn:li:`` prefix and a profile marker are required.
    """
    return urn.startswith('urn:li:') and ('_profile:' in urn or '_miniProfile:' in urn)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds. HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def request_error(e: httpx.RequestError) -> AgentFetchError:
    """Translate an httpx request failure into the agentfetch error set.

    A body that cannot be decoded (bad ``Content-Encoding``, invalid charset)
    reached us intact, so it is an InvalidResponseError. Everything else is a
    NetworkError.
    """
    if isinstance(e, httpx.DecodingError):
        return InvalidResponseError(f"Response body could not be decoded: {e}")
    return NetworkError(str(e) or type(e).__name__)


def response_detail(response: httpx.Response, limit: int = 500) -> str:
    """Short description of an error response for exception messages.

    Only call on responses whose body has been read.
    """
    text = response.text.strip() if response.content else ''
    if not text:
        return f"HTTP {response.status_code}"
    if len(text) > limit:
        text = text[:limit] + '...'
    return text
