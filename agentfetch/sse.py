"""Decoder for the goal endpoint's event stream.

The backend sends newline-delimited frames; the only ones that matter look
like ``data: {"type": "PROGRESS", ...}``. Everything else (blank lines,
comments, keep-alives, non-JSON noise) is skipped without error.
"""

import json
from typing import AsyncIterable, AsyncIterator, Optional

from loguru import logger

from .results import DEFAULT_AGENT_ERROR, AgentErrorInfo, CompletionEvent, ProgressEvent, StreamEvent
from .utils import get_dict, get_str

DATA_PREFIX = 'data: '


class StreamEventDecoder:
    """Turns single stream lines into typed events.

    Stateless: it decodes what it is given and does not track whether a
    completion has been seen. That is the caller's job (see :func:`iter_events`).

    Example:
        >>> decoder = StreamEventDecoder()
        >>> decoder.decode('data: {"type": "PROGRESS", "purpose": "Opening page"}')
        ProgressEvent(purpose='Opening page', timestamp=None)
        >>> decoder.decode(': keep-alive') is None
        True
    """

    def decode(self, line: str) -> Optional[StreamEvent]:
        if not line.startswith(DATA_PREFIX):
            return None

        try:
            payload = json.loads(line[len(DATA_PREFIX):])
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None

        event_type = payload.get('type')
        if event_type == 'PROGRESS':
            return ProgressEvent(
                purpose=get_str(payload, 'purpose') or '',
                timestamp=get_str(payload, 'timestamp'),
            )
        if event_type == 'COMPLETE':
            return decode_completion(payload)
        return None


def decode_completion(payload: dict) -> CompletionEvent:
    """Build a CompletionEvent from a COMPLETE payload.

    Also used for the blocking goal endpoint, whose response body has the
    same status/resultJson/error fields.
    """
    status = get_str(payload, 'status') or ''
    if status == 'COMPLETED':
        result = payload.get('resultJson')
        return CompletionEvent(status=status, result={} if result is None else result)

    error = get_dict(payload, 'error')
    if status in ('FAILED', 'TIMEOUT'):
        default_message = DEFAULT_AGENT_ERROR
    else:
        default_message = f"Unknown status: {status}"
    return CompletionEvent(
        status=status,
        error=AgentErrorInfo(
            message=get_str(error, 'message') or default_message,
            code=get_str(error, 'code'),
        ),
    )


_default_decoder = StreamEventDecoder()


def decode_line(line: str) -> Optional[StreamEvent]:
    """Decode one line with a shared decoder."""
    return _default_decoder.decode(line)


async def iter_events(
    lines: AsyncIterable[str],
    decoder: Optional[StreamEventDecoder] = None,
) -> AsyncIterator[StreamEvent]:
    """Lazily decode *lines*, stopping after the first completion.

    Ends silently if *lines* runs out first; callers decide whether a missing
    completion is an error.
    """
    decoder = decoder or _default_decoder
    async for line in lines:
        event = decoder.decode(line)
        if event is None:
            continue
        logger.debug("sse.event type={}", type(event).__name__)
        yield event
        if isinstance(event, CompletionEvent):
            return
