from __future__ import annotations

from fetch_event_source._auth import BearerAuth
from fetch_event_source._client import EventSourceHttpClient, HttpConfig
from fetch_event_source._errors import EventSourceError, EventSourceResponseError
from fetch_event_source._lines import Line, LineTokenizer
from fetch_event_source._sse import EventSourceMessage, MessageAssembler, aiter_messages, iter_messages
from fetch_event_source.fetch import (
    DEFAULT_RETRY_INTERVAL_MS,
    EVENT_STREAM_CONTENT_TYPE,
    EventSourceConnection,
    EventSourceRequest,
    default_onopen,
    fetch_event_source,
)
from fetch_event_source.visibility import PageVisibility, Visibility

__all__ = [
    "BearerAuth",
    "DEFAULT_RETRY_INTERVAL_MS",
    "EVENT_STREAM_CONTENT_TYPE",
    "EventSourceConnection",
    "EventSourceError",
    "EventSourceHttpClient",
    "EventSourceMessage",
    "EventSourceRequest",
    "EventSourceResponseError",
    "HttpConfig",
    "Line",
    "LineTokenizer",
    "MessageAssembler",
    "PageVisibility",
    "Visibility",
    "aiter_messages",
    "default_onopen",
    "fetch_event_source",
    "iter_messages",
]

__version__ = "0.1.0"
