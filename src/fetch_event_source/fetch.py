"""
This module drives one event-stream subscription over HTTP.
It issues the request, feeds the response body through the SSE parser, and owns the
retry, cancellation and page-visibility policies of the connection.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from fetch_event_source._client import EventSourceHttpClient, HttpConfig
from fetch_event_source._errors import EventSourceResponseError
from fetch_event_source._lines import LineTokenizer
from fetch_event_source._sse import EventSourceMessage, MessageAssembler
from fetch_event_source.visibility import Visibility

logger = logging.getLogger(__name__)

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"
DEFAULT_RETRY_INTERVAL_MS = 1000
LAST_EVENT_ID_HEADER = "last-event-id"
MAX_ERROR_BODY_BYTES = 4096

HeaderSource = Union[Mapping[str, str], Callable[[], Optional[Mapping[str, str]]], None]
OnOpen = Callable[[httpx.Response], Union[None, Awaitable[None]]]
OnMessage = Callable[[EventSourceMessage], None]
OnClose = Callable[[], Union[None, Awaitable[None]]]
OnError = Callable[[Exception], Union[Optional[float], Awaitable[Optional[float]]]]


class EventSourceRequest(BaseModel):
    """
    Request description sent on every attempt.
    Headers are not part of it: they come from the header source, resolved per attempt.
    """
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    method: str = "GET"
    params: Optional[dict[str, Any]] = None
    content: Optional[Union[bytes, str]] = None
    json_body: Any = Field(default=None, alias="json")

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        method = value.strip().upper()
        if not method:
            raise ValueError("method must not be empty")
        return method

    def as_stream_kwargs(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"method"}, exclude_none=True)


async def _read_error_body(response: httpx.Response) -> str:
    # Un error que sigue emitiendo no debe bloquear el intento.
    buf = bytearray()
    async for chunk in response.aiter_bytes():
        buf += chunk
        if len(buf) >= MAX_ERROR_BODY_BYTES:
            break
    return bytes(buf[:MAX_ERROR_BODY_BYTES]).decode("utf-8", "replace")


async def default_onopen(response: httpx.Response) -> None:
    """
    Accept only 2xx responses whose Content-Type starts with text/event-stream.

    Raises:
        EventSourceResponseError: With the status, reason and (for non-2xx) the first
            MAX_ERROR_BODY_BYTES of the body.
    """
    content_type = response.headers.get("content-type")

    if not response.is_success:
        body: str | None = None
        try:
            body = await _read_error_body(response)
        except (httpx.HTTPError, httpx.StreamError):
            body = None
        raise EventSourceResponseError(
            status_code=response.status_code,
            message=f"Request failed with status {response.status_code}: {response.reason_phrase}",
            status_text=response.reason_phrase,
            content_type=content_type,
            body=body,
        )

    if not (content_type or "").startswith(EVENT_STREAM_CONTENT_TYPE):
        raise EventSourceResponseError(
            status_code=response.status_code,
            message=f"Expected content-type to be {EVENT_STREAM_CONTENT_TYPE}, Actual: {content_type}",
            status_text=response.reason_phrase,
            content_type=content_type,
        )


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _resolve_headers(source: HeaderSource) -> dict[str, str]:
    if source is None:
        return {}
    if callable(source):
        produced = source()
        return dict(produced) if produced else {}
    return dict(source)


@dataclass(frozen=True, slots=True)
class _Retry:
    delay_ms: float


@dataclass(frozen=True, slots=True)
class _Fatal:
    error: Exception


RetryDecision = Union[_Retry, _Fatal]


class _Attempt:
    """Cancellation scope of a single request/response/stream cycle."""

    __slots__ = ("number", "task", "aborted", "settling")

    def __init__(self, number: int) -> None:
        self.number = number
        self.task: asyncio.Task[None] | None = None
        self.aborted = False
        # Stream terminado o error capturado: los hooks onclose/onerror no se interrumpen.
        self.settling = False

    def abort(self) -> None:
        self.aborted = True
        if self.task is not None and not self.task.done() and not self.settling:
            self.task.cancel()

    async def wait_closed(self) -> None:
        if self.task is not None and not self.task.done():
            await asyncio.wait({self.task})


class EventSourceConnection:
    """
    Connection controller for one logical event-stream subscription.

    `run()` completes when the server closes the stream cleanly or the caller sets
    `signal`, and raises when `onerror` raises. Every other failure is retried after
    the delay returned by `onerror`, or the retry interval last sent by the server
    (1000 ms until it sends one).
    """

    def __init__(
        self,
        url: str,
        *,
        request: EventSourceRequest | None = None,
        headers: HeaderSource = None,
        onopen: OnOpen | None = None,
        onmessage: OnMessage | None = None,
        onclose: OnClose | None = None,
        onerror: OnError | None = None,
        open_when_hidden: bool = False,
        visibility: Visibility | None = None,
        signal: asyncio.Event | None = None,
        client: httpx.AsyncClient | None = None,
        http_config: HttpConfig | None = None,
    ) -> None:
        self._url = url
        self._request = request or EventSourceRequest()
        self._headers = headers
        self._onopen = onopen or default_onopen
        self._onmessage = onmessage
        self._onclose = onclose
        self._onerror = onerror
        self._visibility = visibility
        self._watch_visibility = visibility is not None and not open_when_hidden
        self._signal = signal
        self._client = client
        self._http_config = http_config

        self._last_event_id: str | None = None
        self._retry_interval_ms: float = DEFAULT_RETRY_INTERVAL_MS
        self._attempts = 0
        self._attempt: _Attempt | None = None
        self._retry_timer: asyncio.TimerHandle | None = None
        self._unsubscribe_visibility: Callable[[], None] | None = None
        self._signal_watcher: asyncio.Task[None] | None = None
        self._done: asyncio.Future[None] | None = None
        self._http: EventSourceHttpClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def last_event_id(self) -> str | None:
        return self._last_event_id

    @property
    def retry_interval_ms(self) -> float:
        return self._retry_interval_ms

    @property
    def attempts(self) -> int:
        return self._attempts

    async def run(self) -> None:
        if self._done is not None:
            raise RuntimeError("EventSourceConnection.run() can only be awaited once")
        self._loop = asyncio.get_running_loop()
        self._done = self._loop.create_future()
        self._http = EventSourceHttpClient(config=self._http_config, client=self._client)

        try:
            if self._signal is not None and self._signal.is_set():
                return
            if self._watch_visibility:
                assert self._visibility is not None
                self._unsubscribe_visibility = self._visibility.subscribe(self._on_visibility_change)
            if self._signal is not None:
                self._signal_watcher = self._loop.create_task(self._watch_signal())

            if self._watch_visibility and self._visibility.hidden:
                logger.debug("page hidden, waiting for it to become visible before connecting")
            else:
                self._create()
            await self._done
        finally:
            # Cerrar la sesión antes de esperar: un hook en curso ya no puede programar reintentos.
            if not self._done.done():
                self._done.cancel()
            self._dispose()
            await self._wait_for_tasks()
            await self._http.aclose()

    # -- attempts -----------------------------------------------------------

    def _create(self) -> None:
        self._cancel_retry_timer()
        if self._done is None or self._done.done():
            return
        previous = self._attempt
        if previous is not None:
            previous.abort()
        self._attempts += 1
        attempt = _Attempt(self._attempts)
        self._attempt = attempt
        attempt.task = self._loop.create_task(self._run_attempt(attempt, previous))

    async def _run_attempt(self, attempt: _Attempt, previous: _Attempt | None) -> None:
        try:
            if previous is not None:
                await previous.wait_closed()
            await self._stream(attempt)
            attempt.settling = True
            logger.debug("event stream attempt %d ended by server", attempt.number)
            if self._onclose is not None:
                await _maybe_await(self._onclose())
        except asyncio.CancelledError:
            if not attempt.aborted:
                raise
            logger.debug("event stream attempt %d aborted", attempt.number)
            return
        except Exception as err:
            attempt.settling = True
            if attempt.aborted:
                logger.debug("event stream attempt %d aborted: %r", attempt.number, err)
                return
            await self._handle_error(attempt, err)
            return

        self._finish()

    async def _stream(self, attempt: _Attempt) -> None:
        assert self._http is not None
        headers = self._build_headers()
        assembler = MessageAssembler(
            on_id=self._on_id,
            on_retry=self._on_retry,
            on_message=self._on_message,
        )
        tokenizer = LineTokenizer(assembler.feed)

        logger.debug("opening event stream attempt=%d %s %s", attempt.number, self._request.method, self._url)
        async with self._http.stream(
            self._request.method,
            self._url,
            headers=headers,
            **self._request.as_stream_kwargs(),
        ) as response:
            await _maybe_await(self._onopen(response))
            async for chunk in response.aiter_bytes():
                tokenizer.feed(chunk)

    def _build_headers(self) -> dict[str, Union[str, bytes]]:
        headers: dict[str, Union[str, bytes]] = dict(_resolve_headers(self._headers))
        if not any(name.lower() == "accept" for name in headers):
            headers["accept"] = EVENT_STREAM_CONTENT_TYPE
        if self._last_event_id:
            for name in [n for n in headers if n.lower() == LAST_EVENT_ID_HEADER]:
                del headers[name]
            # Los ids son UTF-8; httpx codifica los str como ASCII.
            headers[LAST_EVENT_ID_HEADER] = self._last_event_id.encode("utf-8")
        return headers

    # -- parser callbacks ---------------------------------------------------

    def _on_id(self, event_id: str) -> None:
        # Un id vacío deja de enviar la cabecera last-event-id.
        self._last_event_id = event_id or None

    def _on_retry(self, interval_ms: int) -> None:
        self._retry_interval_ms = interval_ms

    def _on_message(self, message: EventSourceMessage) -> None:
        if self._onmessage is not None:
            self._onmessage(message)

    # -- errors and retries -------------------------------------------------

    async def _decide(self, err: Exception) -> RetryDecision:
        if self._onerror is None:
            return _Retry(self._retry_interval_ms)
        try:
            interval = await _maybe_await(self._onerror(err))
            if interval is None:
                return _Retry(self._retry_interval_ms)
            return _Retry(float(interval))
        except Exception as fatal:
            return _Fatal(fatal)

    async def _handle_error(self, attempt: _Attempt, err: Exception) -> None:
        logger.debug("event stream attempt %d failed: %r", attempt.number, err)
        decision = await self._decide(err)

        assert self._done is not None
        if self._done.done():
            return
        if isinstance(decision, _Fatal):
            logger.warning("onerror raised, giving up the event stream: %r", decision.error)
            self._fail(decision.error)
            return
        if self._signal is not None and self._signal.is_set():
            self._finish()
            return
        if attempt is not self._attempt:
            # Otro intento (p.e. tras volver a ser visible) ya tomó el relevo.
            return
        if self._watch_visibility and self._visibility is not None and self._visibility.hidden:
            logger.debug("page hidden, retry deferred until it becomes visible")
            return
        self._schedule_retry(decision.delay_ms)

    def _schedule_retry(self, delay_ms: float) -> None:
        self._cancel_retry_timer()
        logger.debug("retrying event stream in %s ms", delay_ms)
        self._retry_timer = self._loop.call_later(max(delay_ms, 0) / 1000, self._create)

    def _cancel_retry_timer(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    # -- environment and caller signals --------------------------------------

    def _on_visibility_change(self, hidden: bool) -> None:
        if self._done is None or self._done.done():
            return
        self._cancel_retry_timer()
        if self._attempt is not None:
            self._attempt.abort()
        if not hidden:
            self._create()

    async def _watch_signal(self) -> None:
        assert self._signal is not None
        await self._signal.wait()
        logger.debug("event stream cancelled by caller")
        self._finish()

    # -- teardown ------------------------------------------------------------

    def _dispose(self) -> None:
        if self._unsubscribe_visibility is not None:
            self._unsubscribe_visibility()
            self._unsubscribe_visibility = None
        self._cancel_retry_timer()
        if self._attempt is not None:
            self._attempt.abort()
        watcher = self._signal_watcher
        if watcher is not None and not watcher.done() and watcher is not asyncio.current_task():
            watcher.cancel()

    def _finish(self) -> None:
        self._dispose()
        if self._done is not None and not self._done.done():
            self._done.set_result(None)

    def _fail(self, error: Exception) -> None:
        self._dispose()
        if self._done is not None and not self._done.done():
            self._done.set_exception(error)

    async def _wait_for_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = {
            t
            for t in (self._attempt.task if self._attempt else None, self._signal_watcher)
            if t is not None and t is not current and not t.done()
        }
        if tasks:
            await asyncio.wait(tasks)


async def fetch_event_source(
    url: str,
    *,
    method: str = "GET",
    params: dict[str, Any] | None = None,
    content: bytes | str | None = None,
    json: Any = None,
    headers: HeaderSource = None,
    onopen: OnOpen | None = None,
    onmessage: OnMessage | None = None,
    onclose: OnClose | None = None,
    onerror: OnError | None = None,
    open_when_hidden: bool = False,
    visibility: Visibility | None = None,
    signal: asyncio.Event | None = None,
    client: httpx.AsyncClient | None = None,
    http_config: HttpConfig | None = None,
) -> None:
    """
    Subscribe to an event stream and deliver every message to `onmessage`.

    Args:
        url: Absolute URL, or a path joined to `http_config.base_url`.
        method, params, content, json: Request description, sent on every attempt.
        headers: Mapping, or zero-argument callable re-invoked before every attempt.
        onopen: Validates the response; defaults to `default_onopen`.
        onmessage: Called synchronously with each message, in wire order.
        onclose: Called when the server ends the stream; raise to force a retry.
        onerror: Called on every failure; return a delay in ms, None for the
            current retry interval, or raise to stop with that exception.
        open_when_hidden: Keep the request open while `visibility` reports hidden.
        visibility: Page-visibility signal; ignored when None.
        signal: Set it to stop the subscription; the call then returns normally.
        client: httpx.AsyncClient to use; it is not closed afterwards.
        http_config: Timeouts/base URL for the client created when `client` is None.

    Returns:
        None once the stream ends cleanly or `signal` is set.

    Raises:
        Exception: Whatever `onerror` raised.
    """
    request = EventSourceRequest(method=method, params=params, content=content, json=json)
    connection = EventSourceConnection(
        url,
        request=request,
        headers=headers,
        onopen=onopen,
        onmessage=onmessage,
        onclose=onclose,
        onerror=onerror,
        open_when_hidden=open_when_hidden,
        visibility=visibility,
        signal=signal,
        client=client,
        http_config=http_config,
    )
    await connection.run()
