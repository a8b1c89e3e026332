"""
Server-Sent Events (SSE) message assembly.
Accumulates the id/event/data/retry fields of each block of lines and dispatches a
message when the block is closed by an empty line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator, Optional, Union

from fetch_event_source._lines import Line, LineTokenizer

Chunk = Union[bytes, str]


@dataclass(frozen=True, slots=True)
class EventSourceMessage:
    """
    Data structure representing a single dispatched Server-Sent Event (SSE).
    `retry` is only set when the block that produced the message carried a valid
    retry field.
    """

    id: str = ""
    event: str = ""
    data: str = ""
    retry: Optional[int] = None


@dataclass(slots=True)
class PendingMessage:
    """Field buffers of the block currently being read."""

    id: str = ""
    event: str = ""
    data: list[str] = field(default_factory=list)
    retry: Optional[int] = None

    def snapshot(self) -> EventSourceMessage:
        return EventSourceMessage(
            id=self.id,
            event=self.event,
            data="\n".join(self.data),
            retry=self.retry,
        )

    def reset(self) -> None:
        # El id sobrevive: es el last-event-id de la sesión.
        self.event = ""
        self.data = []
        self.retry = None


def _decode(value: bytes) -> str:
    return value.decode("utf-8", "replace")


class MessageAssembler:
    """
    Feeds on `Line` objects and dispatches `EventSourceMessage` values.

    Callbacks:
        on_id: called with the new id every time an id field is accepted, including
            an empty id that clears the previous one.
        on_retry: called with the reconnection time (ms) of every numeric retry field.
        on_message: called with every dispatched message, in wire order.
    """

    def __init__(
        self,
        on_id: Callable[[str], None] | None = None,
        on_retry: Callable[[int], None] | None = None,
        on_message: Callable[[EventSourceMessage], None] | None = None,
    ) -> None:
        self._on_id = on_id
        self._on_retry = on_retry
        self._on_message = on_message
        self._pending = PendingMessage()

    @property
    def pending(self) -> PendingMessage:
        return self._pending

    def feed(self, line: Line) -> None:
        raw = line.raw
        if not raw:
            self._dispatch()
            return

        boundary = line.field_boundary
        if boundary <= 0:
            # -1: no field separator, 0: comment.
            return

        name = raw[:boundary]
        start = boundary + 1
        if raw[start:start + 1] == b" ":
            start += 1
        value = raw[start:]

        pending = self._pending
        if name == b"data":
            pending.data.append(_decode(value))
        elif name == b"event":
            pending.event = _decode(value)
        elif name == b"id":
            if b"\x00" in value:
                return
            pending.id = _decode(value)
            if self._on_id is not None:
                self._on_id(pending.id)
        elif name == b"retry":
            if not value.isdigit():
                return
            pending.retry = int(value)
            if self._on_retry is not None:
                self._on_retry(pending.retry)

    def _dispatch(self) -> None:
        pending = self._pending
        # Un bloque sin líneas data: (p.e. keep-alives ":") no genera mensaje.
        if pending.data and self._on_message is not None:
            self._on_message(pending.snapshot())
        pending.reset()


def _as_bytes(chunk: Chunk) -> bytes:
    return chunk.encode("utf-8") if isinstance(chunk, str) else chunk


def iter_messages(chunks: Iterable[Chunk]) -> Iterator[EventSourceMessage]:
    """
    Parse SSE messages from an iterable of byte (or text) chunks.

    Args:
        chunks: Successive pieces of an event stream, split anywhere.

    Yields:
        EventSourceMessage objects in the order they are dispatched.
    """
    ready: list[EventSourceMessage] = []
    tokenizer = LineTokenizer(MessageAssembler(on_message=ready.append).feed)
    for chunk in chunks:
        tokenizer.feed(_as_bytes(chunk))
        yield from ready
        ready.clear()


async def aiter_messages(chunks: AsyncIterable[Chunk]) -> AsyncIterator[EventSourceMessage]:
    """Async version of `iter_messages`, e.g. over `httpx.Response.aiter_bytes()`."""
    ready: list[EventSourceMessage] = []
    tokenizer = LineTokenizer(MessageAssembler(on_message=ready.append).feed)
    async for chunk in chunks:
        tokenizer.feed(_as_bytes(chunk))
        for message in ready:
            yield message
        ready.clear()
