from typing import Any

import pytest

from fetch_event_source._lines import Line
from fetch_event_source._sse import EventSourceMessage, MessageAssembler, aiter_messages, iter_messages


def line(raw: str) -> Line:
    data = raw.encode("utf-8")
    return Line(data, data.find(b":"))


class Recorder:
    def __init__(self) -> None:
        self.ids: list[str] = []
        self.retries: list[int] = []
        self.messages: list[EventSourceMessage] = []

    def assembler(self) -> MessageAssembler:
        return MessageAssembler(
            on_id=self.ids.append,
            on_retry=self.retries.append,
            on_message=self.messages.append,
        )


def feed(assembler: MessageAssembler, *raw_lines: str) -> None:
    for raw in raw_lines:
        assembler.feed(line(raw))


def test_happy_path():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "retry: 42", "id: abc", "event:def", "data:ghi", "")

    assert rec.messages == [EventSourceMessage(id="abc", event="def", data="ghi", retry=42)]
    assert rec.ids == ["abc"]
    assert rec.retries == [42]


def test_skip_unknown_fields():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "id: abc", "foo: null", "data: test", "")

    assert rec.messages == [EventSourceMessage(id="abc", event="", data="test", retry=None)]
    assert rec.retries == []


def test_ignore_non_integer_retry():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "retry: def", "data: test", "")

    assert rec.messages == [EventSourceMessage(id="", event="", data="test", retry=None)]
    assert rec.ids == []
    assert rec.retries == []


@pytest.mark.parametrize("value", ["", "-5", "1.5", "  10", "12a"])
def test_retry_requires_only_digits(value):
    rec = Recorder()
    assembler = rec.assembler()

    assembler.feed(Line(b"retry:" + value.encode(), 5))

    assert rec.retries == []
    assert assembler.pending.retry is None


def test_data_split_across_multiple_lines():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "data:YHOO", "data: +2", "data:", "data: 10", "")

    assert rec.messages == [EventSourceMessage(data="YHOO\n+2\n\n10")]


def test_empty_data_fields_keep_their_newlines():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "event: message", "data:", "data:", "data: foo", "")

    assert rec.messages == [EventSourceMessage(event="message", data="\n\nfoo")]


def test_reset_id_if_sent_multiple_times():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "id: foo", "id:", "data: test", "")

    assert rec.ids == ["foo", ""]
    assert rec.messages == [EventSourceMessage(id="", data="test")]


def test_id_with_nul_is_rejected():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "id: good")
    assembler.feed(Line(b"id: b\x00d", 2))
    feed(assembler, "data: x", "")

    assert rec.ids == ["good"]
    assert rec.messages[0].id == "good"


def test_id_persists_while_event_and_retry_reset():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "id: 1", "event: a", "retry: 500", "data: first", "")
    feed(assembler, "data: second", "")

    assert rec.messages == [
        EventSourceMessage(id="1", event="a", data="first", retry=500),
        EventSourceMessage(id="1", event="", data="second", retry=None),
    ]


def test_comment_only_keepalive_does_not_dispatch():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, ":", "", ": keepalive", "")

    assert rec.messages == []
    assert rec.ids == []


def test_block_without_data_does_not_dispatch_but_resets():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "id:123", ":", ":    ", "event: foo ", "")

    assert rec.messages == []
    assert rec.ids == ["123"]
    assert assembler.pending.event == ""

    feed(assembler, "data: next", "")
    assert rec.messages == [EventSourceMessage(id="123", data="next")]


def test_line_without_colon_is_discarded():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "data: a", "data", "event", "")

    assert rec.messages == [EventSourceMessage(data="a")]


def test_only_one_leading_space_is_stripped():
    rec = Recorder()
    assembler = rec.assembler()

    feed(assembler, "data:   padded ", "")

    assert rec.messages[0].data == "  padded "


def test_invalid_utf8_is_replaced():
    rec = Recorder()
    assembler = rec.assembler()

    assembler.feed(Line(b"data: \xff", 4))
    feed(assembler, "")

    assert rec.messages[0].data == "�"


def test_assembler_without_callbacks():
    assembler = MessageAssembler()

    feed(assembler, "id: 1", "retry: 5", "data: x", "")

    assert assembler.pending.id == "1"
    assert assembler.pending.data == []


def test_iter_messages_over_text_and_bytes():
    chunks: list[Any] = ["id: 1\nevent: te", b"st\ndata: hel", "lo\n\ndata: [DONE]\n\n"]

    messages = list(iter_messages(chunks))

    assert messages == [
        EventSourceMessage(id="1", event="test", data="hello"),
        EventSourceMessage(id="1", data="[DONE]"),
    ]


def test_iter_messages_drops_unterminated_block():
    assert list(iter_messages([b"data: incomplete\n"])) == []


@pytest.mark.asyncio
async def test_aiter_messages():
    async def chunks():
        yield b"data: {\"a\":1}\r\n\r\n"
        yield b"data: [DONE]\r"
        yield b"\n\r\n"

    messages = [m async for m in aiter_messages(chunks())]

    assert [m.data for m in messages] == ['{"a":1}', "[DONE]"]
