from __future__ import annotations

import io
import json

import allure
import pytest

from ralph_thinks_first.orchestrator.events import (
    EventLineBuffer,
    decode_event,
    emit_event,
    encode_event,
    serialize_event,
)
from ralph_thinks_first.orchestrator.models import AgentStatus, EventType

pytestmark = [
    allure.epic("Agent Protocol"),
    allure.feature("Event Decoder"),
]


def test_decode_status_event() -> None:
    event = decode_event('{"type":"status","agent":"code","status":"running"}')

    assert event is not None
    assert event.kind is EventType.STATUS
    assert event.agent == "code"
    assert event.status == AgentStatus.RUNNING.value


def test_decode_keeps_extra_fields_and_serializes_them_back() -> None:
    line = '{"type":"output","agent":"plan","message":"hi","progress":0.5,"meta":{"a":[1,2]}}'

    event = decode_event(line)

    assert event is not None
    assert event.message == "hi"
    assert json.loads(serialize_event(event)) == json.loads(line)
    assert decode_event(serialize_event(event)) == event


def test_decode_accepts_unknown_type_values() -> None:
    event = decode_event('{"type":"heartbeat","agent":"code"}')

    assert event is not None
    assert event.type == "heartbeat"
    assert event.kind is None


@pytest.mark.parametrize(
    "line",
    [
        None,
        "",
        "   ",
        "plain diagnostic text",
        '{"type":"status","agent":',
        "[1, 2, 3]",
        "42",
        '"status"',
        "null",
        '{"agent":"code"}',
        '{"type":"status"}',
        '{"type":"","agent":"code"}',
        b"\xff\xfe\xfa",
        "[" * 100_000,
    ],
)
def test_decode_returns_none_for_non_event_lines(line: str | bytes | None) -> None:
    assert decode_event(line) is None


def test_decode_accepts_utf8_bytes() -> None:
    event = decode_event('{"type":"error","agent":"code","error":"сбой"}'.encode())

    assert event is not None
    assert event.error == "сбой"


def test_encode_event_is_one_compact_line() -> None:
    line = encode_event("status", "manage", status="starting")

    assert line == '{"type":"status","agent":"manage","status":"starting"}\n'


def test_emit_event_writes_to_given_stream() -> None:
    stream = io.StringIO()

    emit_event("output", "code", stream=stream, message="done")

    event = decode_event(stream.getvalue())
    assert event is not None
    assert event.message == "done"


def test_line_buffer_reassembles_event_split_across_chunks() -> None:
    buffer = EventLineBuffer()

    first = buffer.feed(b'{"type":"sta')
    second = buffer.feed(b'tus","agent":"code","status":"running"}\n')

    assert first == []
    events = [decode_event(line) for line in second]
    assert len(events) == 1
    assert events[0] is not None
    assert events[0].status == "running"
    assert buffer.flush() is None


def test_line_buffer_handles_multibyte_character_split() -> None:
    buffer = EventLineBuffer()
    payload = "héllo\r\n".encode()

    lines = buffer.feed(payload[:2]) + buffer.feed(payload[2:])

    assert lines == ["héllo"]


def test_line_buffer_flush_returns_trailing_partial_line() -> None:
    buffer = EventLineBuffer()

    assert buffer.feed(b"first\nsecond") == ["first"]
    assert buffer.flush() == "second"
    assert buffer.flush() is None
