"""JSON-lines event protocol spoken by agents on their stderr."""

from __future__ import annotations

import codecs
import json
import sys
from typing import Any, TextIO

from ralph_thinks_first.orchestrator.models import Event


def decode_event(line: str | bytes | None) -> Event | None:
    """Decode one stderr line into an :class:`Event`, or ``None`` for passthrough text.

    Never raises: anything that is not a JSON object carrying both ``type`` and
    ``agent`` is treated as ordinary diagnostic output.  Unrecognized ``type``
    values and extra fields are kept as-is.
    """

    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(line, str):
        return None

    trimmed = line.strip()
    if not trimmed:
        return None

    payload = _try_load_dict(trimmed)
    if payload is None:
        return None
    if not payload.get("type") or not payload.get("agent"):
        return None
    return Event.from_mapping(payload)


def encode_event(event_type: str, agent: str, **data: Any) -> str:
    """Serialize one event as a newline-terminated JSON line."""

    payload: dict[str, Any] = {"type": event_type, "agent": agent}
    payload.update(data)
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")) + "\n"


def serialize_event(event: Event) -> str:
    """Serialize a decoded event back to its wire form, extra fields included."""

    return json.dumps(event.to_dict(), ensure_ascii=False, separators=(",", ":")) + "\n"


def emit_event(
    event_type: str,
    agent: str,
    *,
    stream: TextIO | None = None,
    **data: Any,
) -> None:
    """Write one event line to stderr (or ``stream``) for the supervising process."""

    target = stream if stream is not None else sys.stderr
    target.write(encode_event(event_type, agent, **data))
    target.flush()


class EventLineBuffer:
    """Reassemble newline-delimited lines from arbitrarily split byte chunks."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one chunk and return every line it completed."""

        self._pending += self._decoder.decode(chunk)
        if "\n" not in self._pending:
            return []
        *lines, self._pending = self._pending.split("\n")
        return [line.removesuffix("\r") for line in lines]

    def flush(self) -> str | None:
        """Return the trailing partial line at end of stream, if it has content."""

        remainder = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if not remainder.strip():
            return None
        return remainder


def _try_load_dict(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
