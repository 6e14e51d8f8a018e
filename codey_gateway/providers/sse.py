"""Server-Sent-Events decoding for gateway streams.

``SSEDecoder`` assembles the lines yielded by ``httpx.Response.aiter_lines``
into discrete events. ``decode_event`` applies the gateway's filtering rules
and validates the payload into a typed chunk once, at this boundary.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from pydantic import ValidationError

from codey_gateway.core.errors import MalformedEventError
from codey_gateway.providers.types import ChatGenerations, Generations

SKIPPED_EVENTS = frozenset({"scores", "scoringStarted", "scoringCompleted"})
DONE_SENTINELS = frozenset({"[DONE]", "DONE"})


@dataclass(frozen=True)
class ServerSentEvent:
    event: str | None
    data: str
    id: str | None = None
    retry: int | None = None


class SSEDecoder:
    """Line-level SSE field handling. A blank line dispatches the event."""

    def __init__(self) -> None:
        self._reset_event()
        self._last_id: str | None = None

    def _reset_event(self) -> None:
        self._event: str | None = None
        self._data: list[str] = []
        self._retry: int | None = None
        self._has_fields = False

    def feed_line(self, line: str) -> ServerSentEvent | None:
        line = line.rstrip("\r\n")
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            if "\x00" not in value:
                self._last_id = value
        elif field == "retry":
            if value.isdigit():
                self._retry = int(value)
        else:
            return None
        self._has_fields = True
        return None

    def close(self) -> ServerSentEvent | None:
        """Dispatch a trailing event that was not followed by a blank line."""
        return self._dispatch()

    def _dispatch(self) -> ServerSentEvent | None:
        if not self._has_fields:
            return None
        event = ServerSentEvent(
            event=self._event or None,
            data="\n".join(self._data),
            id=self._last_id,
            retry=self._retry,
        )
        self._reset_event()
        return event


def decode_event(event: ServerSentEvent, chat: bool = True) -> ChatGenerations | Generations | None:
    """Return the chunk carried by ``event``, or ``None`` if it is skipped.

    Raises ``MalformedEventError`` when the payload is not a valid chunk;
    callers log that and drop the event.
    """
    if event.event in SKIPPED_EVENTS:
        return None
    data = event.data.strip()
    if not data:
        return None
    if data in DONE_SENTINELS:
        return ChatGenerations.sentinel() if chat else Generations.sentinel()

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise MalformedEventError(f"Failed to parse SSE JSON from data: {data!r}") from exc

    model = ChatGenerations if chat else Generations
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedEventError(f"Unexpected chunk shape in SSE data: {data!r}") from exc
