"""Extracts inline ``{"functionCall": {...}}`` objects from a text stream.

Some gateway models do not return structured tool invocations. They write
the call into their text output as a JSON object instead, and that object can
be split across any number of chunks. ``FunctionCallAccumulator`` holds back
just enough text to spot the marker, captures the enclosing object with a
brace and string aware scan, and releases everything else as plain text.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

MARKER = '"functionCall"'
LOOKBACK_SIZE = 200


@dataclass
class ParsedCall:
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass
class FeedResult:
    calls: list[ParsedCall] = field(default_factory=list)
    text: str = ""


def parse_function_call(raw: str) -> ParsedCall | None:
    """Return the call encoded in ``raw``, or ``None`` if it is not one."""
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    call = parsed.get("functionCall")
    if not isinstance(call, dict) or not isinstance(call.get("name"), str):
        return None
    args = call.get("args")
    call_id = call.get("id")
    return ParsedCall(
        name=call["name"],
        args=args if isinstance(args, dict) else {},
        id=call_id if isinstance(call_id, str) else None,
    )


class FunctionCallAccumulator:
    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._buf = ""
        self._capturing = False
        self._depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def capturing(self) -> bool:
        return self._capturing

    def feed(self, chunk: str) -> FeedResult:
        result = FeedResult()
        text_out: list[str] = []

        for ch in chunk:
            self._buf += ch

            if not self._capturing:
                if MARKER in self._buf:
                    start = self._buf.rfind("{")
                    if start != -1:
                        text_out.append(self._buf[:start])
                        self._buf = self._buf[start:]
                        self._capturing = True
                        self._depth = 1
                        self._in_string = False
                        self._escaped = False
                        continue

                if len(self._buf) > LOOKBACK_SIZE:
                    overflow = len(self._buf) - LOOKBACK_SIZE
                    text_out.append(self._buf[:overflow])
                    self._buf = self._buf[overflow:]
                continue

            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == "\\":
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
                continue

            if ch == '"':
                self._in_string = True
            elif ch == "{":
                self._depth += 1
            elif ch == "}":
                self._depth -= 1
                if self._depth == 0:
                    call = parse_function_call(self._buf)
                    if call is not None:
                        result.calls.append(call)
                    else:
                        # False start: the balanced object was not a call.
                        text_out.append(self._buf)
                    self.reset()

        result.text = "".join(text_out)
        return result

    def flush(self) -> FeedResult:
        """Release whatever is buffered at end of stream and reset.

        A capture that never closed is dropped with a warning.
        """
        result = FeedResult()
        buf = self._buf

        if buf:
            if self._capturing:
                call = parse_function_call(buf)
                if call is not None:
                    result.calls.append(call)
                else:
                    logger.warning("Dropping incomplete function call at end of stream: %s...", buf[:100])
            elif MARKER in buf and "{" in buf:
                start = buf.rfind("{")
                result.text = buf[:start]
                logger.warning(
                    "Dropping incomplete function call at end of stream: %s...", buf[start : start + 100]
                )
            else:
                result.text = buf

        self.reset()
        return result
