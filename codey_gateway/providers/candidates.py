"""Gateway generations -> caller candidates.

Covers the non-streaming conversion, terminal-chunk classification and the
per-turn reconstruction of tool calls whose arguments arrive in fragments.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from codey_gateway.content import Candidate, Content, FinishReason, Part
from codey_gateway.core.errors import ToolArgumentsError
from codey_gateway.providers.accumulator import FeedResult, FunctionCallAccumulator
from codey_gateway.providers.normalize import map_tool_parameters
from codey_gateway.providers.types import ChatGeneration, ChatGenerations, ToolInvocation

logger = logging.getLogger(__name__)

FINISH_REASONS: dict[str, FinishReason] = {
    "eos_token": FinishReason.STOP,
    "stop": FinishReason.STOP,
    "length": FinishReason.MAX_TOKENS,
    "max_tokens": FinishReason.MAX_TOKENS,
    "safety": FinishReason.SAFETY,
    "recitation": FinishReason.RECITATION,
}


def map_finish_reason(tag: str | None) -> FinishReason | None:
    if not tag:
        return None
    return FINISH_REASONS.get(tag)


def model_candidate(parts: list[Part], finish_reason: FinishReason | None = None) -> Candidate:
    return Candidate(content=Content(role="model", parts=parts), index=0, finish_reason=finish_reason)


def create_text_candidate(text: str) -> Candidate:
    return model_candidate([Part.from_text(text)])


def function_call_candidate(name: str, args: dict[str, Any], call_id: str | None = None) -> Candidate:
    return model_candidate([Part.from_function_call(name, map_tool_parameters(name, args), call_id)])


def parse_tool_arguments(raw: str) -> dict[str, Any]:
    try:
        args = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolArgumentsError(f"Tool arguments are not valid JSON: {exc}") from exc
    if not isinstance(args, dict):
        raise ToolArgumentsError("Tool arguments are not a JSON object")
    return args


def tool_call_part(name: str, arguments: str, call_id: str | None) -> Part:
    """Build a function-call part, or an error text part if the arguments do not parse."""
    try:
        args = parse_tool_arguments(arguments)
    except ToolArgumentsError as exc:
        logger.warning("Failed to parse tool arguments for %s: %s", name, exc)
        logger.debug("Raw arguments string: %r", arguments)
        return Part.from_text(f"Error: Failed to parse tool call {name}")
    return Part.from_function_call(name, map_tool_parameters(name, args), call_id or None)


def inline_call_parts(result: FeedResult) -> list[Part]:
    return [Part.from_function_call(call.name, map_tool_parameters(call.name, call.args), call.id) for call in result.calls]


def convert_generation_to_candidate(generation: ChatGeneration, inline_function_calls: bool = False) -> Candidate:
    parts: list[Part] = []

    if generation.tool_invocations:
        for invocation in generation.tool_invocations:
            parts.append(tool_call_part(invocation.function.name, invocation.function.arguments, invocation.id))
    elif generation.content and inline_function_calls:
        accumulator = FunctionCallAccumulator()
        fed = accumulator.feed(generation.content)
        flushed = accumulator.flush()
        parts.extend(inline_call_parts(fed))
        parts.extend(inline_call_parts(flushed))
        text = (fed.text + flushed.text).strip()
        if text:
            parts.append(Part.from_text(text))
    elif generation.content:
        parts.append(Part.from_text(generation.content))

    return model_candidate(parts, map_finish_reason(generation.finish_reason))


def terminal_candidate(chunk: ChatGenerations) -> Candidate | None:
    """Return the finish candidate if ``chunk`` ends the turn, else ``None``.

    A chunk is terminal when it carries usage but nothing meaningful, or
    when any generation has a recognized finish reason. Content on a
    terminal chunk is not returned.
    """
    generations = chunk.generations
    meaningful = any(g.content.strip() or g.has_tool_invocations for g in generations)

    finish_reason: FinishReason | None = None
    for generation in generations:
        finish_reason = map_finish_reason(generation.finish_reason)
        if finish_reason is not None:
            break

    if finish_reason is None and not (chunk.usage and not meaningful):
        return None
    return model_candidate([], finish_reason or FinishReason.STOP)


@dataclass
class StreamingToolCall:
    id: str
    name: str
    arguments_buffer: str = ""

    def to_part(self) -> Part:
        return tool_call_part(self.name, self.arguments_buffer or "{}", self.id)


class StreamingToolCallTracker:
    """Holds the one tool call currently being streamed for a turn.

    Fragments with an id and a name start a call. Fragments without one
    append to the active call's argument buffer. The call completes when a
    chunk arrives whose generations carry no tool invocations at all.
    """

    def __init__(self) -> None:
        self.active: StreamingToolCall | None = None

    def start(self, invocation: ToolInvocation) -> StreamingToolCall | None:
        """Start a new call and return the one it supersedes, if any."""
        previous = self.active
        self.active = StreamingToolCall(
            id=invocation.id,
            name=invocation.function.name,
            arguments_buffer=invocation.function.arguments,
        )
        if previous is not None:
            logger.debug("Tool call %s started while %s was still streaming", self.active.id, previous.id)
        return previous

    def append(self, invocation: ToolInvocation) -> None:
        if self.active is None:
            logger.debug("Ignoring tool argument fragment with no active call")
            return
        self.active.arguments_buffer += invocation.function.arguments

    def feed(self, invocations: list[ToolInvocation]) -> list[StreamingToolCall]:
        superseded: list[StreamingToolCall] = []
        for invocation in invocations:
            if invocation.starts_call:
                previous = self.start(invocation)
                if previous is not None:
                    superseded.append(previous)
            else:
                self.append(invocation)
        return superseded

    def complete_if_done(self, generations: list[ChatGeneration]) -> Candidate | None:
        if self.active is None or any(g.has_tool_invocations for g in generations):
            return None
        return self.drain()

    def drain(self) -> Candidate | None:
        call, self.active = self.active, None
        if call is None:
            return None
        return model_candidate([call.to_part()])


def process_generation_chunks(
    generations: list[ChatGeneration],
    tracker: StreamingToolCallTracker,
    accumulator: FunctionCallAccumulator | None = None,
) -> Candidate | None:
    """Turn one chunk's generations into at most one candidate.

    Tool fragments go to ``tracker``; calls they supersede come out as parts.
    Text goes through ``accumulator`` when one is given, so inline calls
    come out as function-call parts.
    """
    parts: list[Part] = []

    for generation in generations:
        if generation.tool_invocations:
            for call in tracker.feed(generation.tool_invocations):
                parts.append(call.to_part())
        elif generation.content:
            if accumulator is None:
                parts.append(Part.from_text(generation.content))
                continue
            result = accumulator.feed(generation.content)
            parts.extend(inline_call_parts(result))
            if result.text:
                parts.append(Part.from_text(result.text))

    if not parts:
        return None
    return model_candidate(parts)
