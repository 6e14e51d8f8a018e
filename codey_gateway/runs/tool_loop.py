from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from codey_gateway.content import (
    Content,
    FinishReason,
    FunctionCall,
    FunctionResponse,
    GenerateContentRequest,
    Part,
)
from codey_gateway.core.cancellation import CancellationToken, check_cancelled
from codey_gateway.providers.generator import GatewayContentGenerator
from codey_gateway.providers.normalize import to_contents
from codey_gateway.runs.tools import ToolExecutionError, ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class LoopResult:
    history: list[Content] = field(default_factory=list)
    text: str = ""
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    turns: int = 0
    exhausted: bool = False
    finish_reason: FinishReason | None = None


@dataclass
class _Turn:
    text: list[str] = field(default_factory=list)
    calls: list[FunctionCall] = field(default_factory=list)
    finish_reason: FinishReason | None = None


class ToolLoop:
    """Drives a conversation until the model stops asking for tools.

    Each turn streams one response, runs every requested tool through the
    registry, and feeds the results back as function responses.
    """

    def __init__(
        self,
        generator: GatewayContentGenerator,
        registry: ToolRegistry,
        max_turns: int | None = None,
    ) -> None:
        self.generator = generator
        self.registry = registry
        self.max_turns = max_turns if max_turns is not None else generator.settings.tool_loop_limit

    async def _stream_turn(self, request: GenerateContentRequest, cancel: CancellationToken | None) -> _Turn:
        turn = _Turn()
        async for response in self.generator.generate_content_stream(request, cancel=cancel):
            for candidate in response.candidates:
                for part in candidate.content.parts:
                    if part.function_call is not None:
                        turn.calls.append(part.function_call)
                    elif part.text:
                        turn.text.append(part.text)
                if candidate.finish_reason is not None:
                    turn.finish_reason = candidate.finish_reason
        return turn

    async def run(self, request: GenerateContentRequest, cancel: CancellationToken | None = None) -> LoopResult:
        result = LoopResult(history=to_contents(request.contents))
        config = request.config
        if not config.tools:
            config = config.model_copy(update={"tools": self.registry.declarations() or None})

        for turn_index in range(self.max_turns):
            check_cancelled(cancel)
            turn_request = request.model_copy(update={"contents": list(result.history), "config": config})
            turn = await self._stream_turn(turn_request, cancel)
            result.turns += 1
            result.finish_reason = turn.finish_reason
            text = "".join(turn.text)
            result.text = text

            model_parts = [Part.from_text(text)] if text else []
            model_parts.extend(Part(function_call=call) for call in turn.calls)
            if model_parts:
                result.history.append(Content(role="model", parts=model_parts))

            if not turn.calls:
                break

            if turn_index == self.max_turns - 1:
                result.exhausted = True
                logger.warning("Tool loop exhausted after %d turns", self.max_turns)
                break

            responses: list[Part] = []
            for call in turn.calls:
                check_cancelled(cancel)
                try:
                    output = await self.registry.execute(call.name, call.args)
                    status = "ok"
                except ToolExecutionError as exc:
                    output = {"error": str(exc)}
                    status = "error"
                logger.info("Tool %s executed with status %s", call.name, status)
                result.tool_calls.append({"id": call.id, "name": call.name, "args": call.args, "result": output, "status": status})
                responses.append(Part(function_response=FunctionResponse(name=call.name, response=output, id=call.id)))

            result.history.append(Content(role="user", parts=responses))

        return result
