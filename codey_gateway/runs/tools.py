from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Union

from codey_gateway.content import FunctionDeclaration, Tool

logger = logging.getLogger(__name__)

ToolResult = dict[str, Any]
ToolFn = Callable[..., Union[ToolResult, Awaitable[ToolResult]]]


class ToolExecutionError(Exception):
    pass


@dataclass
class RegisteredTool:
    fn: ToolFn
    declaration: FunctionDeclaration


@dataclass
class ToolRegistry:
    """Named callables the tool loop may invoke.

    Each callable receives the parsed call arguments as keyword arguments and
    returns a JSON-serializable dict. Coroutine functions are awaited.
    """

    tools: dict[str, RegisteredTool] = field(default_factory=dict)

    def register(
        self,
        name: str,
        fn: ToolFn,
        description: str = "",
        parameters: dict[str, Any] | None = None,
    ) -> None:
        declaration = FunctionDeclaration(
            name=name,
            description=description,
            parameters_json_schema=parameters or {"type": "object", "properties": {}},
        )
        self.tools[name] = RegisteredTool(fn=fn, declaration=declaration)

    def declarations(self) -> list[Tool]:
        if not self.tools:
            return []
        return [Tool(function_declarations=[tool.declaration for tool in self.tools.values()])]

    async def execute(self, name: str, args: dict[str, Any]) -> ToolResult:
        tool = self.tools.get(name)
        if tool is None:
            raise ToolExecutionError(f"Unknown tool: {name}")
        try:
            result = tool.fn(**args)
            if inspect.isawaitable(result):
                result = await result
        except ToolExecutionError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ToolExecutionError(f"{name} failed: {exc}") from exc
        if not isinstance(result, dict):
            return {"result": result}
        return result
