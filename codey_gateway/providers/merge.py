"""Fold a streamed response back into a single response body.

Used for models that only expose the streaming endpoint when the caller
asked for one synchronous response.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, Iterable
from dataclasses import dataclass, field
from typing import Any

from codey_gateway.core.cancellation import CancellationToken, check_cancelled
from codey_gateway.core.errors import EmptyStreamError
from codey_gateway.providers.types import (
    ChatGeneration,
    ChatGenerations,
    CompletionGeneration,
    GenerationDetails,
    Generations,
    ToolInvocation,
    ToolInvocationFunction,
)

logger = logging.getLogger(__name__)


@dataclass
class _GenerationState:
    content: str = ""
    role: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    invocations: list[ToolInvocation] = field(default_factory=list)
    # array position -> index into ``invocations`` of the call last started there
    latest_at_position: dict[int, int] = field(default_factory=dict)

    def add_invocations(self, fragments: list[ToolInvocation]) -> None:
        for position, fragment in enumerate(fragments):
            if fragment.starts_call:
                self.invocations.append(
                    ToolInvocation(
                        id=fragment.id,
                        function=ToolInvocationFunction(
                            name=fragment.function.name,
                            arguments=fragment.function.arguments,
                        ),
                    )
                )
                self.latest_at_position[position] = len(self.invocations) - 1
                continue

            target = self.latest_at_position.get(position)
            if target is None and self.invocations:
                target = len(self.invocations) - 1
            if target is None:
                logger.debug("Dropping tool argument fragment with no started call: %r", fragment.function.arguments)
                continue
            self.invocations[target].function.arguments += fragment.function.arguments

    def build(self) -> ChatGeneration:
        return ChatGeneration(
            content=self.content,
            role=self.role or "assistant",
            parameters=dict(self.parameters) or None,
            tool_invocations=list(self.invocations) or None,
        )


def _merge_params(target: dict[str, Any], incoming: dict[str, Any] | None, keep_existing: bool) -> None:
    if not incoming:
        return
    if keep_existing:
        for key, value in incoming.items():
            target.setdefault(key, value)
    else:
        target.update(incoming)


class ChatChunkMerger:
    """Accumulates chat chunks in arrival order.

    Content concatenates per generation index, ``parameters`` merge by
    shallow overwrite, and tool-argument fragments append to the call last
    started at the same array position. A ``[DONE]`` sentinel only fills
    keys nothing else has set.
    """

    def __init__(self) -> None:
        self.count = 0
        self._id = ""
        self._generations: dict[int, _GenerationState] = {}
        self._parameters: dict[str, Any] = {}

    def add(self, chunk: ChatGenerations) -> None:
        self.count += 1
        sentinel = chunk.is_sentinel
        if chunk.id:
            self._id = chunk.id

        details = chunk.generation_details
        if details is None:
            return
        _merge_params(self._parameters, details.parameters, keep_existing=sentinel)

        for index, generation in enumerate(details.generations):
            state = self._generations.setdefault(index, _GenerationState())
            state.content += generation.content
            if generation.role and not (sentinel and state.role):
                state.role = generation.role
            _merge_params(state.parameters, generation.parameters, keep_existing=sentinel)
            if generation.tool_invocations:
                state.add_invocations(generation.tool_invocations)

    def result(self) -> ChatGenerations:
        if self.count == 0:
            raise EmptyStreamError("Stream produced no chunks to merge")
        generations = [self._generations[index].build() for index in sorted(self._generations)]
        return ChatGenerations(
            id=self._id,
            generation_details=GenerationDetails(
                generations=generations,
                parameters=dict(self._parameters) or None,
            ),
        )


class CompletionChunkMerger:
    def __init__(self) -> None:
        self.count = 0
        self._id = ""
        self._texts: dict[int, str] = {}

    def add(self, chunk: Generations) -> None:
        self.count += 1
        if chunk.id:
            self._id = chunk.id
        for index, generation in enumerate(chunk.generations):
            self._texts[index] = self._texts.get(index, "") + generation.text

    def result(self) -> Generations:
        if self.count == 0:
            raise EmptyStreamError("Stream produced no chunks to merge")
        return Generations(
            id=self._id,
            generations=[CompletionGeneration(text=self._texts[index]) for index in sorted(self._texts)],
        )


def merge_chat_chunks(chunks: Iterable[ChatGenerations]) -> ChatGenerations:
    merger = ChatChunkMerger()
    for chunk in chunks:
        merger.add(chunk)
    return merger.result()


async def merge_chat_stream(
    chunks: AsyncIterable[ChatGenerations], cancel: CancellationToken | None = None
) -> ChatGenerations:
    merger = ChatChunkMerger()
    async for chunk in chunks:
        check_cancelled(cancel)
        merger.add(chunk)
    check_cancelled(cancel)
    logger.debug("Merged %d chat chunks", merger.count)
    return merger.result()


def merge_completion_chunks(chunks: Iterable[Generations]) -> Generations:
    merger = CompletionChunkMerger()
    for chunk in chunks:
        merger.add(chunk)
    return merger.result()


async def merge_completion_stream(
    chunks: AsyncIterable[Generations], cancel: CancellationToken | None = None
) -> Generations:
    merger = CompletionChunkMerger()
    async for chunk in chunks:
        check_cancelled(cancel)
        merger.add(chunk)
    check_cancelled(cancel)
    return merger.result()
