from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from codey_gateway.content import (
    Candidate,
    ContentEmbedding,
    CountTokensResponse,
    EmbedContentRequest,
    EmbedContentResponse,
    GenerateContentRequest,
    GenerateContentResponse,
    Part,
    UsageMetadata,
)
from codey_gateway.core.cancellation import CancellationToken, check_cancelled
from codey_gateway.core.settings import Settings, get_settings
from codey_gateway.providers.accumulator import FunctionCallAccumulator
from codey_gateway.providers.candidates import (
    StreamingToolCallTracker,
    convert_generation_to_candidate,
    inline_call_parts,
    model_candidate,
    process_generation_chunks,
    terminal_candidate,
)
from codey_gateway.providers.client import GatewayClient
from codey_gateway.providers.merge import merge_chat_stream
from codey_gateway.providers.models import GatewayModel, get_model_or_default
from codey_gateway.providers.normalize import content_to_text, to_contents, translate_request
from codey_gateway.providers.types import ChatGenerationRequest, ChatGenerations, EmbeddingRequest

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-model"

_USAGE_KEYS = {
    "input": ("inputTokens", "input_tokens"),
    "output": ("outputTokens", "output_tokens"),
    "total": ("totalTokens", "total_tokens"),
}


def _usage_value(usage: dict[str, Any], kind: str) -> int | None:
    for key in _USAGE_KEYS[kind]:
        value = usage.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


class GatewayContentGenerator:
    """Caller-facing generator backed by the gateway chat endpoints.

    Translates requests into gateway chat requests and turns responses, or
    streamed chunks, back into candidates. Usage counters accumulate across
    calls on the same instance.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        model: GatewayModel | None = None,
        client: GatewayClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.model = model or (client.model if client else get_model_or_default(self.settings.gateway_model))
        self.client = client or GatewayClient(self.settings, self.model)
        self.usage = UsageMetadata()

    def update_usage(self, usage: dict[str, Any] | None) -> None:
        if not usage:
            return
        prompt = _usage_value(usage, "input")
        output = _usage_value(usage, "output")
        total = _usage_value(usage, "total")
        self.usage = UsageMetadata(
            prompt_token_count=self.usage.prompt_token_count if prompt is None else prompt,
            candidates_token_count=self.usage.candidates_token_count if output is None else output,
            total_token_count=self.usage.total_token_count if total is None else total,
        )

    def _response(self, candidates: list[Candidate]) -> GenerateContentResponse:
        return GenerateContentResponse(
            candidates=candidates,
            usage_metadata=self.usage.model_copy(),
            model_version=self.model.model,
        )

    def translate_request(self, request: GenerateContentRequest) -> ChatGenerationRequest:
        return translate_request(request, self.model, self.settings)

    def translate_response(self, response: ChatGenerations) -> GenerateContentResponse:
        self.update_usage(response.usage)
        candidates = [
            convert_generation_to_candidate(generation, self.model.inline_function_calls)
            for generation in response.generations
        ]
        return self._response(candidates)

    async def generate_content(
        self, request: GenerateContentRequest, cancel: CancellationToken | None = None
    ) -> GenerateContentResponse:
        gateway_request = self.translate_request(request)
        if self.model.streaming_only:
            chunks = self.client.generate_chat_completion_stream(gateway_request, cancel=cancel)
            merged = await merge_chat_stream(chunks, cancel=cancel)
            return self.translate_response(merged)

        check_cancelled(cancel)
        resp = await self.client.generate_chat_completion(gateway_request)
        return self.translate_response(resp.data)

    async def generate_content_stream(
        self, request: GenerateContentRequest, cancel: CancellationToken | None = None
    ) -> AsyncIterator[GenerateContentResponse]:
        gateway_request = self.translate_request(request)
        chunks = self.client.generate_chat_completion_stream(gateway_request, cancel=cancel)
        async for response in self.translate_stream(chunks, cancel=cancel):
            yield response

    async def translate_stream(
        self, chunks: AsyncIterable[ChatGenerations], cancel: CancellationToken | None = None
    ) -> AsyncIterator[GenerateContentResponse]:
        tracker = StreamingToolCallTracker()
        accumulator = FunctionCallAccumulator() if self.model.inline_function_calls else None
        last_id = ""
        terminated = False

        async for chunk in chunks:
            check_cancelled(cancel)
            self.update_usage(chunk.usage)
            generations = chunk.generations

            if accumulator is not None and chunk.id and chunk.id != last_id:
                accumulator.reset()
                last_id = chunk.id

            parts: list[Part] = []
            completed = tracker.complete_if_done(generations)
            if completed is not None:
                parts.extend(completed.content.parts)

            terminal = terminal_candidate(chunk)
            if terminal is None:
                candidate = process_generation_chunks(generations, tracker, accumulator)
                if candidate is not None:
                    parts.extend(candidate.content.parts)
                candidates = [model_candidate(parts)] if parts else []
            else:
                # Fragments on a terminal chunk still count, its text does not.
                for generation in generations:
                    if generation.tool_invocations:
                        parts.extend(call.to_part() for call in tracker.feed(generation.tool_invocations))
                candidates = [model_candidate(parts)] if parts else []
                # The turn ends once; later terminal chunks only carry usage.
                if not terminated:
                    candidates.append(terminal)
                    terminated = True

            yield self._response(candidates)

        check_cancelled(cancel)
        final_parts: list[Part] = []
        if tracker.active is not None:
            logger.warning("Stream ended with incomplete tool call %s (%s)", tracker.active.name, tracker.active.id)
            drained = tracker.drain()
            if drained is not None:
                final_parts.extend(drained.content.parts)
        if accumulator is not None:
            flushed = accumulator.flush()
            final_parts.extend(inline_call_parts(flushed))
            if flushed.text.strip():
                final_parts.append(Part.from_text(flushed.text))
        if final_parts:
            yield self._response([model_candidate(final_parts)])

    async def count_tokens(self, request: GenerateContentRequest | None = None) -> CountTokensResponse:
        return CountTokensResponse(total_tokens=self.usage.total_token_count)

    async def embed_content(self, request: EmbedContentRequest) -> EmbedContentResponse:
        contents = to_contents(request.contents)
        text = content_to_text(contents[0]) if contents else ""
        resp = await self.client.create_embedding(
            EmbeddingRequest(input=[text], model=request.model or DEFAULT_EMBEDDING_MODEL)
        )

        values: list[float] = []
        data = resp.data
        if isinstance(data, dict):
            embeddings = data.get("embeddings")
            if isinstance(embeddings, list) and embeddings and isinstance(embeddings[0], dict):
                values = embeddings[0].get("values") or []
        return EmbedContentResponse(embeddings=[ContentEmbedding(values=values)])
