from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from codey_gateway.api.deps import get_generator
from codey_gateway.content import (
    CountTokensResponse,
    EmbedContentRequest,
    EmbedContentResponse,
    GenerateContentRequest,
    GenerateContentResponse,
)
from codey_gateway.core.cancellation import CancellationToken
from codey_gateway.core.errors import GatewayApiError, GatewayError
from codey_gateway.providers.generator import GatewayContentGenerator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["generate"])


def _frame(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


@router.post("/generate", response_model=GenerateContentResponse, response_model_exclude_none=True)
async def generate(
    payload: GenerateContentRequest,
    generator: GatewayContentGenerator = Depends(get_generator),
) -> GenerateContentResponse:
    return await generator.generate_content(payload)


@router.post("/generate/stream")
async def generate_stream(
    payload: GenerateContentRequest,
    generator: GatewayContentGenerator = Depends(get_generator),
) -> StreamingResponse:
    cancel = CancellationToken()

    async def event_generator() -> AsyncIterator[str]:
        try:
            async for response in generator.generate_content_stream(payload, cancel=cancel):
                yield _frame("candidate", response.model_dump_json(by_alias=True, exclude_none=True))
        except GatewayError as exc:
            logger.warning("Stream failed: %s", exc)
            body = {"detail": str(exc)}
            if isinstance(exc, GatewayApiError):
                body["status"] = exc.status
            yield _frame("error", json.dumps(body))
            return
        finally:
            cancel.cancel("client stream closed")
        yield _frame("done", "[DONE]")

    return StreamingResponse(event_generator(), media_type="text/event-stream")


@router.post("/count-tokens", response_model=CountTokensResponse)
async def count_tokens(
    payload: GenerateContentRequest,
    generator: GatewayContentGenerator = Depends(get_generator),
) -> CountTokensResponse:
    return await generator.count_tokens(payload)


@router.post("/embed", response_model=EmbedContentResponse)
async def embed(
    payload: EmbedContentRequest,
    generator: GatewayContentGenerator = Depends(get_generator),
) -> EmbedContentResponse:
    return await generator.embed_content(payload)
