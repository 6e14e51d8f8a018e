from __future__ import annotations

import json
import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Literal

import httpx

from codey_gateway.core.cancellation import CancellationToken, check_cancelled
from codey_gateway.core.errors import GatewayApiError, MalformedEventError
from codey_gateway.core.settings import Settings, get_settings
from codey_gateway.providers.credentials import CredentialManager
from codey_gateway.providers.env import gateway_base_url, region_header, resolve_api_env
from codey_gateway.providers.models import GatewayModel, get_model_or_default
from codey_gateway.providers.sse import SSEDecoder, ServerSentEvent, decode_event
from codey_gateway.providers.types import (
    ChatGenerationRequest,
    ChatGenerations,
    EmbeddingRequest,
    FeedbackRequest,
    GatewayResponse,
    GenerationRequest,
    Generations,
)

logger = logging.getLogger(__name__)

Endpoint = Literal[
    "/generations",
    "/generations/stream",
    "/chat/generations",
    "/chat/generations/stream",
    "/embeddings",
    "/feedback",
]

CHAT_ENDPOINTS = frozenset({"/chat/generations", "/chat/generations/stream"})
SYSTEM_PROMPT_STRATEGY = "use_model_parameter"
DEFAULT_ERROR_MESSAGE = "Request failed"


def _error_message(payload: Any) -> str:
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, str) and message:
            return message
    return DEFAULT_ERROR_MESSAGE


def _parse_json(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


class GatewayClient:
    def __init__(
        self,
        settings: Settings | None = None,
        model: GatewayModel | None = None,
        credentials: CredentialManager | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.model = model or get_model_or_default(self.settings.gateway_model)
        self.credentials = credentials or CredentialManager(self.settings)
        self._http = http_client
        env = resolve_api_env(self.settings.sf_api_env)
        self.base_url = gateway_base_url(env)
        self.region_header = region_header(env)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(timeout=None) as client:
            yield client

    def get_headers(self, kind: Literal["request", "stream"]) -> dict[str, str]:
        credential = self.credentials.credential
        if credential is None:
            raise RuntimeError("Gateway credential not loaded")
        headers = {
            "Authorization": f"Bearer {credential.token}",
            "Content-Type": "application/json;charset=utf-8",
            "x-client-feature-id": "EinsteinGptForDevelopers",
            "x-sfdc-app-context": "EinsteinGPT",
            "x-sfdc-core-tenant-id": credential.tenant_id,
            "x-salesforce-region": self.region_header,
            "x-client-trace-id": secrets.token_hex(8),
        }
        if kind == "request":
            headers.update(self.model.custom_request_headers)
        else:
            headers.update(self.model.custom_stream_headers)
        return headers

    async def send(self, endpoint: Endpoint, method: str = "POST", body: dict[str, Any] | None = None) -> GatewayResponse[Any]:
        await self.credentials.ensure_valid()
        url = f"{self.base_url}{endpoint}"
        headers = self.get_headers("request")

        async with self._session() as client:
            resp = await client.request(method, url, headers=headers, json=body)

        data = _parse_json(resp.text)
        if resp.status_code >= 400:
            raise GatewayApiError(resp.status_code, _error_message(data), body=resp.text)

        return GatewayResponse(data=data, status=resp.status_code, headers=dict(resp.headers))

    async def stream(
        self,
        endpoint: Endpoint,
        method: str = "POST",
        body: dict[str, Any] | None = None,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[ChatGenerations | Generations]:
        check_cancelled(cancel)
        await self.credentials.ensure_valid()
        url = f"{self.base_url}{endpoint}"
        headers = self.get_headers("stream")
        chat = endpoint in CHAT_ENDPOINTS

        async with self._session() as client:
            async with client.stream(method, url, headers=headers, json=body) as resp:
                if resp.status_code >= 400:
                    raw = (await resp.aread()).decode("utf-8", errors="replace")
                    raise GatewayApiError(resp.status_code, _error_message(_parse_json(raw)), body=raw)

                decoder = SSEDecoder()
                async for line in resp.aiter_lines():
                    event = decoder.feed_line(line)
                    if event is None:
                        continue
                    check_cancelled(cancel)
                    chunk = self._decode(event, chat)
                    if chunk is not None:
                        yield chunk
                event = decoder.close()
                if event is not None:
                    check_cancelled(cancel)
                    chunk = self._decode(event, chat)
                    if chunk is not None:
                        yield chunk

    def _decode(self, event: ServerSentEvent, chat: bool) -> ChatGenerations | Generations | None:
        try:
            return decode_event(event, chat=chat)
        except MalformedEventError as exc:
            logger.warning("%s", exc)
            return None

    async def generate_completion(self, request: GenerationRequest) -> GatewayResponse[Generations]:
        resp = await self.send("/generations", "POST", request.to_wire())
        return GatewayResponse(data=Generations.model_validate(resp.data or {}), status=resp.status, headers=resp.headers)

    async def generate_completion_stream(
        self, request: GenerationRequest, cancel: CancellationToken | None = None
    ) -> AsyncIterator[Generations]:
        async for chunk in self.stream("/generations/stream", "POST", request.to_wire(), cancel=cancel):
            yield chunk  # type: ignore[misc]

    def _chat_body(self, request: ChatGenerationRequest) -> dict[str, Any]:
        return {**request.to_wire(), "system_prompt_strategy": SYSTEM_PROMPT_STRATEGY}

    async def generate_chat_completion(self, request: ChatGenerationRequest) -> GatewayResponse[ChatGenerations]:
        resp = await self.send("/chat/generations", "POST", self._chat_body(request))
        return GatewayResponse(
            data=ChatGenerations.model_validate(resp.data or {}), status=resp.status, headers=resp.headers
        )

    async def generate_chat_completion_stream(
        self, request: ChatGenerationRequest, cancel: CancellationToken | None = None
    ) -> AsyncIterator[ChatGenerations]:
        async for chunk in self.stream("/chat/generations/stream", "POST", self._chat_body(request), cancel=cancel):
            yield chunk  # type: ignore[misc]

    async def create_embedding(self, request: EmbeddingRequest) -> GatewayResponse[Any]:
        return await self.send("/embeddings", "POST", request.to_wire())

    async def submit_feedback(self, feedback: FeedbackRequest) -> GatewayResponse[Any]:
        return await self.send("/feedback", "POST", feedback.to_wire())
