from __future__ import annotations

import base64
import json
import time
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from codey_gateway.core.settings import Settings
from codey_gateway.providers.credentials import Credential


def _segment(data: dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")


def make_jwt(tenant: str = "tenant-1", exp: float | None = None, operation: str = "codegen") -> str:
    payload: dict[str, Any] = {"sfap_op": operation}
    if exp is not None:
        payload["exp"] = exp
    return f"{_segment({'alg': 'none', 'tnk': tenant})}.{_segment(payload)}.signature"


class StaticCredentials:
    """Stands in for CredentialManager with a fixed, valid credential."""

    def __init__(self, token: str | None = None) -> None:
        self.credential = Credential.parse(token or make_jwt(exp=time.time() + 3600))
        self.calls = 0

    async def ensure_valid(self) -> Credential:
        self.calls += 1
        return self.credential


def sse(*events: tuple[str | None, Any]) -> str:
    frames = []
    for event, data in events:
        payload = data if isinstance(data, str) else json.dumps(data)
        lines = [f"event: {event}"] if event else []
        lines.append(f"data: {payload}")
        frames.append("\n".join(lines) + "\n\n")
    return "".join(frames)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        sf_api_env="prod",
        org_username="dev@example.com",
        org_instance_url="https://org.example.com",
        org_access_token="org-token",
        gateway_model="claude-4-sonnet",
    )


@pytest.fixture()
def jwt_factory() -> Callable[..., str]:
    return make_jwt


@pytest.fixture()
def credentials() -> StaticCredentials:
    return StaticCredentials()


@pytest.fixture()
def sse_body() -> Callable[..., str]:
    return sse


@pytest.fixture()
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    def build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build


@pytest.fixture()
def app_client(settings: Settings, mock_http):
    """Builds a TestClient whose gateway traffic goes to ``handler``."""
    from fastapi.testclient import TestClient

    from codey_gateway.main import create_app
    from codey_gateway.providers.client import GatewayClient
    from codey_gateway.providers.generator import GatewayContentGenerator

    opened: list[TestClient] = []

    def build(handler: Callable[[httpx.Request], httpx.Response], credentials: Any = None) -> TestClient:
        client = GatewayClient(settings, credentials=credentials or StaticCredentials(), http_client=mock_http(handler))
        app = create_app(settings, generator=GatewayContentGenerator(settings, client=client))
        test_client = TestClient(app)
        test_client.__enter__()
        opened.append(test_client)
        return test_client

    yield build
    for test_client in opened:
        test_client.__exit__(None, None, None)
