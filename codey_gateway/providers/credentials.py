from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from codey_gateway.core.errors import AuthConfigError, AuthResponseError, MalformedCredentialError
from codey_gateway.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_BUFFER_SECONDS = 30.0


def _decode_segment(segment: str) -> dict[str, Any]:
    normalized = segment.replace("+", "-").replace("/", "_")
    padded = normalized + "=" * (-len(normalized) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        decoded = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise MalformedCredentialError(f"Unable to decode credential segment: {exc}") from exc
    if not isinstance(decoded, dict):
        raise MalformedCredentialError("Credential segment is not a JSON object")
    return decoded


@dataclass(frozen=True)
class Credential:
    token: str
    tenant_id: str
    operation: str
    expires_at: float | None

    @classmethod
    def parse(cls, token: str, buffer_seconds: float = DEFAULT_EXPIRY_BUFFER_SECONDS) -> Credential:
        if not token:
            raise MalformedCredentialError("Invalid credential response")
        segments = token.split(".")
        if len(segments) < 2 or not segments[1]:
            raise MalformedCredentialError("Unable to split credential token")
        header = _decode_segment(segments[0])
        payload = _decode_segment(segments[1])

        exp = payload.get("exp")
        expires_at: float | None = None
        if isinstance(exp, (int, float)) and not isinstance(exp, bool) and exp:
            expires_at = float(exp) - buffer_seconds

        return cls(
            token=token,
            tenant_id=str(header.get("tnk") or ""),
            operation=str(payload.get("sfap_op") or ""),
            expires_at=expires_at,
        )

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current > self.expires_at


@dataclass(frozen=True)
class OrgConnection:
    instance_url: str
    access_token: str | None = None


OrgResolver = Callable[[str], Awaitable[OrgConnection]]


def settings_org_resolver(settings: Settings) -> OrgResolver:
    async def resolve(username: str) -> OrgConnection:
        if not settings.org_instance_url:
            raise AuthConfigError(
                f"No org instance URL configured for {username}",
                hint="Set CODEY_ORG_INSTANCE_URL to the org's instance URL.",
            )
        return OrgConnection(
            instance_url=settings.org_instance_url.rstrip("/"),
            access_token=settings.org_access_token,
        )

    return resolve


class CredentialManager:
    """Caches one gateway credential and refreshes it when expired.

    The cache is a single-writer slot: refreshes run under a lock and
    re-check validity once inside it, so concurrent callers that all see an
    expired credential share a single ``/ide/auth`` exchange.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        resolver: OrgResolver | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.resolver = resolver or settings_org_resolver(self.settings)
        self._http = http_client
        self._credential: Credential | None = None
        self._lock = asyncio.Lock()

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def _is_valid(self) -> bool:
        return self._credential is not None and not self._credential.is_expired()

    async def ensure_valid(self) -> Credential:
        if self._is_valid():
            return self._credential  # type: ignore[return-value]
        async with self._lock:
            if self._is_valid():
                return self._credential  # type: ignore[return-value]
            credential = await self._exchange()
            self._credential = credential
            return credential

    async def _exchange(self) -> Credential:
        username = self.settings.org_username
        if not username:
            raise AuthConfigError(
                "CODEY_ORG_USERNAME is required for gateway auth",
                hint="Set CODEY_ORG_USERNAME to the org username or alias.",
            )

        org = await self.resolver(username)
        url = f"{org.instance_url}/ide/auth"
        headers = {"Content-Type": "application/json"}
        if org.access_token:
            headers["Authorization"] = f"Bearer {org.access_token}"

        logger.info("Requesting gateway credential for %s", username)
        if self._http is not None:
            resp = await self._http.post(url, headers=headers, content=b"{}")
        else:
            async with httpx.AsyncClient(timeout=None) as client:
                resp = await client.post(url, headers=headers, content=b"{}")

        if resp.status_code >= 400:
            raise AuthResponseError(
                f"Credential exchange failed with HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise AuthResponseError("Failed to obtain credential from /ide/auth", status_code=resp.status_code) from exc

        token = payload.get("jwt") if isinstance(payload, dict) else None
        if not token or not isinstance(token, str):
            raise AuthResponseError("Failed to obtain credential from /ide/auth", status_code=resp.status_code)

        return Credential.parse(token, buffer_seconds=self.settings.credential_expiry_buffer_seconds)
