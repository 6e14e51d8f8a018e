"""Exception hierarchy for the gateway client.

Fatal conditions derive from the auth, API, stream and cancellation
branches and propagate to the caller. ``ParseWarning`` subclasses are
raised only internally: they are caught at the boundary where they occur,
logged, and turned into a dropped event or a text part.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class AuthError(GatewayError):
    """Credential acquisition failed."""


class AuthConfigError(AuthError):
    """Required identity configuration is missing."""


class AuthResponseError(AuthError):
    """The credential exchange returned an unusable response."""

    def __init__(self, message: str, *, status_code: int | None = None, hint: str | None = None) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code


class MalformedCredentialError(AuthError):
    """The credential token could not be decoded."""


class GatewayApiError(GatewayError):
    """The gateway rejected a request with a status >= 400.

    ``body`` keeps the raw upstream error body for diagnostics.
    """

    def __init__(self, status: int, message: str, *, body: str | None = None) -> None:
        super().__init__(f"Gateway API Error: {status} - {message}.")
        self.status = status
        self.message = message
        self.body = body


class EmptyStreamError(GatewayError):
    """A streaming-only accumulation produced no chunks."""


class OperationCancelledError(GatewayError):
    """The caller cancelled the operation."""


class ParseWarning(GatewayError):
    """Non-fatal decode failure. Logged and degraded, never raised out of a turn."""


class MalformedEventError(ParseWarning):
    """An SSE data payload was not valid JSON or not a valid chunk."""


class ToolArgumentsError(ParseWarning):
    """Tool-call arguments were not a JSON object."""


class SchemaFormatError(ParseWarning):
    """A structured-output schema could not be used."""
