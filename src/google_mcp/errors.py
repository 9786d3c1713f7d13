"""Error taxonomy and provider-failure classification for Google MCP.

Every failure the authentication core can produce is one of the kinds in
``ErrorKind``. Failures coming back from Google APIs are classified once, at
the provider-call boundary, by ``classify_provider_error``; downstream code
branches on the resulting kind and never on raw message text.

Classification order:
    1. Errors already raised by this package keep their own kind.
    2. HTTP status code (401, 403, 429, ...).
    3. Structured Google error details for 403s: ``error.errors[].reason``,
       ``error.details[].reason`` and the ``WWW-Authenticate`` header.
    4. Message matching ("scope" / "insufficient"), only when a 403 carries no
       structured reason.
"""

from enum import Enum, IntEnum
from typing import Any

import httpx
from google.auth.exceptions import RefreshError


class ErrorKind(str, Enum):
    """Kinds of failure surfaced by the authentication core and wrappers."""

    CONFIGURATION = "configuration"
    AUTHENTICATION_REQUIRED = "authentication_required"
    AUTHENTICATION_FLOW = "authentication_flow"
    TIMEOUT = "timeout"
    SCOPE_INSUFFICIENT = "scope_insufficient"
    STORAGE = "storage"
    PORT_UNAVAILABLE = "port_unavailable"
    AUTHORIZATION_DENIED = "authorization_denied"
    RATE_LIMITED = "rate_limited"
    API_ERROR = "api_error"


class ErrorCode(IntEnum):
    """JSON-RPC error codes reported to MCP clients."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    AUTHENTICATION_ERROR = -32000
    AUTHORIZATION_ERROR = -32001
    RATE_LIMIT_ERROR = -32002
    API_ERROR = -32003
    VALIDATION_ERROR = -32004


class GoogleMCPError(Exception):
    """Base class for all errors raised by google-mcp-server.

    Attributes:
        kind: Taxonomy kind used for branching.
        code: JSON-RPC error code reported to clients.
        details: Optional structured context (never contains tokens).
    """

    kind: ErrorKind = ErrorKind.API_ERROR
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for a tool error response."""
        payload: dict[str, Any] = {
            "error": self.message,
            "kind": self.kind.value,
            "code": int(self.code),
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(GoogleMCPError):
    """OAuth client configuration is missing or malformed. Fatal, never retried."""

    kind = ErrorKind.CONFIGURATION
    code = ErrorCode.AUTHENTICATION_ERROR


class AuthenticationRequiredError(GoogleMCPError):
    """No usable credential; the interactive flow must be run."""

    kind = ErrorKind.AUTHENTICATION_REQUIRED
    code = ErrorCode.AUTHENTICATION_ERROR


class InsufficientScopeError(AuthenticationRequiredError):
    """The stored grant lacks required scopes. The credential has been cleared."""

    kind = ErrorKind.SCOPE_INSUFFICIENT

    def __init__(self, message: str, missing_scopes: list[str] | None = None) -> None:
        self.missing_scopes = list(missing_scopes or [])
        details = {"missing_scopes": self.missing_scopes} if self.missing_scopes else None
        super().__init__(message, details)


class AuthenticationFlowError(GoogleMCPError):
    """The current authorization attempt failed (denial, bad state, exchange error)."""

    kind = ErrorKind.AUTHENTICATION_FLOW
    code = ErrorCode.AUTHENTICATION_ERROR


class AuthenticationTimeoutError(AuthenticationFlowError):
    """The authorization attempt exceeded its time bound."""

    kind = ErrorKind.TIMEOUT


class StorageError(GoogleMCPError):
    """The credential file could not be read or written."""

    kind = ErrorKind.STORAGE
    code = ErrorCode.INTERNAL_ERROR


class PortUnavailableError(GoogleMCPError):
    """No callback port could be bound."""

    kind = ErrorKind.PORT_UNAVAILABLE
    code = ErrorCode.INTERNAL_ERROR


class ProviderError(GoogleMCPError):
    """A Google API call failed for a reason other than authentication."""

    _CODES = {
        ErrorKind.AUTHORIZATION_DENIED: ErrorCode.AUTHORIZATION_ERROR,
        ErrorKind.RATE_LIMITED: ErrorCode.RATE_LIMIT_ERROR,
        ErrorKind.AUTHENTICATION_REQUIRED: ErrorCode.AUTHENTICATION_ERROR,
    }

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.API_ERROR,
        status_code: int | None = None,
    ) -> None:
        details = {"status_code": status_code} if status_code is not None else None
        super().__init__(message, details)
        self.kind = kind
        self.code = self._CODES.get(kind, ErrorCode.API_ERROR)
        self.status_code = status_code


# Structured reasons Google attaches to scope failures
SCOPE_REASONS = frozenset({"ACCESS_TOKEN_SCOPE_INSUFFICIENT", "insufficient_scope"})
RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded", "RATE_LIMIT_EXCEEDED"})
SCOPE_MESSAGE_MARKERS = ("scope", "insufficient")


def _status_code(error: BaseException) -> int | None:
    """Extract an HTTP status code from a provider failure, if it has one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code

    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status

    # googleapiclient.errors.HttpError keeps the status on .resp
    resp = getattr(error, "resp", None)
    status = getattr(resp, "status", None)
    if isinstance(status, int):
        return status

    code = getattr(error, "code", None)
    if isinstance(code, int) and 100 <= code < 600:
        return code
    return None


def _error_payload(error: BaseException) -> dict[str, Any]:
    """Return the Google JSON error object (``{"code", "message", ...}``) if present."""
    if not isinstance(error, httpx.HTTPStatusError):
        return {}
    try:
        body = error.response.json()
    except ValueError:
        return {}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {}


def _error_reasons(error: BaseException) -> set[str]:
    """Collect structured reason strings from a provider failure."""
    payload = _error_payload(error)
    reasons: set[str] = set()

    for item in payload.get("errors", []) or []:
        if isinstance(item, dict) and item.get("reason"):
            reasons.add(str(item["reason"]))
    for item in payload.get("details", []) or []:
        if isinstance(item, dict) and item.get("reason"):
            reasons.add(str(item["reason"]))

    if isinstance(error, httpx.HTTPStatusError):
        challenge = error.response.headers.get("www-authenticate", "")
        if "insufficient_scope" in challenge:
            reasons.add("insufficient_scope")

    return reasons


def provider_error_message(error: BaseException) -> str:
    """Short human-readable message for a provider failure."""
    message = _error_payload(error).get("message")
    if message:
        return str(message)
    return str(error) or error.__class__.__name__


def _mentions_scope(error: BaseException) -> bool:
    message = provider_error_message(error).lower()
    return any(marker in message for marker in SCOPE_MESSAGE_MARKERS)


def classify_provider_error(error: BaseException) -> ErrorKind:
    """Classify a failed provider call into an ``ErrorKind``.

    Args:
        error: Exception raised by (or on behalf of) a Google API call.

    Returns:
        The taxonomy kind of the failure.
    """
    if isinstance(error, GoogleMCPError):
        return error.kind

    if isinstance(error, RefreshError):
        return ErrorKind.AUTHENTICATION_REQUIRED

    status = _status_code(error)

    if status == 401:
        return ErrorKind.AUTHENTICATION_REQUIRED

    if status == 429:
        return ErrorKind.RATE_LIMITED

    if status == 403:
        reasons = _error_reasons(error)
        if reasons & SCOPE_REASONS:
            return ErrorKind.SCOPE_INSUFFICIENT
        if reasons & RATE_LIMIT_REASONS:
            return ErrorKind.RATE_LIMITED
        if reasons and reasons != {"insufficientPermissions"}:
            return ErrorKind.AUTHORIZATION_DENIED
        # No (or ambiguous) structured detail: fall back to the message
        if _mentions_scope(error):
            return ErrorKind.SCOPE_INSUFFICIENT
        return ErrorKind.AUTHORIZATION_DENIED

    return ErrorKind.API_ERROR
