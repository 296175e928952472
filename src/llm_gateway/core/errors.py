"""
LLM gateway error types.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Closed taxonomy of adapter failures. Callers branch on these values."""
    # Construction-time configuration errors
    MISSING_API_KEY = "MISSING_API_KEY"
    MISSING_ENDPOINT = "MISSING_ENDPOINT"

    # Request validation, raised before any network call
    INVALID_REQUEST = "INVALID_REQUEST"
    MAX_TOKENS_EXCEEDED = "MAX_TOKENS_EXCEEDED"
    INVALID_TEMPERATURE = "INVALID_TEMPERATURE"

    # Vendor HTTP responses
    BAD_REQUEST = "BAD_REQUEST"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVER_ERROR = "SERVER_ERROR"
    TIMEOUT = "TIMEOUT"

    # Payload problems
    CONTENT_BLOCKED = "CONTENT_BLOCKED"
    EMPTY_CONTENT = "EMPTY_CONTENT"
    STREAM_ERROR = "STREAM_ERROR"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AdapterError(GatewayError):
    """
    Normalized failure raised by every provider adapter.

    Attributes:
        code: Taxonomy code
        status_code: HTTP status (or the synthetic 408 for timeouts)
        provider: Display name of the provider that failed
        retryable: Whether the caller may retry the same request
        details: Extra structured data, e.g. ``retryAfter`` for 429s
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        provider: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code.value,
            "status_code": self.status_code,
            "provider": self.provider,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"AdapterError(code={self.code.value!r}, status_code={self.status_code!r}, "
            f"provider={self.provider!r}, message={self.message!r})"
        )


class IntegrationNotFoundError(GatewayError):
    """Raised when no integration exists for an id."""

    def __init__(self, integration_id: Any):
        super().__init__(f"LLM integration with id {integration_id} not found")
        self.integration_id = integration_id


class UnsupportedProviderError(GatewayError):
    """Raised when an integration names a provider with no adapter."""

    def __init__(self, provider: Any):
        super().__init__(f"Unsupported LLM provider: {provider}")
        self.provider = provider


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Parse a ``Retry-After`` header given in seconds. HTTP dates are ignored."""
    if not value:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def error_for_status(
    status_code: int,
    message: str,
    provider: str,
    retry_after: Optional[int] = None,
) -> AdapterError:
    """Map a non-2xx HTTP status onto the error taxonomy."""
    if status_code == 400:
        return AdapterError(message, ErrorCode.BAD_REQUEST, provider, 400)
    if status_code == 401:
        return AdapterError(message, ErrorCode.AUTHENTICATION_ERROR, provider, 401)
    if status_code == 403:
        return AdapterError(message, ErrorCode.PERMISSION_DENIED, provider, 403)
    if status_code == 404:
        return AdapterError(message, ErrorCode.NOT_FOUND, provider, 404)
    if status_code == 429:
        return AdapterError(
            message,
            ErrorCode.RATE_LIMIT_EXCEEDED,
            provider,
            429,
            retryable=True,
            details={"retryAfter": retry_after},
        )
    if status_code in (500, 502, 503):
        return AdapterError(
            message, ErrorCode.SERVER_ERROR, provider, status_code, retryable=True
        )
    return AdapterError(message, ErrorCode.UNKNOWN_ERROR, provider, status_code)
