"""Provider error taxonomy and normalization of HTTP/transport failures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx


class ErrorCode:
    NO_CREDENTIALS = "NO_CREDENTIALS"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    GENERATION_FAILED = "GENERATION_FAILED"
    STREAM_ERROR = "STREAM_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    PROVIDER_NOT_FOUND = "PROVIDER_NOT_FOUND"
    NO_PROVIDER_AVAILABLE = "NO_PROVIDER_AVAILABLE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# Failures that mean the stored credential is unusable
CREDENTIAL_ERRORS = frozenset(
    {ErrorCode.NO_CREDENTIALS, ErrorCode.UNAUTHORIZED, ErrorCode.FORBIDDEN, ErrorCode.INVALID_CREDENTIALS}
)


@dataclass(eq=False)
class ProviderError(Exception):
    """Structured failure raised by adapters, the store and the service."""

    code: str
    message: str
    retryable: bool = False
    status_code: int | None = None
    retry_after: float | None = None  # seconds
    raw: Any = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict:
        data = {"code": self.code, "message": self.message, "retryable": self.retryable}
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.retry_after is not None:
            data["retry_after"] = self.retry_after
        return data


class ConfigurationError(ProviderError):
    """Registry or registration problem. Never retryable."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.CONFIGURATION_ERROR, message, retryable=False)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given as seconds or an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def _vendor_message(response: httpx.Response) -> tuple[str, Any]:
    """Pull the vendor's error message out of a JSON or text body."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or f"HTTP {response.status_code}", text or None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"]), body
        if isinstance(error, str) and error:
            return error, body
        for key in ("message", "detail", "failure"):
            if body.get(key):
                return str(body[key]), body
    return f"HTTP {response.status_code}", body


def error_from_response(response: httpx.Response, vendor: str) -> ProviderError:
    """Map an unsuccessful HTTP response onto the ProviderError taxonomy."""
    status = response.status_code
    message, raw = _vendor_message(response)

    if status == 401:
        return ProviderError(
            ErrorCode.UNAUTHORIZED, f"{vendor}: invalid API key or unauthorized access", False, status, raw=raw
        )
    if status == 403:
        return ProviderError(
            ErrorCode.FORBIDDEN, f"{vendor}: access forbidden, check API key permissions", False, status, raw=raw
        )
    if status == 404:
        return ProviderError(ErrorCode.NOT_FOUND, f"{vendor}: resource not found ({message})", False, status, raw=raw)
    if status == 429:
        return ProviderError(
            ErrorCode.RATE_LIMITED,
            f"{vendor}: rate limit exceeded, try again later",
            True,
            status,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
            raw=raw,
        )
    if status in (408, 504):
        return ProviderError(ErrorCode.TIMEOUT, f"{vendor}: request timed out", True, status, raw=raw)
    if status >= 500:
        return ProviderError(ErrorCode.UNKNOWN_ERROR, f"{vendor} server error: {message}", True, status, raw=raw)
    return ProviderError(ErrorCode.UNKNOWN_ERROR, message, False, status, raw=raw)


def error_from_exception(exc: BaseException, vendor: str) -> ProviderError:
    """Map a transport exception (or anything unexpected) onto a ProviderError."""
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ProviderError(ErrorCode.TIMEOUT, f"{vendor}: request timed out", True, raw=str(exc))
    if isinstance(exc, httpx.ConnectError):
        return ProviderError(ErrorCode.UNKNOWN_ERROR, f"Cannot connect to {vendor}: {exc}", True, raw=str(exc))
    return ProviderError(ErrorCode.UNKNOWN_ERROR, str(exc) or exc.__class__.__name__, True, raw=repr(exc))


def unsupported(vendor: str, operation: str) -> ProviderError:
    return ProviderError(ErrorCode.UNSUPPORTED_OPERATION, f"{vendor} does not support {operation}", False)


def no_credentials(vendor: str) -> ProviderError:
    return ProviderError(ErrorCode.NO_CREDENTIALS, f"{vendor} API key not configured", False)
