"""Error taxonomy shared by every layer that talks to the remote tracker.

Failures are classified exactly once, at the transport boundary, into a
:class:`ServiceError`. Callers above the remote client forward the same
object unchanged so the API layer renders the kind the transport produced.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorKind(str, Enum):
    AUTH_FAILED = "auth_failed"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    VALIDATION_ERROR = "validation_error"
    REMOTE_ERROR = "remote_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


# HTTP status the API layer answers with for each kind
HTTP_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.AUTH_FAILED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.REMOTE_ERROR: 502,
    ErrorKind.NETWORK_ERROR: 503,
    ErrorKind.UNKNOWN: 500,
}


class ServiceError(Exception):
    """A classified failure: ``{kind, message, details}``."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Any = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details
        self.status_code = status_code

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 500)

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "details": self.details}

    def __repr__(self) -> str:
        return f"ServiceError(kind={self.kind.value!r}, message={self.message!r})"


def validation_error(message: str, details: Any = None) -> ServiceError:
    return ServiceError(ErrorKind.VALIDATION_ERROR, message, details)


def extract_error_message(body: Any) -> Optional[str]:
    """Pull the human readable message out of a Jira error body.

    Jira answers with ``{"errorMessages": [...], "errors": {field: msg}}``;
    the first entry of ``errorMessages`` wins, otherwise the ``errors``
    values are joined.
    """
    if not isinstance(body, dict):
        return None
    messages = body.get("errorMessages")
    if isinstance(messages, list) and messages:
        return str(messages[0])
    errors = body.get("errors")
    if isinstance(errors, dict) and errors:
        return ", ".join(str(value) for value in errors.values())
    message = body.get("message")
    if message:
        return str(message)
    return None


def classify_response(status_code: int, body: Any) -> ServiceError:
    """Map a non-2xx response to a :class:`ServiceError`."""
    message = extract_error_message(body)

    if status_code == 401:
        return ServiceError(ErrorKind.AUTH_FAILED, "Invalid credentials", body, status_code)
    if status_code == 403:
        return ServiceError(
            ErrorKind.FORBIDDEN, message or "Access forbidden - check your permissions", body, status_code
        )
    if status_code == 404:
        return ServiceError(ErrorKind.NOT_FOUND, message or "Resource not found", body, status_code)
    if status_code == 429:
        return ServiceError(
            ErrorKind.RATE_LIMITED, "Rate limit exceeded - please try again later", body, status_code
        )
    if status_code == 400:
        return ServiceError(ErrorKind.VALIDATION_ERROR, message or "Request rejected by server", body, status_code)
    return ServiceError(
        ErrorKind.REMOTE_ERROR, f"HTTP {status_code}: {message or 'Unknown error'}", body, status_code
    )


def classify_exception(exc: BaseException) -> ServiceError:
    """Map a transport level exception to a :class:`ServiceError`."""
    if isinstance(exc, ServiceError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ServiceError(ErrorKind.NETWORK_ERROR, "Request timed out", {"error": str(exc)})
    if isinstance(exc, httpx.TransportError):
        return ServiceError(
            ErrorKind.NETWORK_ERROR, "Network error - unable to reach server", {"error": str(exc)}
        )
    return ServiceError(ErrorKind.UNKNOWN, str(exc) or "Unknown error occurred", {"error": repr(exc)})
