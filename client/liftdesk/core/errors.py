from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

import httpx


class ErrorKind(str, Enum):
    AUTHENTICATION = "AUTHENTICATION"
    AUTHORIZATION = "AUTHORIZATION"
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN = "UNKNOWN"


DEFAULT_MESSAGES = {
    ErrorKind.AUTHENTICATION: "Your session has expired. Please sign in again.",
    ErrorKind.AUTHORIZATION: "You are not allowed to perform this action.",
    ErrorKind.VALIDATION: "The submitted data was rejected.",
    ErrorKind.NOT_FOUND: "The requested resource was not found.",
    ErrorKind.SERVER_ERROR: "The server failed to process the request. Please try again later.",
    ErrorKind.NETWORK_ERROR: "Could not reach the server. Check your network connection.",
    ErrorKind.UNKNOWN: "An unexpected error occurred.",
}


class ApiError(Exception):
    """Typed error surfaced to every caller above the request pipeline."""

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        errors: Optional[List[str]] = None,
        code: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        self.status_code = status_code
        self.errors = errors or []
        self.code = code
        super().__init__(self.message)

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (400, 401, 403)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value}, status_code={self.status_code}, code={self.code})"


class SessionExpiredError(ApiError):
    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None) -> None:
        super().__init__(ErrorKind.AUTHENTICATION, message, status_code=status_code, code="SESSION_EXPIRED")


class TransitionRejected(ApiError):
    """A lifecycle guard failed on the client before any request was issued."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.VALIDATION,
        conflicting_plan: Any = None,
    ) -> None:
        super().__init__(kind, message, code=code)
        self.conflicting_plan = conflicting_plan


def _extract_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _extract_errors(body: dict) -> List[str]:
    raw = body.get("errors")
    if isinstance(raw, list):
        return [str(item) for item in raw if item is not None]
    return []


def _extract_message(body: dict) -> Optional[str]:
    for key in ("message", "detail", "error"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def kind_for_status(status_code: int) -> ErrorKind:
    if status_code in (400, 409, 422):
        return ErrorKind.VALIDATION
    if status_code == 401:
        return ErrorKind.AUTHENTICATION
    if status_code == 403:
        return ErrorKind.AUTHORIZATION
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


def normalize_response_error(response: httpx.Response) -> ApiError:
    body = _extract_body(response)
    kind = kind_for_status(response.status_code)
    errors = _extract_errors(body)
    message = _extract_message(body)
    if kind is ErrorKind.VALIDATION and errors:
        message = ", ".join(errors)
    elif kind in (ErrorKind.AUTHENTICATION, ErrorKind.NOT_FOUND):
        message = None
    return ApiError(kind, message, status_code=response.status_code, errors=errors)


def normalize_transport_error(exc: httpx.HTTPError) -> ApiError:
    if isinstance(exc, httpx.TransportError):
        return ApiError(ErrorKind.NETWORK_ERROR)
    return ApiError(ErrorKind.UNKNOWN, str(exc) or None)


def envelope_failure(body: dict, status_code: int) -> ApiError:
    errors = _extract_errors(body)
    message = _extract_message(body) or (", ".join(errors) if errors else "API request failed")
    kind = ErrorKind.VALIDATION if errors else ErrorKind.UNKNOWN
    return ApiError(kind, message, status_code=status_code, errors=errors)


__all__ = [
    "ApiError",
    "ErrorKind",
    "SessionExpiredError",
    "TransitionRejected",
    "envelope_failure",
    "kind_for_status",
    "normalize_response_error",
    "normalize_transport_error",
]
