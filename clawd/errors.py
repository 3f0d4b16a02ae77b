"""
Error types and per-protocol error envelopes.

Both client protocols classify failures by HTTP status code; the backend
status is carried through unchanged and only the envelope shape differs.
"""

from __future__ import annotations

from typing import Any


class TranslationError(Exception):
    """
    Raised when a request or response cannot be translated.

    Always reported to the client as a 400 invalid request; the backend is
    never contacted for a request that fails translation.
    """

    status_code = 400

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class RetriesExhaustedError(Exception):
    """Every dispatch attempt failed with a retryable backend status."""

    status_code = 503

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"Backend request failed after {attempts} attempts: {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error
        self.last_status_code = get_status_code(last_error)


_ANTHROPIC_ERROR_TYPES = {
    400: "invalid_request_error",
    401: "authentication_error",
    403: "permission_error",
    404: "not_found_error",
    429: "rate_limit_error",
}

_GEMINI_ERROR_STATUSES = {
    400: "INVALID_ARGUMENT",
    401: "UNAUTHENTICATED",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    429: "RESOURCE_EXHAUSTED",
}


def anthropic_error_type(status_code: int) -> str:
    return _ANTHROPIC_ERROR_TYPES.get(status_code, "api_error")


def gemini_error_status(status_code: int) -> str:
    return _GEMINI_ERROR_STATUSES.get(status_code, "INTERNAL")


def get_status_code(error: BaseException) -> int:
    """Read the HTTP status of an error the way the backend SDK exposes it, default 500."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return 500


def error_message(error: BaseException) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error) or "An error occurred"


def anthropic_error_body(status_code: int, message: str) -> dict[str, Any]:
    return {
        "type": "error",
        "error": {"type": anthropic_error_type(status_code), "message": message},
    }


def gemini_error_body(status_code: int, message: str) -> dict[str, Any]:
    return {
        "error": {
            "code": status_code,
            "message": message,
            "status": gemini_error_status(status_code),
        }
    }
