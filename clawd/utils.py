"""
Utility functions for the clawd package.
This module contains JSON helpers and backend error diagnostics.
"""

import json
import logging
import traceback
from typing import Any

import openai

logger = logging.getLogger(__name__)


def compact_json(value: Any) -> str:
    """Serialize without whitespace, the form tool arguments travel in."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def format_sse_event(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def format_sse_data(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data)}\n\n"


def _extract_error_details(e: BaseException) -> dict[str, Any]:
    """Extract error details from an exception, ensuring all values are JSON serializable."""
    error_details: dict[str, Any] = {
        "error": str(e),
        "type": type(e).__name__,
        "traceback": traceback.format_exc(),
    }

    for attr in ("message", "status_code", "code", "param", "type", "response"):
        if attr in error_details or not hasattr(e, attr):
            continue
        value = getattr(e, attr)
        if attr == "response":
            # httpx responses are not JSON serializable
            error_details[attr] = value.text if hasattr(value, "text") else str(value)
        elif isinstance(value, str | int | float | bool | list | dict | type(None)):
            error_details[attr] = value
        else:
            error_details[attr] = str(value)

    return error_details


def log_openai_api_error(e: BaseException, context: str = "") -> None:
    """Log detailed OpenAI API error information for debugging.

    Args:
        e: The exception to log
        context: Additional context string for the log messages
    """
    prefix = f"BACKEND_ERROR: {context}" if context else "BACKEND_ERROR:"

    if isinstance(e, openai.APIStatusError):
        logger.error(f"{prefix} APIStatusError - Status: {e.status_code}")
        _log_response_body(e.response, prefix)
    elif isinstance(e, openai.APIConnectionError):
        logger.error(f"{prefix} APIConnectionError - Cause: {e.__cause__}")
    elif isinstance(e, openai.APIError):
        logger.error(f"{prefix} APIError: {e.message}")
    else:
        details = _extract_error_details(e)
        logger.error(f"{prefix} {type(e).__name__}: {json.dumps(details, indent=2)}")


def _log_response_body(response, prefix: str) -> None:
    """Extract and log response body, attempting JSON parsing."""
    try:
        response_text = response.text
    except Exception as body_error:
        logger.error(f"{prefix} Could not read response body: {body_error}")
        return

    logger.error(f"{prefix} Response body: {response_text}")
    try:
        response_json = json.loads(response_text)
    except json.JSONDecodeError:
        return
    if isinstance(response_json, dict) and "error" in response_json:
        logger.error(f"{prefix} error details: {response_json['error']}")
