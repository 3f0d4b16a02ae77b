"""
Retrying dispatcher for backend calls.

Rate limits (429) and server errors (5xx) are retried with exponential
backoff; everything else is returned to the caller immediately. A 403 means
the backend credential was revoked and is reported as fatal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from .errors import RetriesExhaustedError, get_status_code

logger = logging.getLogger(__name__)

T = TypeVar("T")

FATAL_STATUS_CODE = 403


@dataclass(frozen=True)
class BackoffPolicy:
    max_attempts: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0

    def delay_before_retry(self, retry: int) -> float:
        """Delay in seconds before the ``retry``-th retry (1-based)."""
        return self.initial_delay * self.multiplier ** (retry - 1)


DEFAULT_BACKOFF_POLICY = BackoffPolicy()


@dataclass
class DispatchOk(Generic[T]):
    response: T


@dataclass
class DispatchError:
    error: BaseException
    status_code: int


@dataclass
class DispatchFatal:
    error: BaseException
    status_code: int = FATAL_STATUS_CODE


DispatchOutcome = Union[DispatchOk, DispatchError, DispatchFatal]


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


def _is_retryable(error: BaseException) -> bool:
    # connection failures carry no HTTP status and are not retried
    status = getattr(error, "status_code", None)
    if not isinstance(status, int):
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return isinstance(status, int) and is_retryable_status(status)


async def dispatch(
    call: Callable[[], Awaitable[Any]],
    policy: BackoffPolicy = DEFAULT_BACKOFF_POLICY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> DispatchOutcome:
    """Run ``call`` with retries and classify the result.

    Never raises for backend failures; the outcome says what happened.
    """
    last_error: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return DispatchOk(await call())
        except Exception as e:
            last_error = e

        status_code = get_status_code(last_error)
        if status_code == FATAL_STATUS_CODE:
            logger.error(f"Backend denied access (403): {last_error}")
            return DispatchFatal(last_error, status_code)
        if not _is_retryable(last_error):
            return DispatchError(last_error, status_code)
        if attempt == policy.max_attempts:
            break

        delay = policy.delay_before_retry(attempt)
        logger.warning(
            f"Request failed (attempt {attempt}/{policy.max_attempts}, status {status_code}), "
            f"retrying in {delay:.1f}s"
        )
        await sleep(delay)

    exhausted = RetriesExhaustedError(policy.max_attempts, last_error)
    logger.error(str(exhausted))
    return DispatchError(exhausted, exhausted.status_code)
