"""Retry executor for Flickr API calls using tenacity."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
)

from flickr_uploader.errors import (
    CALL_POLICIES,
    FlickrAPIError,
    OperationFailed,
    RateLimitExceeded,
    TerminalAuthError,
    UploaderError,
    ValidationError,
)
from flickr_uploader.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
BASE_DELAY_MS = 1000
MAX_DELAY_MS = 30000
MAX_JITTER_MS = 1000

# Flickr error codes for bad signatures, login failures, permissions and API keys
AUTH_ERROR_CODES = {96, 97, 98, 99, 100}
AUTH_STATUS_CODES = {401, 403}
TERMINAL_MESSAGES = (
    "invalid credentials",
    "invalid api key",
    "invalid auth token",
    "invalid signature",
    "invalid oauth",
    "permission denied",
    "insufficient permissions",
    "user not logged in",
)


def backoff_delay(attempt: int, jitter_ms: float = 0.0) -> float:
    """Compute the wait before retrying after a failed attempt.

    Args:
        attempt: Number of the attempt that just failed, starting at 1
        jitter_ms: Random jitter to add, in milliseconds

    Returns:
        Delay in seconds
    """
    if attempt < 1:
        raise ValueError("Attempt numbers start at 1")
    delay_ms = min(BASE_DELAY_MS * 2 ** (attempt - 1), MAX_DELAY_MS)
    return (delay_ms + jitter_ms) / 1000


def random_jitter() -> float:
    """Get a random jitter in milliseconds."""
    return random.uniform(0, MAX_JITTER_MS)


def is_terminal_error(error: BaseException) -> bool:
    """Check if an error means the credentials or permissions are wrong.

    Args:
        error: Error raised by a remote call

    Returns:
        True if retrying cannot help, False otherwise
    """
    if isinstance(error, TerminalAuthError):
        return True
    if isinstance(error, FlickrAPIError):
        if error.code in AUTH_ERROR_CODES or error.status_code in AUTH_STATUS_CODES:
            return True
    message = str(error).lower()
    return any(marker in message for marker in TERMINAL_MESSAGES)


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, (RateLimitExceeded, ValidationError)):
        return False
    return not is_terminal_error(error)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        f"Attempt {retry_state.attempt_number} failed ({error}), "
        f"retrying in {delay:.2f}s"
    )


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    jitter: Callable[[], float] = random_jitter,
) -> T:
    """Run a remote operation with bounded exponential backoff.

    Args:
        operation: Zero-argument coroutine function performing the call
        max_attempts: Maximum number of attempts
        sleep: Coroutine used to wait between attempts
        jitter: Source of random jitter in milliseconds

    Returns:
        Result of the operation

    Raises:
        TerminalAuthError: If the operation failed with an auth/permission error
        OperationFailed: If every attempt failed with a retryable error
    """
    retryer = AsyncRetrying(
        retry=retry_if_exception(_is_retryable),
        wait=lambda retry_state: backoff_delay(retry_state.attempt_number, jitter()),
        stop=stop_after_attempt(max_attempts),
        sleep=sleep,
        before_sleep=_log_retry,
    )
    try:
        return await retryer(operation)
    except RetryError as e:
        cause = e.last_attempt.exception()
        logger.error(f"Giving up after {max_attempts} attempt(s): {cause}")
        raise OperationFailed(str(cause)) from cause
    except TerminalAuthError:
        raise
    except Exception as e:
        if is_terminal_error(e):
            logger.error(f"Not retrying authentication failure: {e}")
            raise TerminalAuthError(str(e)) from e
        raise


async def remote_call(
    name: str,
    rate_limiter: RateLimiter,
    operation: Callable[[], Awaitable[T]],
    *,
    fallback: T | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> T | None:
    """Issue one rate-limited Flickr call under the policy for ``name``.

    The rate limiter is consulted once per call, not once per attempt.

    Args:
        name: Key into ``CALL_POLICIES``
        rate_limiter: Shared rate limiter
        operation: Zero-argument coroutine function performing the call
        fallback: Value returned when the policy absorbs a failure
        max_attempts: Maximum number of attempts for retried calls

    Returns:
        Result of the operation, or ``fallback`` for an absorbed failure
    """
    policy = CALL_POLICIES[name]
    try:
        rate_limiter.check_and_record()
        if policy.retried:
            return await run_with_retry(operation, max_attempts)
        return await operation()
    except UploaderError as e:
        if policy.absorbed:
            logger.warning(f"Ignoring failed {name} call: {e}")
            return fallback
        if policy.wrap_as is not None and not isinstance(e, policy.wrap_as):
            raise policy.wrap_as(f"Flickr {name} call failed: {e}") from e
        raise
