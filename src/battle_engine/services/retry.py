"""Exponential backoff retry for calls to external services."""

import asyncio
import errno
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx

from battle_engine.config import settings
from battle_engine.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({422, 429, 502, 503, 504})
RETRYABLE_MESSAGES = ("unprocessable entity", "rate limit", "temporarily unavailable")
RETRYABLE_ERRNOS = frozenset({errno.ECONNRESET, errno.ETIMEDOUT})
JITTER_RATIO = 0.3


def status_code_of(error: BaseException) -> int | None:
    """Extract an HTTP status code from an exception, if it carries one.

    Handles fal_client HTTP errors (``status_code``), httpx errors
    (``response.status_code``) and anything exposing a ``status`` int.
    """
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value
    return None


def is_network_error(error: BaseException) -> bool:
    """Connection resets, timeouts and DNS failures."""
    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return True
    if isinstance(error, OSError) and error.errno in RETRYABLE_ERRNOS:
        return True
    return False


def is_retryable_error(error: BaseException) -> bool:
    """Default retry policy: network errors, 422/429/5xx gateways, known transient messages."""
    if is_network_error(error):
        return True

    if status_code_of(error) in RETRYABLE_STATUS_CODES:
        return True

    message = str(error).lower()
    return any(pattern in message for pattern in RETRYABLE_MESSAGES)


def retry_unless_status(*codes: int) -> Callable[[BaseException], bool]:
    """Build a policy that retries every error except the given HTTP statuses."""
    excluded = frozenset(codes)

    def should_retry(error: BaseException) -> bool:
        return status_code_of(error) not in excluded

    return should_retry


@dataclass
class RetryOptions:
    """Backoff parameters. Delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    should_retry: Callable[[BaseException], bool] = is_retryable_error
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    @classmethod
    def from_settings(cls, **overrides: Any) -> "RetryOptions":
        """Defaults from application settings, with per-call overrides."""
        values: dict[str, Any] = {
            "max_retries": settings.retry_max_attempts,
            "initial_delay": settings.retry_initial_delay,
            "max_delay": settings.retry_max_delay,
            "backoff_multiplier": settings.retry_backoff_multiplier,
        }
        values.update(overrides)
        return cls(**values)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
    label: str = "operation",
) -> T:
    """Run ``operation`` with exponential backoff.

    The error from the final attempt, or the first non-retryable error, is
    re-raised unchanged. Callers own the idempotency of what they wrap.

    Args:
        operation: Zero-argument callable returning an awaitable
        options: Backoff parameters (defaults: 3 attempts, 1s initial, 30s cap, x2)
        label: Name used in log events

    Returns:
        The operation's result
    """
    opts = options or RetryOptions()
    delay = opts.initial_delay

    for attempt in range(1, opts.max_retries + 1):
        try:
            result = await operation()
        except Exception as e:
            retryable = opts.should_retry(e)
            logger.warning(
                "retry_attempt_failed",
                label=label,
                attempt=attempt,
                max_retries=opts.max_retries,
                error=str(e),
                error_type=type(e).__name__,
                status_code=status_code_of(e),
                retryable=retryable,
            )

            if attempt >= opts.max_retries or not retryable:
                logger.error(
                    "retry_giving_up",
                    label=label,
                    attempt=attempt,
                    reason="max_retries" if retryable else "not_retryable",
                )
                raise

            jitter = random.uniform(0, JITTER_RATIO * delay)
            wait = min(delay + jitter, opts.max_delay)
            logger.info("retry_waiting", label=label, attempt=attempt, wait_seconds=round(wait, 3))
            await opts.sleep(wait)

            delay = min(delay * opts.backoff_multiplier, opts.max_delay)
        else:
            if attempt > 1:
                logger.info("retry_succeeded", label=label, attempt=attempt)
            return result

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{label}: retry loop exited without a result")
