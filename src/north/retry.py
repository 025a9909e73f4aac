"""Retry classification and jittered exponential backoff.

The provider layer never retries on its own. Callers use ``is_retryable`` to
decide whether a failed turn is worth repeating and ``compute_backoff`` to
space attempts out; ``retry_async`` wires both together for simple loops.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
import re
from typing import TYPE_CHECKING, TypeVar

import httpx

from north._http import RETRYABLE_STATUS_CODES
from north.errors import APIError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

log = logging.getLogger(__name__)

_JITTER_MS = 1000.0

_NETWORK_PATTERN = re.compile(
    r"econnrefused|econnreset|etimedout|enetunreach|socket hang up|fetch failed"
    r"|connection (?:refused|reset|error|aborted)|timed? ?out"
    r"|name or service not known|getaddrinfo|network is unreachable"
    r"|server disconnected",
    re.IGNORECASE,
)
_RATE_LIMIT_PATTERN = re.compile(
    r"\b429\b|rate.?limit|too many requests", re.IGNORECASE
)
_SERVER_PATTERN = re.compile(
    r"\b5\d{2}\b|overloaded|service unavailable|internal server error|bad gateway",
    re.IGNORECASE,
)
_INCOMPLETE_TOOL_CALL_PATTERN = re.compile(
    r"incomplete.*tool.*call|possible.*timeout", re.IGNORECASE
)

_RETRYABLE_PATTERNS = (
    _NETWORK_PATTERN,
    _RATE_LIMIT_PATTERN,
    _SERVER_PATTERN,
    _INCOMPLETE_TOOL_CALL_PATTERN,
)


@dataclass(frozen=True)
class RetryConfig:
    """Bounded retry settings; delays are in milliseconds."""

    max_retries: int = 3
    base_delay_ms: float = 1000.0
    max_delay_ms: float = 30000.0

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_retries < 0:
            raise ValueError("RetryConfig.max_retries must be >= 0")
        if self.base_delay_ms < 0:
            raise ValueError("RetryConfig.base_delay_ms must be >= 0")
        if self.max_delay_ms < 0:
            raise ValueError("RetryConfig.max_delay_ms must be >= 0")


DEFAULT_RETRY_CONFIG = RetryConfig()


def is_retryable(error: BaseException) -> bool:
    """Return True when *error* is worth retrying.

    Contract:
    - Task cancellation is never retried.
    - An ``APIError`` that carries an explicit ``retryable`` flag is trusted.
    - Otherwise transport failures, rate limits, server overload and
      incomplete tool calls are retryable, matched on exception type, status
      code or message. Anything else (bad request, auth failure) is not:
      repeating it only burns quota.
    """
    if isinstance(error, asyncio.CancelledError):
        return False

    if isinstance(error, APIError) and error.retryable is not None:
        return error.retryable

    for e in _walk_exception_chain(error):
        if isinstance(e, (TimeoutError, ConnectionError, httpx.TransportError)):
            return True
        if isinstance(e, APIError) and e.status_code in RETRYABLE_STATUS_CODES:
            return True
        message = str(e)
        if message and any(p.search(message) for p in _RETRYABLE_PATTERNS):
            return True
    return False


def compute_backoff(attempt: int, config: RetryConfig = DEFAULT_RETRY_CONFIG) -> float:
    """Return the delay in milliseconds before retry number *attempt*.

    ``min(base * 2**attempt + jitter, max)`` with jitter uniform in
    ``[0, 1000)`` ms so concurrent callers do not retry in lockstep.
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    exponential = config.base_delay_ms * (2**attempt)
    jitter = random.random() * _JITTER_MS  # noqa: S311
    return min(exponential + jitter, config.max_delay_ms)


def _retry_after_from_error(exc: BaseException) -> float | None:
    if isinstance(exc, APIError):
        v = exc.retry_after_s
        if isinstance(v, (int, float)) and v >= 0:
            return float(v)
    return None


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    should_retry: Callable[[BaseException], bool] = is_retryable,
) -> T:
    """Run an async factory, retrying up to ``config.max_retries`` times."""
    for attempt in range(config.max_retries + 1):
        try:
            return await factory()
        except Exception as exc:
            if attempt >= config.max_retries or not should_retry(exc):
                raise

            delay_s = compute_backoff(attempt, config) / 1000.0
            retry_after = _retry_after_from_error(exc)
            if retry_after is not None:
                delay_s = max(delay_s, retry_after)

            log.info(
                "Retrying after %s (attempt %d of %d, sleeping %.2fs): %s",
                type(exc).__name__,
                attempt + 1,
                config.max_retries,
                delay_s,
                exc,
            )
            if delay_s > 0:
                await asyncio.sleep(delay_s)

    # The loop always returns or raises.
    raise RuntimeError("retry_async exhausted without an exception")  # pragma: no cover
