"""Exception hierarchy for North."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class NorthError(Exception):
    """Base exception for all North errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(NorthError):
    """Configuration validation or resolution failed."""


class InternalError(NorthError):
    """A North internal error (bug) or invariant violation."""


class APIError(NorthError):
    """A vendor call failed.

    Providers attach retry metadata so callers can retry without relying on
    message matching alone.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class ProviderStreamError(APIError):
    """The vendor reported an explicit error event inside the stream."""


class IncompleteToolCallError(APIError):
    """The stream ended while a tool call was still being assembled.

    A half-formed tool call must never be executed, so the whole turn fails.
    """

    def __init__(self, message: str | None = None, *, provider: str | None = None) -> None:
        super().__init__(
            message or "Stream ended with incomplete tool call - possible timeout",
            retryable=True,
            provider=provider,
            phase="stream",
        )


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
