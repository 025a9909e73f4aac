from __future__ import annotations

import pytest

from north.errors import (
    APIError,
    ConfigurationError,
    IncompleteToolCallError,
    NorthError,
    ProviderStreamError,
    RateLimitError,
    _walk_exception_chain,
)

pytestmark = pytest.mark.unit


def test_api_error_structured_metadata() -> None:
    err = APIError(
        "boom",
        hint="do this",
        retryable=True,
        status_code=429,
        retry_after_s=2.0,
        provider="anthropic",
        phase="stream",
    )

    assert str(err) == "boom"
    assert err.hint == "do this"
    assert err.retryable is True
    assert err.status_code == 429
    assert err.retry_after_s == 2.0
    assert err.provider == "anthropic"
    assert err.phase == "stream"


def test_api_error_defaults_to_none() -> None:
    err = APIError("fail")
    assert err.hint is None
    assert err.retryable is None
    assert err.status_code is None
    assert err.retry_after_s is None
    assert err.provider is None
    assert err.phase is None


def test_subclass_hierarchy() -> None:
    """Stream-level failures are catchable as APIError and NorthError."""
    for err in (
        RateLimitError("rate limit", status_code=429, retryable=True),
        ProviderStreamError("vendor said no"),
        IncompleteToolCallError(),
    ):
        assert isinstance(err, APIError)
        assert isinstance(err, NorthError)

    assert isinstance(ConfigurationError("bad"), NorthError)
    assert not isinstance(ConfigurationError("bad"), APIError)


def test_incomplete_tool_call_error_defaults() -> None:
    err = IncompleteToolCallError(provider="openai")

    assert str(err) == "Stream ended with incomplete tool call - possible timeout"
    assert err.retryable is True
    assert err.phase == "stream"
    assert err.provider == "openai"


def test_walk_exception_chain_follows_cause_and_context_once() -> None:
    root = ValueError("root")
    middle = RuntimeError("middle")
    middle.__cause__ = root
    top = APIError("top")
    top.__context__ = middle
    # Cycles must not loop forever.
    root.__context__ = top

    seen = list(_walk_exception_chain(top))

    assert seen == [top, middle, root]
