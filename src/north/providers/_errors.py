"""Shared provider-side error helpers.

Providers map SDK and transport exceptions into ``APIError`` with retry
metadata attached, so callers can classify failures without guessing.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from north._http import RETRYABLE_STATUS_CODES
from north.errors import APIError, RateLimitError, _walk_exception_chain

_API_KEY_ENV_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP error status code.

    Success statuses are skipped: an error raised mid-stream still carries
    the 200 response that opened the stream.
    """
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 400 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 400 <= value <= 599:
            return value
    return None


def _parse_retry_after(headers: Any) -> float | None:
    if headers is None:
        return None
    raw: Any = None
    try:
        raw = headers.get("Retry-After")
    except AttributeError:
        return None
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """Walk the exception chain to find a retry-after delay in seconds."""
    for e in _walk_exception_chain(exc):
        value = getattr(e, "retry_after", None)
        if isinstance(value, (int, float)) and value >= 0:
            return float(value)

        response = getattr(e, "response", None)
        seconds = _parse_retry_after(getattr(response, "headers", None))
        if seconds is not None:
            return seconds
    return None


def auth_hint(provider: str, status_code: int | None) -> str | None:
    """Name the credential env var for auth failures."""
    if status_code in {401, 403}:
        env_var = _API_KEY_ENV_VARS.get(provider, "the provider API key")
        return f"Check credentials/permissions (try setting {env_var})."
    return None


def error_message_from_body(body: str, default: str) -> str:
    """Extract ``error.message`` from a JSON error body, if present."""
    if not body:
        return default
    try:
        payload = json.loads(body)
    except ValueError:
        return body
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str) and error:
            return error
    return default


def http_status_error(
    response: httpx.Response,
    body: str,
    *,
    provider: str,
    label: str,
) -> APIError:
    """Build an ``APIError`` for a non-2xx streaming response."""
    status_code = response.status_code
    detail = error_message_from_body(body, f"{label} API error")
    err_cls: type[APIError] = RateLimitError if status_code == 429 else APIError
    return err_cls(
        f"{label} API error ({status_code}): {detail}",
        hint=auth_hint(provider, status_code),
        retryable=status_code in RETRYABLE_STATUS_CODES,
        status_code=status_code,
        retry_after_s=_parse_retry_after(response.headers),
        provider=provider,
        phase="stream",
    )


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    message: str | None = None,
    retryable: bool | None = None,
) -> APIError:
    """Map provider SDK / transport exceptions into APIError with retry metadata.

    *retryable* overrides the derived flag for SDK error types that carry no
    status code but are known transport failures. Without an error status,
    a retry-after or a transport failure in the chain the flag stays None,
    so ``is_retryable`` falls back to matching the message.
    """
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        return exc

    status_code = extract_status_code(exc)
    retry_after_s = extract_retry_after_s(exc)

    if retryable is None:
        if isinstance(status_code, int):
            retryable = (
                status_code in RETRYABLE_STATUS_CODES or retry_after_s is not None
            )
        elif retry_after_s is not None or any(
            isinstance(e, (httpx.TransportError, TimeoutError, ConnectionError))
            for e in _walk_exception_chain(exc)
        ):
            retryable = True

    msg = message or f"{provider} {phase} failed"
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    # Some transport errors stringify to nothing; the class name still says
    # what happened (e.g. ReadTimeout).
    cause = str(exc) or type(exc).__name__

    err_cls: type[APIError] = RateLimitError if status_code == 429 else APIError
    err = err_cls(
        f"{msg}{status_note}: {cause}",
        hint=auth_hint(provider, status_code),
        retryable=retryable,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        phase=phase,
    )
    err.__cause__ = exc
    return err
