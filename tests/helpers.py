"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: fake vendor transports and a callback
recorder, so adapter tests never touch the network.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
import json
from types import SimpleNamespace
from typing import Any

import httpx

from north.providers.models import StreamCallbacks, StreamResult, ToolCall


@dataclass
class CallbackRecorder:
    """Records every callback a provider fires during one ``stream`` call."""

    chunks: list[str] = field(default_factory=list)
    thinking: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    completed: list[StreamResult] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    def callbacks(self, on_chunk: Any = None) -> StreamCallbacks:
        def _on_chunk(text: str) -> None:
            self.chunks.append(text)
            if on_chunk is not None:
                on_chunk(text)

        return StreamCallbacks(
            on_chunk=_on_chunk,
            on_complete=self.completed.append,
            on_error=self.errors.append,
            on_tool_call=self.tool_calls.append,
            on_thinking=self.thinking.append,
        )

    @property
    def result(self) -> StreamResult:
        assert not self.errors, f"unexpected error: {self.errors[0]!r}"
        assert len(self.completed) == 1
        return self.completed[0]

    @property
    def error(self) -> Exception:
        assert not self.completed, "stream completed but an error was expected"
        assert len(self.errors) == 1
        return self.errors[0]


# =============================================================================
# Anthropic SDK doubles
# =============================================================================


def ev(type: str, **fields: Any) -> SimpleNamespace:
    """Build an SDK-shaped event (attribute access, like the SDK's models)."""
    return SimpleNamespace(type=type, **fields)


def text_block(*deltas: str) -> list[SimpleNamespace]:
    return [
        ev("content_block_start", content_block=ev("text", text="")),
        *(ev("content_block_delta", delta=ev("text_delta", text=d)) for d in deltas),
        ev("content_block_stop"),
    ]


def tool_use_block(
    call_id: str, name: str, *fragments: str, stop: bool = True
) -> list[SimpleNamespace]:
    events = [
        ev("content_block_start", content_block=ev("tool_use", id=call_id, name=name, input={})),
        *(
            ev("content_block_delta", delta=ev("input_json_delta", partial_json=f))
            for f in fragments
        ),
    ]
    if stop:
        events.append(ev("content_block_stop"))
    return events


def thinking_block(thinking: str, signature: str) -> list[SimpleNamespace]:
    return [
        ev("content_block_start", content_block=ev("thinking", thinking="", signature="")),
        ev("content_block_delta", delta=ev("thinking_delta", thinking=thinking)),
        ev("content_block_delta", delta=ev("signature_delta", signature=signature)),
        ev("content_block_stop"),
    ]


def message_stop(stop_reason: str, output_tokens: int = 5) -> list[SimpleNamespace]:
    return [
        ev(
            "message_delta",
            delta=ev("delta", stop_reason=stop_reason),
            usage=ev("usage", output_tokens=output_tokens),
        ),
        ev("message_stop"),
    ]


class FakeAnthropicStream:
    """Async context manager + iterator standing in for ``MessageStream``."""

    def __init__(self, events: Iterable[Any], error: BaseException | None = None) -> None:
        self._events = list(events)
        self._error = error
        self.closed = False

    async def __aenter__(self) -> FakeAnthropicStream:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.closed = True

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        for event in self._events:
            if self.closed:
                return
            yield event
        if self._error is not None:
            raise self._error

    async def close(self) -> None:
        self.closed = True


class FakeAnthropicClient:
    """Records ``messages.stream`` kwargs and replays scripted events."""

    def __init__(self, events: Iterable[Any] = (), error: BaseException | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.stream_obj = FakeAnthropicStream(events, error)
        self.closed = False
        self.messages = SimpleNamespace(stream=self._stream)

    def _stream(self, **kwargs: Any) -> FakeAnthropicStream:
        self.calls.append(kwargs)
        return self.stream_obj

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# SSE (httpx) doubles
# =============================================================================


def sse(*events: dict[str, Any] | str) -> bytes:
    """Encode events as SSE ``data:`` lines; strings are sent verbatim."""
    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    return "".join(lines).encode("utf-8")


async def _aiter(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


@dataclass
class SSEServer:
    """``httpx.MockTransport`` handler that streams scripted chunks."""

    chunks: list[bytes] = field(default_factory=list)
    status_code: int = 200
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(
                self.status_code, content=self.body, headers=self.headers
            )
        return httpx.Response(
            200,
            content=_aiter(self.chunks),
            headers={"Content-Type": "text/event-stream", **self.headers},
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    @property
    def last_body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)
