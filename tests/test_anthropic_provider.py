"""Anthropic adapter characterization tests.

A fake client replays SDK-shaped events so the block state machine, request
shape and terminal callbacks can be checked without the network.
"""

from __future__ import annotations

import asyncio
import json

import anthropic
import httpx
from hypothesis import given
from hypothesis import strategies as st
import pytest

from north.errors import APIError, ConfigurationError, IncompleteToolCallError
from north.providers.anthropic import (
    BASE_MAX_TOKENS,
    THINKING_MARGIN_TOKENS,
    AnthropicProvider,
    _BlockAccumulator,
    compute_max_tokens,
)
from north.providers.models import (
    Message,
    RedactedThinkingBlock,
    StreamOptions,
    ThinkingBlock,
    ThinkingConfig,
    ToolCall,
    ToolSchema,
)
from north.retry import is_retryable
from tests.helpers import (
    CallbackRecorder,
    FakeAnthropicClient,
    ev,
    message_stop,
    text_block,
    thinking_block,
    tool_use_block,
)

pytestmark = pytest.mark.contract

_USER = [Message(role="user", content="hello")]


def _provider(client: FakeAnthropicClient) -> AnthropicProvider:
    provider = AnthropicProvider(api_key="test-key")
    provider._client = client
    return provider


# =============================================================================
# Streaming
# =============================================================================


@pytest.mark.asyncio
async def test_text_stream_emits_chunks_and_completes(recorder: CallbackRecorder) -> None:
    client = FakeAnthropicClient(
        [
            ev(
                "message_start",
                message=ev(
                    "message",
                    usage=ev(
                        "usage",
                        input_tokens=12,
                        cache_read_input_tokens=3,
                        cache_creation_input_tokens=None,
                    ),
                ),
            ),
            *text_block("Hel", "lo"),
            *message_stop("end_turn", output_tokens=4),
        ]
    )

    await _provider(client).stream(_USER, recorder.callbacks())

    result = recorder.result
    assert recorder.chunks == ["Hel", "lo"]
    assert result.text == "Hello"
    assert result.tool_calls == []
    assert result.stop_reason == "end_turn"
    assert result.usage is not None
    assert (result.usage.input_tokens, result.usage.output_tokens) == (12, 4)
    assert result.usage.cache_read_tokens == 3
    assert client.stream_obj.closed


@pytest.mark.asyncio
async def test_tool_arguments_are_parsed_only_at_block_stop(
    recorder: CallbackRecorder,
) -> None:
    client = FakeAnthropicClient(
        [
            *text_block("Checking."),
            *tool_use_block("toolu_1", "read_file", '{"a":', "1}"),
            *message_stop("tool_use"),
        ]
    )

    await _provider(client).stream(_USER, recorder.callbacks())

    expected = ToolCall(id="toolu_1", name="read_file", input={"a": 1})
    assert recorder.tool_calls == [expected]
    assert recorder.result.tool_calls == [expected]
    assert recorder.result.stop_reason == "tool_use"


@pytest.mark.asyncio
async def test_malformed_tool_json_becomes_empty_input(
    recorder: CallbackRecorder, caplog: pytest.LogCaptureFixture
) -> None:
    client = FakeAnthropicClient(
        [*tool_use_block("toolu_1", "grep", '{"q": '), *message_stop("tool_use")]
    )

    await _provider(client).stream(_USER, recorder.callbacks())

    assert recorder.result.tool_calls == [ToolCall(id="toolu_1", name="grep", input={})]
    assert "Malformed arguments" in caplog.text


@pytest.mark.asyncio
async def test_tool_calls_force_tool_use_stop_reason(recorder: CallbackRecorder) -> None:
    client = FakeAnthropicClient(
        [*tool_use_block("toolu_1", "ls", "{}"), *message_stop("end_turn")]
    )

    await _provider(client).stream(_USER, recorder.callbacks())

    assert recorder.result.stop_reason == "tool_use"


@pytest.mark.asyncio
async def test_thinking_blocks_keep_signature_and_redacted_data(
    recorder: CallbackRecorder,
) -> None:
    client = FakeAnthropicClient(
        [
            *thinking_block("Let me think", "c2lnbmF0dXJl"),
            ev("content_block_start", content_block=ev("redacted_thinking", data="EnCrYpTeD")),
            ev("content_block_stop"),
            *text_block("Done."),
            *message_stop("end_turn"),
        ]
    )

    await _provider(client).stream(_USER, recorder.callbacks())

    assert recorder.thinking == ["Let me think"]
    assert recorder.result.thinking_blocks == [
        ThinkingBlock(thinking="Let me think", signature="c2lnbmF0dXJl"),
        RedactedThinkingBlock(data="EnCrYpTeD"),
    ]


@pytest.mark.asyncio
async def test_stream_ending_inside_tool_use_reports_error(
    recorder: CallbackRecorder,
) -> None:
    client = FakeAnthropicClient(tool_use_block("toolu_1", "write", '{"path": "a"', stop=False))

    await _provider(client).stream(_USER, recorder.callbacks())

    err = recorder.error
    assert isinstance(err, IncompleteToolCallError)
    assert "incomplete tool call" in str(err)
    assert recorder.tool_calls == []


@pytest.mark.asyncio
async def test_cancellation_completes_with_partial_state(recorder: CallbackRecorder) -> None:
    signal = asyncio.Event()
    client = FakeAnthropicClient(
        [*text_block("first", "second"), *message_stop("end_turn")]
    )

    await _provider(client).stream(
        _USER,
        recorder.callbacks(on_chunk=lambda _: signal.set()),
        StreamOptions(signal=signal),
    )

    result = recorder.result
    assert result.stop_reason == "cancelled"
    assert result.text == "first"
    assert client.stream_obj.closed


@pytest.mark.asyncio
async def test_cancellation_keeps_completed_tool_calls(recorder: CallbackRecorder) -> None:
    signal = asyncio.Event()
    client = FakeAnthropicClient(
        [
            *tool_use_block("toolu_1", "ls", "{}"),
            *tool_use_block("toolu_2", "cat", '{"p": 1}'),
            *message_stop("tool_use"),
        ]
    )
    callbacks = recorder.callbacks()
    callbacks.on_tool_call = lambda call: signal.set()

    await _provider(client).stream(_USER, callbacks, StreamOptions(signal=signal))

    result = recorder.result
    assert result.stop_reason == "cancelled"
    assert [c.id for c in result.tool_calls] == ["toolu_1"]


@pytest.mark.asyncio
async def test_sdk_errors_are_mapped_to_api_errors(recorder: CallbackRecorder) -> None:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    client = FakeAnthropicClient(
        text_block("partial"), error=anthropic.APIConnectionError(request=request)
    )

    await _provider(client).stream(_USER, recorder.callbacks())

    err = recorder.error
    assert isinstance(err, APIError)
    assert err.retryable is True
    assert err.provider == "anthropic"


_MESSAGES_URL = "https://api.anthropic.com/v1/messages"


def _status_error(status: int, message: str, body: object = None) -> anthropic.APIStatusError:
    response = httpx.Response(status, request=httpx.Request("POST", _MESSAGES_URL))
    return anthropic.APIStatusError(message, response=response, body=body)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        # Mid-stream errors arrive after the 200 response was accepted.
        (_status_error(200, "Overloaded", {"error": {"type": "overloaded_error"}}), True),
        (_status_error(200, "rate limit exceeded", {"error": {"type": "rate_limit_error"}}), True),
        (_status_error(503, "Service Unavailable"), True),
        (RuntimeError("socket hang up"), True),
        (
            anthropic.AuthenticationError(
                "invalid x-api-key",
                response=httpx.Response(401, request=httpx.Request("POST", _MESSAGES_URL)),
                body=None,
            ),
            False,
        ),
    ],
    ids=["overloaded-mid-stream", "rate-limit-mid-stream", "http-503", "socket-hang-up", "auth"],
)
@pytest.mark.asyncio
async def test_stream_failures_classify_for_retry(
    recorder: CallbackRecorder, error: Exception, expected: bool
) -> None:
    client = FakeAnthropicClient(text_block("partial"), error=error)

    await _provider(client).stream(_USER, recorder.callbacks())

    assert isinstance(recorder.error, APIError)
    assert is_retryable(recorder.error) is expected


# =============================================================================
# Request shape
# =============================================================================


@pytest.mark.asyncio
async def test_request_shape_with_tools_and_thinking(recorder: CallbackRecorder) -> None:
    client = FakeAnthropicClient(message_stop("end_turn"))
    tool = ToolSchema(
        name="read_file",
        description="Read a file",
        input_schema={"type": "object", "properties": {"path": {"type": "string"}}},
    )
    options = StreamOptions(
        tools=[tool],
        model="claude-opus-4-20250514",
        system_override="be brief",
        thinking=ThinkingConfig(budget_tokens=10_000),
    )

    await _provider(client).stream(_USER, recorder.callbacks(), options)

    (kwargs,) = client.calls
    assert kwargs["model"] == "claude-opus-4-20250514"
    assert kwargs["system"] == "be brief"
    assert kwargs["messages"] == [{"role": "user", "content": "hello"}]
    assert kwargs["max_tokens"] == BASE_MAX_TOKENS + 10_000 + THINKING_MARGIN_TOKENS
    assert kwargs["thinking"] == {"type": "enabled", "budget_tokens": 10_000}
    assert kwargs["tools"] == [
        {
            "name": "read_file",
            "description": "Read a file",
            "input_schema": {"type": "object", "properties": {"path": {"type": "string"}}},
        }
    ]


@pytest.mark.asyncio
async def test_request_defaults_without_tools_or_thinking(recorder: CallbackRecorder) -> None:
    client = FakeAnthropicClient(message_stop("end_turn"))
    provider = _provider(client)

    await provider.stream(_USER, recorder.callbacks())

    (kwargs,) = client.calls
    assert kwargs["model"] == provider.default_model
    assert kwargs["system"] == provider.system_prompt
    assert kwargs["max_tokens"] == BASE_MAX_TOKENS
    assert "tools" not in kwargs
    assert "thinking" not in kwargs


def test_compute_max_tokens() -> None:
    assert compute_max_tokens(None) == 8192
    assert compute_max_tokens(ThinkingConfig(budget_tokens=16_000)) == 8192 + 16_000 + 4096


# =============================================================================
# Preconditions and lifecycle
# =============================================================================


@pytest.mark.asyncio
async def test_missing_api_key_reports_configuration_error(
    recorder: CallbackRecorder,
) -> None:
    provider = AnthropicProvider()
    client = FakeAnthropicClient(text_block("never"))
    provider._client = client

    await provider.stream(_USER, recorder.callbacks())

    err = recorder.error
    assert isinstance(err, ConfigurationError)
    assert "ANTHROPIC_API_KEY" in str(err)
    assert client.calls == []


@pytest.mark.asyncio
async def test_env_api_key_is_used(
    recorder: CallbackRecorder, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "from-env")
    provider = AnthropicProvider()
    provider._client = FakeAnthropicClient(message_stop("end_turn"))

    await provider.stream(_USER, recorder.callbacks())

    assert recorder.result.stop_reason == "end_turn"


@pytest.mark.asyncio
async def test_empty_messages_report_configuration_error(
    recorder: CallbackRecorder,
) -> None:
    await _provider(FakeAnthropicClient()).stream([], recorder.callbacks())
    assert isinstance(recorder.error, ConfigurationError)


@pytest.mark.asyncio
async def test_aclose_closes_client_once() -> None:
    client = FakeAnthropicClient()
    provider = _provider(client)

    await provider.aclose()
    await provider.aclose()

    assert client.closed
    assert provider._client is None


def test_repr_redacts_api_key() -> None:
    assert "test-key" not in repr(AnthropicProvider(api_key="test-key"))


# =============================================================================
# Properties
# =============================================================================


@given(
    arguments=st.dictionaries(
        st.text(min_size=1, max_size=8),
        st.one_of(st.integers(), st.text(max_size=10), st.booleans(), st.none()),
        max_size=5,
    ),
    cuts=st.lists(st.integers(min_value=0, max_value=200), max_size=8),
)
def test_tool_arguments_are_fragmentation_invariant(arguments: dict, cuts: list[int]) -> None:
    raw = json.dumps(arguments)
    bounds = sorted({c for c in cuts if c <= len(raw)})
    fragments = [raw[a:b] for a, b in zip([0, *bounds], [*bounds, len(raw)])]

    recorder = CallbackRecorder()
    acc = _BlockAccumulator(recorder.callbacks())
    for event in [*tool_use_block("toolu_1", "t", *fragments), *message_stop("tool_use")]:
        acc.handle(event)

    result = acc.result()
    assert result.tool_calls == [ToolCall(id="toolu_1", name="t", input=arguments)]
    assert result.stop_reason == "tool_use"
