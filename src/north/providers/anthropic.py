"""Anthropic Messages API provider (native block-oriented event stream)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from anthropic import APIConnectionError, AsyncAnthropic

from north.errors import IncompleteToolCallError, NorthError
from north.prompts import ANTHROPIC_SYSTEM_PROMPT
from north.providers._errors import wrap_provider_error
from north.providers._utils import parse_or_default
from north.providers.base import (
    STOP_CANCELLED,
    BaseProvider,
    finalize_stop_reason,
    is_cancelled,
)
from north.providers.models import (
    RedactedThinkingBlock,
    StreamResult,
    ThinkingBlock,
    TokenUsage,
    ToolCall,
)
from north.types import ProviderFamily

if TYPE_CHECKING:
    from north.providers.models import (
        AnyThinkingBlock,
        Message,
        StreamCallbacks,
        StreamOptions,
        ThinkingConfig,
        ToolSchema,
    )

log = logging.getLogger(__name__)

BASE_MAX_TOKENS = 8192
# Reasoning and output share max_tokens; the vendor rejects the call when the
# budget is short, so the margin errs on the generous side.
THINKING_MARGIN_TOKENS = 4096
_INTERLEAVED_THINKING_BETA_HEADER = "interleaved-thinking-2025-05-14"


def compute_max_tokens(thinking: ThinkingConfig | None) -> int:
    """Response budget for one call."""
    if thinking is None:
        return BASE_MAX_TOKENS
    return BASE_MAX_TOKENS + thinking.budget_tokens + THINKING_MARGIN_TOKENS


def to_anthropic_tools(tools: list[ToolSchema]) -> list[dict[str, Any]]:
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.input_schema_json(),
        }
        for t in tools
    ]


class _BlockAccumulator:
    """Per-call state: one open block slot plus everything completed so far."""

    def __init__(self, callbacks: StreamCallbacks) -> None:
        self._callbacks = callbacks
        self.text_parts: list[str] = []
        self.tool_calls: list[ToolCall] = []
        self.thinking_blocks: list[AnyThinkingBlock] = []
        self.stop_reason: str | None = None

        self._usage: dict[str, int] = {}

        # The open block.
        self.block_type: str | None = None
        self._tool_id = ""
        self._tool_name = ""
        self._tool_input: list[str] = []
        self._thinking: list[str] = []
        self._signature: list[str] = []
        self._redacted_data = ""

    @property
    def tool_call_open(self) -> bool:
        return self.block_type == "tool_use"

    def handle(self, event: Any) -> None:
        event_type = getattr(event, "type", None)
        if event_type == "message_start":
            self._on_message_start(event)
        elif event_type == "content_block_start":
            self._on_block_start(getattr(event, "content_block", None))
        elif event_type == "content_block_delta":
            self._on_block_delta(getattr(event, "delta", None))
        elif event_type == "content_block_stop":
            self._on_block_stop()
        elif event_type == "message_delta":
            self._on_message_delta(event)
        # SDK helper events (text, input_json, ...) repeat the raw deltas.

    def _on_message_start(self, event: Any) -> None:
        usage = getattr(getattr(event, "message", None), "usage", None)
        if usage is None:
            return
        for key, attr in (
            ("input_tokens", "input_tokens"),
            ("cache_read_tokens", "cache_read_input_tokens"),
            ("cache_write_tokens", "cache_creation_input_tokens"),
        ):
            value = getattr(usage, attr, None)
            if isinstance(value, int):
                self._usage[key] = value

    def _on_block_start(self, block: Any) -> None:
        if self.tool_call_open:
            log.warning("Tool call %s was never closed; discarding it", self._tool_id)

        block_type = getattr(block, "type", None)
        self.block_type = block_type
        if block_type == "text":
            initial = getattr(block, "text", "")
            if initial:
                self._append_text(initial)
        elif block_type == "tool_use":
            self._tool_id = getattr(block, "id", "")
            self._tool_name = getattr(block, "name", "")
            self._tool_input = []
        elif block_type == "thinking":
            self._thinking = [getattr(block, "thinking", "") or ""]
            self._signature = [getattr(block, "signature", "") or ""]
        elif block_type == "redacted_thinking":
            # Arrives whole, never as deltas.
            self._redacted_data = getattr(block, "data", "")

    def _on_block_delta(self, delta: Any) -> None:
        delta_type = getattr(delta, "type", None)
        if delta_type == "text_delta":
            self._append_text(delta.text)
        elif delta_type == "input_json_delta":
            # Fragments are not valid JSON on their own; parse at block stop.
            self._tool_input.append(delta.partial_json)
        elif delta_type == "thinking_delta":
            self._thinking.append(delta.thinking)
            if self._callbacks.on_thinking is not None:
                self._callbacks.on_thinking(delta.thinking)
        elif delta_type == "signature_delta":
            self._signature.append(delta.signature)

    def _on_block_stop(self) -> None:
        if self.block_type == "tool_use":
            raw = "".join(self._tool_input)
            parsed, valid = parse_or_default(raw)
            if not valid:
                log.warning(
                    "Malformed arguments for tool call %s (%s); using {}",
                    self._tool_id,
                    self._tool_name,
                )
            call = ToolCall(id=self._tool_id, name=self._tool_name, input=parsed)
            self.tool_calls.append(call)
            if self._callbacks.on_tool_call is not None:
                self._callbacks.on_tool_call(call)
        elif self.block_type == "thinking":
            self.thinking_blocks.append(
                ThinkingBlock(
                    thinking="".join(self._thinking),
                    signature="".join(self._signature),
                )
            )
        elif self.block_type == "redacted_thinking":
            self.thinking_blocks.append(RedactedThinkingBlock(data=self._redacted_data))
        self.block_type = None

    def _on_message_delta(self, event: Any) -> None:
        stop_reason = getattr(getattr(event, "delta", None), "stop_reason", None)
        if stop_reason:
            self.stop_reason = stop_reason
        output_tokens = getattr(getattr(event, "usage", None), "output_tokens", None)
        if isinstance(output_tokens, int):
            self._usage["output_tokens"] = output_tokens

    def _append_text(self, text: str) -> None:
        self.text_parts.append(text)
        self._callbacks.on_chunk(text)

    def result(self, stop_reason: str | None = None) -> StreamResult:
        reason = stop_reason if stop_reason is not None else self.stop_reason
        usage = TokenUsage(**self._usage) if self._usage else None
        return StreamResult(
            text="".join(self.text_parts),
            tool_calls=list(self.tool_calls),
            thinking_blocks=list(self.thinking_blocks),
            stop_reason=finalize_stop_reason(reason, self.tool_calls),
            usage=usage,
        )


class AnthropicProvider(BaseProvider):
    """Anthropic Messages API provider."""

    family = ProviderFamily.ANTHROPIC
    api_key_env = "ANTHROPIC_API_KEY"
    default_model_name = "claude-sonnet-4-20250514"
    default_system_prompt = ANTHROPIC_SYSTEM_PROMPT

    def _get_client(self, api_key: str) -> AsyncAnthropic:
        """Lazily initialize and return the async Anthropic client."""
        if self._client is None:
            kwargs: dict[str, Any] = {"api_key": api_key}
            if self.timeout is not None:
                kwargs["timeout"] = self.timeout
            self._client = AsyncAnthropic(**kwargs)
        return self._client

    def build_request(
        self,
        messages: list[Message],
        options: StreamOptions,
        *,
        model: str,
        system: str,
    ) -> dict[str, Any]:
        """Keyword arguments for ``client.messages.stream``."""
        request: dict[str, Any] = {
            "model": model,
            "max_tokens": compute_max_tokens(options.thinking),
            "system": system,
            "messages": [m.to_dict() for m in messages],
        }
        if options.tools:
            request["tools"] = to_anthropic_tools(options.tools)
        if options.thinking is not None:
            request["thinking"] = options.thinking.to_dict()
            if options.tools:
                request["extra_headers"] = {
                    "anthropic-beta": _INTERLEAVED_THINKING_BETA_HEADER
                }
        return request

    async def _stream(
        self,
        messages: list[Message],
        callbacks: StreamCallbacks,
        options: StreamOptions,
        *,
        api_key: str,
        model: str,
        system: str,
    ) -> StreamResult:
        client = self._get_client(api_key)
        request = self.build_request(messages, options, model=model, system=system)
        acc = _BlockAccumulator(callbacks)

        async with client.messages.stream(**request) as stream:
            async for event in stream:
                if is_cancelled(options.signal):
                    await stream.close()
                    log.debug("Anthropic stream cancelled by caller")
                    return acc.result(stop_reason=STOP_CANCELLED)
                acc.handle(event)

        if acc.tool_call_open:
            raise IncompleteToolCallError(provider=self.family.value)
        return acc.result()

    def _map_error(self, exc: Exception) -> Exception:
        if isinstance(exc, NorthError):
            return exc
        return wrap_provider_error(
            exc,
            provider=self.family.value,
            phase="stream",
            message="Anthropic stream failed",
            # Covers APITimeoutError, which carries no status code.
            retryable=True if isinstance(exc, APIConnectionError) else None,
        )
