"""OpenAI Responses API provider (flat SSE delta stream over httpx)."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from north.errors import IncompleteToolCallError, ProviderStreamError
from north.prompts import OPENAI_SYSTEM_PROMPT
from north.providers._errors import http_status_error
from north.providers._sse import DONE_SENTINEL, LineReader, data_payload
from north.providers._utils import normalize_tool_schema, parse_or_default
from north.providers.base import (
    STOP_CANCELLED,
    STOP_END_TURN,
    STOP_TOOL_USE,
    BaseProvider,
    finalize_stop_reason,
    is_cancelled,
)
from north.providers.models import (
    Message,
    StreamResult,
    TextBlock,
    TokenUsage,
    ToolCall,
    ToolResultBlock,
    ToolUseBlock,
)
from north.types import ProviderFamily

if TYPE_CHECKING:
    from collections.abc import Sequence

    from north.providers.models import (
        ContentBlock,
        StreamCallbacks,
        StreamOptions,
        ToolSchema,
    )

log = logging.getLogger(__name__)

OPENAI_RESPONSES_URL = "https://api.openai.com/v1/responses"
# Reasoning models can think for minutes before the first delta.
DEFAULT_TIMEOUT = httpx.Timeout(600.0, connect=30.0)

_INCOMPLETE_REASONS = {"max_output_tokens": "max_tokens"}


def to_input_items(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Flatten block-structured messages into Responses API input items.

    Thinking blocks have no Responses API equivalent and are dropped.
    """
    items: list[dict[str, Any]] = []
    for msg in messages:
        if isinstance(msg.content, str):
            items.append({"role": msg.role, "content": msg.content})
            continue
        for block in msg.content:
            if isinstance(block, TextBlock):
                items.append({"role": msg.role, "content": block.text})
            elif isinstance(block, ToolUseBlock):
                items.append(
                    {
                        "type": "function_call",
                        "call_id": block.id,
                        "name": block.name,
                        "arguments": json.dumps(block.input),
                    }
                )
            elif isinstance(block, ToolResultBlock):
                output = block.content
                if not isinstance(output, str):
                    output = json.dumps(output) if output is not None else ""
                items.append(
                    {
                        "type": "function_call_output",
                        "call_id": block.tool_use_id,
                        "output": output,
                    }
                )
    return items


def _item_role(item: dict[str, Any]) -> str:
    item_type = item.get("type")
    if item_type == "function_call":
        return "assistant"
    if item_type == "function_call_output":
        return "user"
    return item.get("role", "user")


def _item_block(item: dict[str, Any]) -> ContentBlock:
    item_type = item.get("type")
    if item_type == "function_call":
        arguments, _ = parse_or_default(item.get("arguments"))
        return ToolUseBlock(id=item["call_id"], name=item["name"], input=arguments)
    if item_type == "function_call_output":
        return ToolResultBlock(tool_use_id=item["call_id"], content=item.get("output"))
    content = item.get("content", "")
    if isinstance(content, list):
        content = "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return TextBlock(text=content)


def from_input_items(items: Sequence[dict[str, Any]]) -> list[Message]:
    """Rebuild messages from input items, grouping consecutive same-role items."""
    messages: list[Message] = []
    role: str | None = None
    blocks: list[ContentBlock] = []
    for item in items:
        item_role = _item_role(item)
        if role is not None and item_role != role:
            messages.append(Message(role=role, content=blocks))  # type: ignore[arg-type]
            blocks = []
        role = item_role
        blocks.append(_item_block(item))
    if role is not None:
        messages.append(Message(role=role, content=blocks))  # type: ignore[arg-type]
    return messages


def to_openai_tools(tools: Sequence[ToolSchema]) -> list[dict[str, Any]]:
    """Convert tool definitions to Responses API function tools."""
    return [
        {
            "type": "function",
            "name": t.name,
            "description": t.description,
            "parameters": normalize_tool_schema(t.input_schema_json()),
        }
        for t in tools
    ]


def _error_detail(event: dict[str, Any]) -> str:
    error = event.get("error")
    if not isinstance(error, dict):
        error = (event.get("response") or {}).get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    message = event.get("message")
    return str(message) if message else "unknown error"


class _ResponseAccumulator:
    """Per-call state for one Responses API stream.

    Pending calls are keyed by transport item id; registered calls are
    deduplicated by public call id, first sighting wins.
    """

    def __init__(self, callbacks: StreamCallbacks, *, provider: str) -> None:
        self._callbacks = callbacks
        self._provider = provider
        self.text_parts: list[str] = []
        self.tool_calls: list[ToolCall] = []
        self.stop_reason: str | None = None
        self.usage: TokenUsage | None = None
        self.terminal = False

        self._pending: dict[str, dict[str, str]] = {}
        self._registered_calls: set[str] = set()
        self._registered_items: set[str] = set()

    def handle(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        if event_type == "response.output_text.delta":
            self._append_text(event.get("delta", ""))
        elif event_type == "response.reasoning_summary_text.delta":
            if self._callbacks.on_thinking is not None:
                self._callbacks.on_thinking(event.get("delta", ""))
        elif event_type == "response.output_item.added":
            self._on_item_added(event.get("item") or {})
        elif event_type == "response.function_call_arguments.delta":
            pending = self._pending_call(event.get("item_id", ""), event)
            pending["arguments"] += event.get("delta", "")
        elif event_type == "response.function_call_arguments.done":
            self._on_arguments_done(event)
        elif event_type == "response.output_item.done":
            item = event.get("item") or {}
            if item.get("type") == "function_call":
                self._register_item(item)
        elif event_type == "response.completed":
            self._on_terminal(event.get("response") or {})
            self.stop_reason = STOP_TOOL_USE if self.tool_calls else STOP_END_TURN
        elif event_type == "response.incomplete":
            response = event.get("response") or {}
            self._on_terminal(response)
            if self.tool_calls:
                self.stop_reason = STOP_TOOL_USE
            else:
                reason = (response.get("incomplete_details") or {}).get("reason")
                self.stop_reason = _INCOMPLETE_REASONS.get(reason, STOP_END_TURN)
        elif event_type in ("response.failed", "error"):
            raise ProviderStreamError(
                f"Stream error: {_error_detail(event)}",
                provider=self._provider,
                phase="stream",
            )

    def _on_item_added(self, item: dict[str, Any]) -> None:
        if item.get("type") != "function_call":
            return
        item_id = item.get("id") or item.get("call_id", "")
        self._pending[item_id] = {
            "call_id": item.get("call_id") or "",
            "name": item.get("name", ""),
            "arguments": item.get("arguments") or "",
        }
        if item.get("status") == "completed":
            self._complete(item_id)

    def _pending_call(self, item_id: str, event: dict[str, Any]) -> dict[str, str]:
        """The pending call for *item_id*, opened on first sighting."""
        return self._pending.setdefault(
            item_id,
            {
                "call_id": event.get("call_id") or "",
                "name": event.get("name") or "",
                "arguments": "",
            },
        )

    def _on_arguments_done(self, event: dict[str, Any]) -> None:
        item_id = event.get("item_id", "")
        pending = self._pending_call(item_id, event)
        if event.get("arguments") is not None:
            pending["arguments"] = event["arguments"]
        self._complete(item_id)

    def _register_item(self, item: dict[str, Any]) -> None:
        item_id = item.get("id") or item.get("call_id", "")
        pending = self._pending.pop(item_id, None) or {}
        arguments = item.get("arguments")
        if arguments is None:
            arguments = pending.get("arguments", "")
        name = item.get("name") or pending.get("name", "")
        call_id = item.get("call_id") or pending.get("call_id")
        if not call_id:
            self._pending[item_id] = {"call_id": "", "name": name, "arguments": arguments}
            return
        self._register(item_id, call_id=call_id, name=name, arguments=arguments)

    def _complete(self, item_id: str) -> None:
        pending = self._pending[item_id]
        # The item id is transport-local; a call is registered only once its
        # public call id is known, since tool results must echo that id.
        if not pending["call_id"]:
            return
        del self._pending[item_id]
        self._register(item_id, **pending)

    def _register(self, item_id: str, *, call_id: str, name: str, arguments: str) -> None:
        if call_id in self._registered_calls or item_id in self._registered_items:
            return
        self._registered_calls.add(call_id)
        self._registered_items.add(item_id)

        parsed, valid = parse_or_default(arguments)
        if not valid:
            log.warning("Malformed arguments for tool call %s (%s); using {}", call_id, name)
        call = ToolCall(id=call_id, name=name, input=parsed)
        self.tool_calls.append(call)
        if self._callbacks.on_tool_call is not None:
            self._callbacks.on_tool_call(call)

    def _on_terminal(self, response: dict[str, Any]) -> None:
        self.terminal = True
        for item in response.get("output") or ():
            if item.get("type") == "function_call":
                self._register_item(item)
            elif item.get("type") == "message" and not self.text_parts:
                for part in item.get("content") or ():
                    if part.get("type") == "output_text" and part.get("text"):
                        self._append_text(part["text"])
        self.usage = _usage_from_response(response) or self.usage

    def _append_text(self, text: str) -> None:
        if not text:
            return
        self.text_parts.append(text)
        self._callbacks.on_chunk(text)

    def finish(self) -> StreamResult:
        """Finalize once the byte stream is exhausted."""
        if self._pending:
            if not self.terminal:
                raise IncompleteToolCallError(provider=self._provider)
            for item_id, pending in list(self._pending.items()):
                if pending["call_id"]:
                    self._complete(item_id)
                else:
                    log.warning("Dropping tool call %s: no call id was announced", item_id)
            self._pending.clear()
        if self.stop_reason is None:
            self.stop_reason = STOP_TOOL_USE if self.tool_calls else STOP_END_TURN
        return self.result()

    def result(self, stop_reason: str | None = None) -> StreamResult:
        reason = stop_reason if stop_reason is not None else self.stop_reason
        return StreamResult(
            text="".join(self.text_parts),
            tool_calls=list(self.tool_calls),
            stop_reason=finalize_stop_reason(reason, self.tool_calls),
            usage=self.usage,
        )


def _usage_from_response(response: dict[str, Any]) -> TokenUsage | None:
    usage = response.get("usage")
    if not isinstance(usage, dict):
        return None
    input_details = usage.get("input_tokens_details") or {}
    output_details = usage.get("output_tokens_details") or {}
    return TokenUsage(
        input_tokens=usage.get("input_tokens") or 0,
        output_tokens=usage.get("output_tokens") or 0,
        cached_input_tokens=input_details.get("cached_tokens"),
        reasoning_tokens=output_details.get("reasoning_tokens"),
    )


class OpenAIProvider(BaseProvider):
    """OpenAI Responses API provider."""

    family = ProviderFamily.OPENAI
    api_key_env = "OPENAI_API_KEY"
    default_model_name = "gpt-5.1"
    default_system_prompt = OPENAI_SYSTEM_PROMPT

    url: ClassVar[str] = OPENAI_RESPONSES_URL
    label: ClassVar[str] = "OpenAI"

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily initialize and return the shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=DEFAULT_TIMEOUT if self.timeout is None else self.timeout
            )
        return self._client

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def _wire_model(self, model: str) -> str:
        return model

    def build_request(
        self,
        messages: Sequence[Message],
        options: StreamOptions,
        *,
        model: str,
        system: str,
    ) -> dict[str, Any]:
        """JSON body for one streaming Responses API call."""
        body: dict[str, Any] = {
            "model": self._wire_model(model),
            "instructions": system,
            "input": to_input_items(messages),
            "stream": True,
        }
        if options.tools:
            body["tools"] = to_openai_tools(options.tools)
            body["tool_choice"] = "auto"
        body["parallel_tool_calls"] = True
        return body

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
        client = self._get_client()
        body = self.build_request(messages, options, model=model, system=system)
        acc = _ResponseAccumulator(callbacks, provider=self.family.value)
        reader = LineReader()

        async with client.stream(
            "POST", self.url, json=body, headers=self._headers(api_key)
        ) as response:
            if not response.is_success:
                error_body = (await response.aread()).decode("utf-8", errors="replace")
                raise http_status_error(
                    response, error_body, provider=self.family.value, label=self.label
                )

            async for chunk in response.aiter_bytes():
                if is_cancelled(options.signal):
                    log.debug("%s stream cancelled by caller", self.label)
                    return acc.result(stop_reason=STOP_CANCELLED)
                for line in reader.feed(chunk):
                    if is_cancelled(options.signal):
                        log.debug("%s stream cancelled by caller", self.label)
                        return acc.result(stop_reason=STOP_CANCELLED)
                    if self._consume_line(acc, line):
                        return acc.finish()

            for line in reader.flush():
                if self._consume_line(acc, line):
                    break

        return acc.finish()

    def _consume_line(self, acc: _ResponseAccumulator, line: str) -> bool:
        """Feed one SSE line to *acc*; True once the stream is done."""
        payload = data_payload(line)
        if not payload:
            return False
        if payload == DONE_SENTINEL:
            return True
        try:
            event = json.loads(payload)
        except ValueError:
            log.debug("Skipping undecodable %s event payload", self.label)
            return False
        if isinstance(event, dict):
            acc.handle(event)
        return False
