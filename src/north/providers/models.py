"""Domain models for the provider transport layer.

These are vendor-neutral. Each adapter renders them onto its own wire format
and turns streamed output back into them for the next turn.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from pydantic import BaseModel

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class TextBlock:
    """Plain assistant or user text."""

    text: str
    type: Literal["text"] = field(default="text", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation the model asked for; ``id`` is echoed by the result."""

    id: str
    name: str
    input: Any
    type: Literal["tool_use"] = field(default="tool_use", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ToolResultBlock:
    """The output of a tool call, referencing the originating ``tool_use`` id."""

    tool_use_id: str
    content: Any = None
    is_error: bool | None = None
    type: Literal["tool_result"] = field(default="tool_result", init=False)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "tool_use_id": self.tool_use_id}
        if self.content is not None:
            out["content"] = self.content
        if self.is_error is not None:
            out["is_error"] = self.is_error
        return out


@dataclass(frozen=True)
class ThinkingBlock:
    """Reasoning content. ``signature`` is replayed byte-for-byte."""

    thinking: str
    signature: str
    type: Literal["thinking"] = field(default="thinking", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "thinking": self.thinking, "signature": self.signature}


@dataclass(frozen=True)
class RedactedThinkingBlock:
    """Opaque reasoning payload; ``data`` is replayed unmodified."""

    data: str
    type: Literal["redacted_thinking"] = field(default="redacted_thinking", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


ContentBlock = Union[
    TextBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock, RedactedThinkingBlock
]
AnyThinkingBlock = Union[ThinkingBlock, RedactedThinkingBlock]


def content_block_from_dict(data: dict[str, Any]) -> ContentBlock:
    """Parse a wire-format content block back into its model."""
    block_type = data.get("type")
    if block_type == "text":
        return TextBlock(text=data.get("text", ""))
    if block_type == "tool_use":
        return ToolUseBlock(id=data["id"], name=data["name"], input=data.get("input", {}))
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=data["tool_use_id"],
            content=data.get("content"),
            is_error=data.get("is_error"),
        )
    if block_type == "thinking":
        return ThinkingBlock(thinking=data.get("thinking", ""), signature=data["signature"])
    if block_type == "redacted_thinking":
        return RedactedThinkingBlock(data=data["data"])
    raise ValueError(f"Unknown content block type: {block_type!r}")


@dataclass(frozen=True)
class Message:
    """One conversation turn. Order in a conversation is significant."""

    role: Role
    content: str | list[ContentBlock]

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [b.to_dict() for b in self.content]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        content = data.get("content", "")
        if isinstance(content, list):
            content = [content_block_from_dict(b) for b in content]
        return cls(role=data["role"], content=content)


@dataclass(frozen=True)
class ToolCall:
    """A fully parsed tool call requested by the model."""

    id: str
    name: str
    input: Any


@dataclass(frozen=True)
class ToolResultInput:
    """A tool outcome handed back by the caller for the next turn."""

    tool_call_id: str
    result: str
    is_error: bool | None = None


@dataclass(frozen=True)
class ToolSchema:
    """A tool definition offered to the model."""

    name: str
    description: str
    #: JSON Schema dict or a Pydantic ``BaseModel`` subclass.
    input_schema: dict[str, Any] | type[BaseModel]

    def input_schema_json(self) -> dict[str, Any]:
        """Return the input schema as a JSON Schema dict."""
        schema = self.input_schema
        if isinstance(schema, dict):
            return schema
        return schema.model_json_schema()


@dataclass(frozen=True)
class ThinkingConfig:
    """Extended-thinking request; reasoning shares the response token budget."""

    budget_tokens: int
    type: Literal["enabled"] = "enabled"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "budget_tokens": self.budget_tokens}


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting for one streamed turn."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int | None = None
    cache_write_tokens: int | None = None
    cached_input_tokens: int | None = None
    reasoning_tokens: int | None = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class StreamResult:
    """Terminal value of one ``stream`` call."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    thinking_blocks: list[AnyThinkingBlock] = field(default_factory=list)
    #: ``None`` only when the vendor never sent a reason.
    stop_reason: str | None = None
    usage: TokenUsage | None = None


@dataclass
class StreamCallbacks:
    """Callbacks invoked while a turn streams.

    Exactly one of ``on_complete`` / ``on_error`` fires per ``stream`` call.
    """

    on_chunk: Callable[[str], None]
    on_complete: Callable[[StreamResult], None]
    on_error: Callable[[Exception], None]
    on_tool_call: Callable[[ToolCall], None] | None = None
    on_thinking: Callable[[str], None] | None = None


@dataclass(frozen=True)
class StreamOptions:
    """Per-call overrides for ``Provider.stream``."""

    tools: list[ToolSchema] | None = None
    model: str | None = None
    system_override: str | None = None
    #: Cooperative cancellation; checked once per incoming event or chunk.
    signal: asyncio.Event | None = None
    thinking: ThinkingConfig | None = None
