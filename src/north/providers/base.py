"""Provider protocol and the shared adapter skeleton."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

from north.errors import ConfigurationError, InternalError, NorthError
from north.providers._errors import wrap_provider_error
from north.providers.models import (
    ContentBlock,
    Message,
    RedactedThinkingBlock,
    StreamCallbacks,
    StreamOptions,
    StreamResult,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from north.providers.models import AnyThinkingBlock, ToolCall, ToolResultInput
    from north.types import ProviderFamily

log = logging.getLogger(__name__)

STOP_END_TURN = "end_turn"
STOP_TOOL_USE = "tool_use"
STOP_CANCELLED = "cancelled"


@runtime_checkable
class Provider(Protocol):
    """What every vendor adapter offers the orchestrator."""

    family: ProviderFamily
    default_model: str
    system_prompt: str

    async def stream(
        self,
        messages: Sequence[Message],
        callbacks: StreamCallbacks,
        options: StreamOptions | None = None,
    ) -> None:
        """Stream one assistant turn; outcome arrives via *callbacks*."""
        ...

    def build_assistant_message(
        self,
        text: str,
        tool_calls: Sequence[ToolCall],
        thinking_blocks: Sequence[AnyThinkingBlock] | None = None,
    ) -> Message:
        """Rebuild an assistant turn for replay."""
        ...

    def build_tool_result_message(self, results: Sequence[ToolResultInput]) -> Message:
        """Wrap tool outcomes in a single user message."""
        ...

    async def aclose(self) -> None:
        """Release long-lived client resources."""
        ...


def is_cancelled(signal: asyncio.Event | None) -> bool:
    return signal is not None and signal.is_set()


def finalize_stop_reason(stop_reason: str | None, tool_calls: Sequence[Any]) -> str | None:
    """Keep ``stop_reason`` consistent with the tool calls that completed.

    A turn that produced tool calls is a tool-use turn unless it was
    cancelled, whatever the vendor reported.
    """
    if tool_calls and stop_reason not in (STOP_TOOL_USE, STOP_CANCELLED):
        return STOP_TOOL_USE
    return stop_reason


class BaseProvider:
    """Shared adapter behavior: option resolution, builders, terminal dispatch.

    Subclasses implement ``_stream`` and return the finalized result (or
    raise). ``stream`` guarantees exactly one of ``on_complete``/``on_error``.
    """

    family: ClassVar[ProviderFamily]
    api_key_env: ClassVar[str]
    default_model_name: ClassVar[str]
    default_system_prompt: ClassVar[str]

    def __init__(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
        system_prompt: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.default_model = model or self.default_model_name
        self.system_prompt = system_prompt or self.default_system_prompt
        self.api_key = api_key
        #: Request timeout in seconds; None keeps the adapter default.
        self.timeout = timeout
        self._client: Any = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(model={self.default_model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None})"
        )

    def _resolve_api_key(self) -> str | None:
        return self.api_key or os.environ.get(self.api_key_env) or None

    def _resolve_model(self, options: StreamOptions) -> str:
        return options.model or self.default_model

    async def stream(
        self,
        messages: Sequence[Message],
        callbacks: StreamCallbacks,
        options: StreamOptions | None = None,
    ) -> None:
        """Stream one assistant turn.

        Transport and parsing failures never raise; they reach
        ``callbacks.on_error``. Task cancellation still propagates.
        """
        options = options or StreamOptions()
        if not messages:
            callbacks.on_error(
                ConfigurationError(
                    "messages must be a non-empty sequence",
                    hint="Pass at least one user message.",
                )
            )
            return

        api_key = self._resolve_api_key()
        if not api_key:
            callbacks.on_error(
                ConfigurationError(
                    f"{self.api_key_env} environment variable is not set",
                    hint=f"Set {self.api_key_env} or pass api_key=...",
                )
            )
            return

        model = self._resolve_model(options)
        system = options.system_override or self.system_prompt
        log.debug(
            "Streaming %s turn (model=%s, messages=%d, tools=%d, thinking=%s)",
            self.family.value,
            model,
            len(messages),
            len(options.tools or ()),
            options.thinking is not None,
        )

        try:
            result = await self._stream(
                list(messages),
                callbacks,
                options,
                api_key=api_key,
                model=model,
                system=system,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = self._map_error(e)
            log.debug("%s stream failed: %s", self.family.value, error)
            callbacks.on_error(error)
            return

        log.debug(
            "%s stream finished (stop_reason=%s, tool_calls=%d)",
            self.family.value,
            result.stop_reason,
            len(result.tool_calls),
        )
        callbacks.on_complete(result)

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
        raise NotImplementedError

    def _map_error(self, exc: Exception) -> Exception:
        if isinstance(exc, NorthError):
            return exc
        return wrap_provider_error(
            exc,
            provider=self.family.value,
            phase="stream",
            message=f"{self.family.value} stream failed",
        )

    def build_assistant_message(
        self,
        text: str,
        tool_calls: Sequence[ToolCall],
        thinking_blocks: Sequence[AnyThinkingBlock] | None = None,
    ) -> Message:
        """Rebuild an assistant turn: reasoning first, then text, then tool use.

        Vendors require reasoning content to precede what it reasoned about.
        """
        content: list[ContentBlock] = [
            b
            for b in thinking_blocks or ()
            if isinstance(b, (ThinkingBlock, RedactedThinkingBlock))
        ]
        if text:
            content.append(TextBlock(text=text))
        content.extend(
            ToolUseBlock(id=tc.id, name=tc.name, input=tc.input) for tc in tool_calls
        )
        return Message(role="assistant", content=content)

    def build_tool_result_message(self, results: Sequence[ToolResultInput]) -> Message:
        """One user message, one ``tool_result`` block per result, in order."""
        return Message(
            role="user",
            content=[
                ToolResultBlock(
                    tool_use_id=r.tool_call_id,
                    content=r.result,
                    is_error=r.is_error,
                )
                for r in results
            ],
        )

    async def aclose(self) -> None:
        """Close the underlying client, if one was created."""
        client = self._client
        if client is None:
            return
        self._client = None
        close = getattr(client, "aclose", None) or client.close
        await close()


def _ignore(_: Any) -> None:
    return None


async def collect_stream(
    provider: Provider,
    messages: Sequence[Message],
    options: StreamOptions | None = None,
    *,
    on_chunk: Callable[[str], None] | None = None,
    on_tool_call: Callable[[ToolCall], None] | None = None,
    on_thinking: Callable[[str], None] | None = None,
) -> StreamResult:
    """Await one ``stream`` call and return its result.

    The error delivered to ``on_error`` is raised instead, which lets callers
    wrap a turn in ``retry_async``.
    """
    outcome: dict[str, Any] = {}

    callbacks = StreamCallbacks(
        on_chunk=on_chunk or _ignore,
        on_complete=lambda result: outcome.setdefault("result", result),
        on_error=lambda error: outcome.setdefault("error", error),
        on_tool_call=on_tool_call,
        on_thinking=on_thinking,
    )
    await provider.stream(messages, callbacks, options)

    if "error" in outcome:
        raise outcome["error"]
    if "result" not in outcome:
        raise InternalError("Provider stream finished without a terminal callback")
    return outcome["result"]
