"""Configuration: frozen Config that resolves model, family and credentials."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from north.catalog import (
    DEFAULT_MODEL,
    get_model_provider,
    get_model_thinking_config,
    resolve_model_id,
)
from north.errors import ConfigurationError
from north.retry import RetryConfig
from north.types import ProviderFamily

if TYPE_CHECKING:
    import asyncio

    from north.providers.base import Provider
    from north.providers.models import StreamOptions, ThinkingConfig, ToolSchema

load_dotenv()

_API_KEY_ENV_VARS: dict[ProviderFamily, str] = {
    ProviderFamily.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderFamily.OPENAI: "OPENAI_API_KEY",
    ProviderFamily.OPENROUTER: "OPENROUTER_API_KEY",
}


@dataclass(frozen=True)
class Config:
    """Immutable configuration for one North session.

    The provider family follows from the model id. API keys are
    auto-resolved from the family's standard environment variable.

    Example:
        config = Config(model="gpt-5.1")
        # API key is automatically resolved from OPENAI_API_KEY
    """

    model: str = DEFAULT_MODEL
    #: Auto-resolved from the family's env var when *None*.
    api_key: str | None = None
    #: Request extended thinking when the model supports it.
    thinking: bool = False
    retry: RetryConfig = field(default_factory=RetryConfig)
    request_timeout_s: float = 600.0

    def __post_init__(self) -> None:
        """Auto-resolve API key and validate configuration."""
        if not self.model or not self.model.strip():
            raise ConfigurationError(
                "model must be a non-empty string",
                hint="Pass a catalog alias or a full model id, e.g. 'sonnet-4'.",
            )
        if self.request_timeout_s <= 0:
            raise ConfigurationError(
                f"request_timeout_s must be > 0, got {self.request_timeout_s}",
                hint="This bounds how long one streamed turn may take, in seconds.",
            )

        # Aliases resolve to pinned ids; unknown ids pass through untouched.
        object.__setattr__(self, "model", resolve_model_id(self.model) or self.model.strip())

        env_var = _API_KEY_ENV_VARS[self.family]
        if self.api_key is None:
            object.__setattr__(self, "api_key", os.environ.get(env_var))

        if not self.api_key:
            raise ConfigurationError(
                f"API key required for {self.family.value}",
                hint=f"Set {env_var} environment variable or pass api_key=...",
            )

    @property
    def family(self) -> ProviderFamily:
        return get_model_provider(self.model)

    @property
    def thinking_config(self) -> ThinkingConfig | None:
        """Thinking request for this model, or None when disabled/unsupported."""
        if not self.thinking:
            return None
        return get_model_thinking_config(self.model)

    def create_provider(self) -> Provider:
        """Build the adapter for this configuration."""
        from north.providers import create_provider_by_type

        return create_provider_by_type(
            self.family,
            self.model,
            api_key=self.api_key,
            timeout=self.request_timeout_s,
        )

    def stream_options(
        self,
        *,
        tools: list[ToolSchema] | None = None,
        signal: asyncio.Event | None = None,
    ) -> StreamOptions:
        """Per-call options carrying this config's model and thinking settings."""
        from north.providers.models import StreamOptions

        return StreamOptions(
            tools=tools,
            model=self.model,
            signal=signal,
            thinking=self.thinking_config,
        )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(model={self.model!r}, family={self.family.value!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, thinking={self.thinking})"
        )

    __repr__ = __str__
