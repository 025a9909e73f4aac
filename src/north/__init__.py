"""North: streaming LLM provider layer for a terminal coding assistant.

Public API:
    - create_provider_for_model(): Adapter for a model id
    - create_provider_by_type(): Adapter for a provider family
    - collect_stream(): Await one streamed turn as a result
    - retry_async(): Retry a turn on transient failures
    - Config: Configuration dataclass
"""

from __future__ import annotations

import logging

from north.catalog import (
    DEFAULT_MODEL,
    get_model_provider,
    resolve_model_id,
)
from north.config import Config
from north.errors import (
    APIError,
    ConfigurationError,
    IncompleteToolCallError,
    InternalError,
    NorthError,
    ProviderStreamError,
    RateLimitError,
)
from north.providers import (
    Provider,
    collect_stream,
    create_provider_by_type,
    create_provider_for_model,
)
from north.providers.models import (
    Message,
    StreamCallbacks,
    StreamOptions,
    StreamResult,
    ToolCall,
    ToolResultInput,
    ToolSchema,
)
from north.retry import RetryConfig, compute_backoff, is_retryable, retry_async
from north.types import ProviderFamily

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("north-agent")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("north").addHandler(logging.NullHandler())

__all__ = [
    "DEFAULT_MODEL",
    "APIError",
    "Config",
    "ConfigurationError",
    "IncompleteToolCallError",
    "InternalError",
    "Message",
    "NorthError",
    "Provider",
    "ProviderFamily",
    "ProviderStreamError",
    "RateLimitError",
    "RetryConfig",
    "StreamCallbacks",
    "StreamOptions",
    "StreamResult",
    "ToolCall",
    "ToolResultInput",
    "ToolSchema",
    "collect_stream",
    "compute_backoff",
    "create_provider_by_type",
    "create_provider_for_model",
    "get_model_provider",
    "is_retryable",
    "resolve_model_id",
    "retry_async",
]
