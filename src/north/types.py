"""Small shared types with no internal dependencies."""

from __future__ import annotations

from enum import Enum


class ProviderFamily(str, Enum):
    """Closed set of vendor protocol families."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OPENROUTER = "openrouter"
