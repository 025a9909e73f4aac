"""Known models, their aliases and the provider family that serves them."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import TYPE_CHECKING

from north.types import ProviderFamily

if TYPE_CHECKING:
    from north.providers.models import ThinkingConfig


@dataclass(frozen=True)
class ModelInfo:
    """A catalog entry."""

    alias: str
    pinned: str
    display: str
    context_limit_tokens: int
    family: ProviderFamily
    #: Extended-thinking budget; None when the model has no thinking mode.
    thinking_budget: int | None = None


_CLAUDE_CONTEXT = 200_000
_GPT_CONTEXT = 1_000_000

MODELS: tuple[ModelInfo, ...] = (
    ModelInfo(
        alias="sonnet-4",
        pinned="claude-sonnet-4-20250514",
        display="Claude Sonnet 4",
        context_limit_tokens=_CLAUDE_CONTEXT,
        family=ProviderFamily.ANTHROPIC,
        thinking_budget=16_000,
    ),
    ModelInfo(
        alias="opus-4",
        pinned="claude-opus-4-20250514",
        display="Claude Opus 4",
        context_limit_tokens=_CLAUDE_CONTEXT,
        family=ProviderFamily.ANTHROPIC,
        thinking_budget=16_000,
    ),
    ModelInfo(
        alias="opus-4-1",
        pinned="claude-opus-4-1-20250805",
        display="Claude Opus 4.1",
        context_limit_tokens=_CLAUDE_CONTEXT,
        family=ProviderFamily.ANTHROPIC,
        thinking_budget=16_000,
    ),
    ModelInfo(
        alias="sonnet-4-5",
        pinned="claude-sonnet-4-5-20250929",
        display="Claude Sonnet 4.5",
        context_limit_tokens=_CLAUDE_CONTEXT,
        family=ProviderFamily.ANTHROPIC,
        thinking_budget=16_000,
    ),
    ModelInfo(
        alias="haiku-4-5",
        pinned="claude-haiku-4-5-20251001",
        display="Claude Haiku 4.5",
        context_limit_tokens=_CLAUDE_CONTEXT,
        family=ProviderFamily.ANTHROPIC,
        thinking_budget=8_000,
    ),
    ModelInfo(
        alias="opus-4-5",
        pinned="claude-opus-4-5-20251101",
        display="Claude Opus 4.5",
        context_limit_tokens=_CLAUDE_CONTEXT,
        family=ProviderFamily.ANTHROPIC,
        thinking_budget=16_000,
    ),
    ModelInfo(
        alias="gpt-5.1",
        pinned="gpt-5.1",
        display="GPT-5.1",
        context_limit_tokens=_GPT_CONTEXT,
        family=ProviderFamily.OPENAI,
    ),
    ModelInfo(
        alias="gpt-5.1-codex",
        pinned="gpt-5.1-codex",
        display="GPT-5.1 Codex",
        context_limit_tokens=_GPT_CONTEXT,
        family=ProviderFamily.OPENAI,
    ),
    ModelInfo(
        alias="gpt-5.1-codex-mini",
        pinned="gpt-5.1-codex-mini",
        display="GPT-5.1 Codex Mini",
        context_limit_tokens=_GPT_CONTEXT,
        family=ProviderFamily.OPENAI,
    ),
    ModelInfo(
        alias="gpt-5.1-codex-max",
        pinned="gpt-5.1-codex-max",
        display="GPT-5.1 Codex Max",
        context_limit_tokens=_GPT_CONTEXT,
        family=ProviderFamily.OPENAI,
    ),
    ModelInfo(
        alias="gpt-5",
        pinned="gpt-5",
        display="GPT-5",
        context_limit_tokens=_GPT_CONTEXT,
        family=ProviderFamily.OPENAI,
    ),
    ModelInfo(
        alias="gpt-5-mini",
        pinned="gpt-5-mini",
        display="GPT-5 Mini",
        context_limit_tokens=_GPT_CONTEXT,
        family=ProviderFamily.OPENAI,
    ),
    ModelInfo(
        alias="gpt-5-nano",
        pinned="gpt-5-nano",
        display="GPT-5 Nano",
        context_limit_tokens=_GPT_CONTEXT,
        family=ProviderFamily.OPENAI,
    ),
)


DEFAULT_MODEL = MODELS[0].pinned
DEFAULT_CONTEXT_LIMIT = _CLAUDE_CONTEXT

_OPENAI_REASONING_PREFIX = re.compile(r"^o\d")


def _lookup(model_id: str) -> ModelInfo | None:
    for model in MODELS:
        if model.pinned == model_id:
            return model
    return None


def resolve_model_id(text: str) -> str | None:
    """Resolve user input (pinned id, alias or bare slug) to a model id.

    Returns None when nothing matches and the input does not look like a
    model id any family would accept.
    """
    normalized = text.lower().strip()
    if not normalized:
        return None

    for model in MODELS:
        if normalized in (model.pinned.lower(), model.alias.lower()):
            return model.pinned
        if model.alias.replace("-", "") == normalized.replace("-", ""):
            return model.pinned

    if normalized.startswith(("claude-", "gpt-")) or "/" in normalized:
        return text.strip()
    return None


def get_model_provider(model_id: str) -> ProviderFamily:
    """Map a model id to its provider family.

    Unknown ids fall back to Anthropic so new model names work without a
    catalog change.
    """
    model = _lookup(model_id)
    if model is not None:
        return model.family
    if model_id.startswith("gpt-") or _OPENAI_REASONING_PREFIX.match(model_id):
        return ProviderFamily.OPENAI
    if "/" in model_id:
        return ProviderFamily.OPENROUTER
    return ProviderFamily.ANTHROPIC


def get_model_display(model_id: str) -> str:
    model = _lookup(model_id)
    return model.display if model is not None else model_id


def get_model_aliases() -> list[str]:
    return [m.alias for m in MODELS]


def get_model_context_limit(model_id: str) -> int:
    model = _lookup(model_id)
    return model.context_limit_tokens if model is not None else DEFAULT_CONTEXT_LIMIT


def get_model_thinking_config(model_id: str) -> ThinkingConfig | None:
    """Return the thinking request for *model_id*, or None if unsupported."""
    from north.providers.models import ThinkingConfig

    model = _lookup(model_id)
    if model is None or model.thinking_budget is None:
        return None
    return ThinkingConfig(budget_tokens=model.thinking_budget)
