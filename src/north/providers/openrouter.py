"""OpenRouter provider: the Responses API wire protocol behind OpenRouter."""

from __future__ import annotations

from typing import ClassVar

from north.prompts import OPENROUTER_SYSTEM_PROMPT
from north.providers.openai import OpenAIProvider
from north.types import ProviderFamily

OPENROUTER_RESPONSES_URL = "https://openrouter.ai/api/v1/responses"
OPENROUTER_REFERER = "https://north-cli.dev"
OPENROUTER_TITLE = "North"

_THINKING_SUFFIX = "-thinking"


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter provider; model ids are ``vendor/model`` slugs."""

    family = ProviderFamily.OPENROUTER
    api_key_env = "OPENROUTER_API_KEY"
    default_model_name = "openai/gpt-5.1"
    default_system_prompt = OPENROUTER_SYSTEM_PROMPT

    url: ClassVar[str] = OPENROUTER_RESPONSES_URL
    label: ClassVar[str] = "OpenRouter"

    def _headers(self, api_key: str) -> dict[str, str]:
        headers = super()._headers(api_key)
        headers["HTTP-Referer"] = OPENROUTER_REFERER
        headers["X-Title"] = OPENROUTER_TITLE
        return headers

    def _wire_model(self, model: str) -> str:
        # Thinking variants are a catalog concept only.
        if model.endswith(_THINKING_SUFFIX):
            return model[: -len(_THINKING_SUFFIX)]
        return model
