# maps a user-facing model id onto the adapter that serves it and its premium flag.
# matching is substring based, so new model names from a known provider route
# without a code change.

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from chat_gateway.core import config
from chat_gateway.providers.base import ProviderAdapter
from chat_gateway.providers.claude import ClaudeAdapter
from chat_gateway.providers.deepseek import DeepseekAdapter
from chat_gateway.providers.gemini import GeminiAdapter
from chat_gateway.providers.grok import GrokAdapter
from chat_gateway.providers.openai import OpenAICompatibleAdapter
from chat_gateway.schemas.chat import ModelInfo

logger = logging.getLogger(__name__)

PREMIUM_MARKERS = ("gpt-4", "claude", "grok", "deepseek")

# priority order: first marker contained in the id wins
PROVIDER_MARKERS = (
    ("gemini", "gemini"),
    ("claude", "claude"),
    ("grok", "grok"),
    ("deepseek", "deepseek"),
)
DEFAULT_PROVIDER = "openai"


@dataclass(frozen=True)
class Route:
    adapter: ProviderAdapter
    model: str
    is_premium: bool

    @property
    def provider(self) -> str:
        return self.adapter.name


def build_adapters() -> Dict[str, ProviderAdapter]:
    adapters: List[ProviderAdapter] = [
        OpenAICompatibleAdapter(),
        GeminiAdapter(),
        ClaudeAdapter(),
        GrokAdapter(),
        DeepseekAdapter(),
    ]
    return {a.name: a for a in adapters}


def is_premium(model_id: str) -> bool:
    lowered = model_id.lower()
    return any(marker in lowered for marker in PREMIUM_MARKERS)


def provider_for(model_id: str) -> str:
    lowered = model_id.lower()
    for marker, provider in PROVIDER_MARKERS:
        if marker in lowered:
            return provider
    return DEFAULT_PROVIDER


class ModelRouter:
    def __init__(self, adapters: Dict[str, ProviderAdapter], *, default_model: Optional[str] = None) -> None:
        if DEFAULT_PROVIDER not in adapters:
            raise ValueError(f"the {DEFAULT_PROVIDER!r} adapter is required as the fallback route")
        self.adapters = adapters
        self.default_model = default_model or config.DEFAULT_MODEL

    def classify(self, model_id: Optional[str]) -> Route:
        model = (model_id or "").strip() or self.default_model
        provider = provider_for(model)
        adapter = self.adapters.get(provider)
        if adapter is None:
            logger.warning("no adapter registered for %s, routing %s to %s", provider, model, DEFAULT_PROVIDER)
            adapter = self.adapters[DEFAULT_PROVIDER]
        return Route(adapter=adapter, model=model, is_premium=is_premium(model))

    def get(self, name: str) -> Optional[ProviderAdapter]:
        return self.adapters.get(name)

    def catalogue(self) -> List[ModelInfo]:
        models: List[ModelInfo] = []
        for adapter in self.adapters.values():
            for alias in adapter.model_aliases:
                models.append(ModelInfo(
                    id=alias,
                    provider=adapter.name,
                    premium=is_premium(alias),
                    configured=adapter.is_configured(),
                ))
        return models
