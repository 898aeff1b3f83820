"""LLM provider factory."""

from __future__ import annotations

from typing import Any

from llm.base_llm import BaseLLM
from llm.providers.mock_provider import MockProvider
from llm.providers.openai_provider import OPENROUTER_BASE_URL, OpenAIProvider


def build_llm(config: dict[str, Any]) -> BaseLLM:
    """Build an LLM provider from configuration, defaulting safely to mock."""
    models_cfg = config.get("models", {}).get("llm", {})
    active = models_cfg.get("active_provider", "mock")
    providers = models_cfg.get("providers", {})
    active_cfg = providers.get(active, {})
    provider_type = active_cfg.get("type", active)

    if provider_type == "openai":
        return OpenAIProvider(
            model=active_cfg.get("model", "gpt-4o-mini"),
            base_url=active_cfg.get("base_url"),
            api_key_env=active_cfg.get("api_key_env", "OPENAI_API_KEY"),
            timeout=float(active_cfg.get("timeout", 60)),
        )
    if provider_type == "openrouter":
        provider = OpenAIProvider(
            model=active_cfg.get("model", "anthropic/claude-sonnet-4"),
            base_url=active_cfg.get("base_url", OPENROUTER_BASE_URL),
            api_key_env=active_cfg.get("api_key_env", "OPENROUTER_API_KEY"),
            timeout=float(active_cfg.get("timeout", 60)),
        )
        provider.name = "openrouter"
        return provider
    return MockProvider()
