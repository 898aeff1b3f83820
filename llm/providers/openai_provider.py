"""OpenAI-compatible chat provider (OpenAI or OpenRouter)."""

from __future__ import annotations

import logging
import os
from typing import Any

from llm.base_llm import BaseLLM

logger = logging.getLogger("planexec.llm.openai")

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenAIProvider(BaseLLM):
    """OpenAI API adapter. Needs the ``openai`` package and an API key."""

    name = "openai"

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        *,
        base_url: str | None = None,
        api_key_env: str = "OPENAI_API_KEY",
        timeout: float = 60.0,
        temperature: float = 0.2,
    ) -> None:
        self.model = model
        self.base_url = base_url
        self.api_key_env = api_key_env
        self.timeout = timeout
        self.temperature = temperature
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise RuntimeError(
                f"{self.api_key_env} not set. Use the mock provider or configure credentials."
            )
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise RuntimeError("`openai` package missing. Install the optional dependency.") from exc
        self._client = OpenAI(api_key=api_key, base_url=self.base_url, timeout=self.timeout)
        return self._client

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        client = self._get_client()
        response = client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=kwargs.get("temperature", self.temperature),
        )
        content = response.choices[0].message.content
        if not content:
            raise RuntimeError("OpenAI returned an empty response.")
        logger.debug("Received %d characters from %s", len(content), self.model)
        return content

    def describe(self) -> str:
        return f"{self.name}:{self.model}"
