"""Base LLM interface used by the planning client."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseLLM(ABC):
    """Abstract chat-completion provider.

    Providers receive OpenAI-style ``{"role", "content"}`` messages and return
    the assistant's reply text. Failures are raised, not returned as text.
    """

    name = "base"

    @abstractmethod
    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        """Return assistant response text for a message list."""

    def describe(self) -> str:
        return self.name
