import json
import logging
import os
import re
from typing import Any, Optional

from llm.providers.base import LLMProvider

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class LLMResponseError(RuntimeError):
    """The model answered, but not with the JSON shape we asked for."""


def provider_from_env(name: Optional[str] = None) -> LLMProvider:
    name = (name or os.getenv("LLM_PROVIDER", "openai")).strip().lower()
    if name == "openai":
        from llm.providers.openai_provider import OpenAIProvider

        return OpenAIProvider()
    if name == "ollama":
        from llm.providers.ollama_provider import OllamaProvider

        return OllamaProvider()
    if name == "mock":
        from llm.providers.mock_provider import MockProvider

        return MockProvider()
    raise ValueError(f"Unknown LLM_PROVIDER '{name}'")


def extract_json(text: str) -> Any:
    """Parse JSON from model output that may carry prose or code fences around it."""
    candidates = [text.strip()]
    fenced = _FENCE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())

    spans = []
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start = text.find(open_ch)
        end = text.rfind(close_ch)
        if start != -1 and end > start:
            spans.append((start, end))
    # whichever bracket opens first is the outermost value
    for start, end in sorted(spans):
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
    raise LLMResponseError(f"Model output is not JSON: {text[:80]!r}")


class LLMClient:
    """Thin client over a chat-completion provider.

    The provider is created lazily so a missing API key only surfaces on the
    first call, where callers already handle remote failures.
    """

    def __init__(self, provider: Optional[LLMProvider] = None, provider_name: Optional[str] = None):
        self._provider = provider
        self._provider_name = provider_name

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = provider_from_env(self._provider_name)
        return self._provider

    def complete(self, system: str, user: str, temperature: float = 0.2) -> str:
        return self.provider.generate(system=system, user=user, temperature=temperature)

    def complete_json(self, system: str, user: str, temperature: float = 0.2) -> Any:
        text = self.complete(system, user, temperature=temperature)
        return extract_json(text)
