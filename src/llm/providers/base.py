from __future__ import annotations
import os
from abc import ABC, abstractmethod
from typing import Dict, List


def max_output_tokens() -> int:
    return int(os.getenv("LLM_MAX_TOKENS", "1000"))


def chat_messages(system: str, user: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


class LLMProvider(ABC):
    @abstractmethod
    def generate(self, *, system: str, user: str, temperature: float = 0.2) -> str:
        """
        Return the model's reply as text. JSON replies are parsed by LLMClient.

        Transport errors propagate; the reasoning gateway turns them into fallbacks.
        """
        raise NotImplementedError
