from __future__ import annotations
import logging
import os
import httpx
from .base import LLMProvider, chat_messages, max_output_tokens

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """Chat-completions API, or any server that speaks the same protocol."""

    def __init__(self, timeout_s: float = 30.0):
        self.api_key = os.getenv("OPENAI_API_KEY", "").strip()
        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY is missing")
        self.model = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip()
        self.endpoint = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").strip().rstrip("/") + "/chat/completions"
        self.max_tokens = max_output_tokens()
        self.timeout_s = timeout_s

    def generate(self, *, system: str, user: str, temperature: float = 0.2) -> str:
        with httpx.Client(timeout=self.timeout_s) as client:
            r = client.post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": chat_messages(system, user),
                    "temperature": temperature,
                    "max_tokens": self.max_tokens,
                },
            )
            r.raise_for_status()
            choices = r.json().get("choices") or []

        content = choices[0]["message"].get("content") if choices else None
        if not content:
            raise RuntimeError(f"{self.model} returned an empty completion")
        if choices[0].get("finish_reason") == "length":
            logger.warning(f"{self.model} reply truncated at {self.max_tokens} tokens")
        return content
