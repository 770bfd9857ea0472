from __future__ import annotations
import os
import httpx
from .base import LLMProvider, chat_messages, max_output_tokens


class OllamaProvider(LLMProvider):
    """Local models served by Ollama's /api/chat."""

    def __init__(self, timeout_s: float = 60.0):
        self.model = os.getenv("OLLAMA_MODEL", "llama3.1").strip()
        self.endpoint = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434").strip().rstrip("/") + "/api/chat"
        self.max_tokens = max_output_tokens()
        self.timeout_s = timeout_s

    def generate(self, *, system: str, user: str, temperature: float = 0.2) -> str:
        payload = {
            "model": self.model,
            "stream": False,
            "messages": chat_messages(system, user),
            "options": {"temperature": temperature, "num_predict": self.max_tokens},
        }
        # JSON prompts get constrained decoding
        if "JSON" in system:
            payload["format"] = "json"

        with httpx.Client(timeout=self.timeout_s) as client:
            r = client.post(self.endpoint, json=payload)
            r.raise_for_status()
            message = r.json().get("message") or {}

        content = message.get("content", "")
        if not content.strip():
            raise RuntimeError(f"{self.model} returned an empty reply")
        return content
