from __future__ import annotations

import re
from typing import Any

from .base import CompletionProvider, GenerationParams, ProviderError, ProviderErrorKind


class OllamaProvider(CompletionProvider):
    backend_name = "Ollama"

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        timeout_seconds: int = 45,
        retries: int = 2,
    ) -> None:
        super().__init__(model=model, timeout_seconds=timeout_seconds, retries=retries)
        self.base_url = (base_url or "http://localhost:11434").strip().rstrip("/")

    def _endpoint(self) -> str:
        return f"{self.base_url}/api/chat"

    @staticmethod
    def _sanitize_messages(messages: list[dict[str, str]]) -> list[dict[str, str]]:
        mapped_messages: list[dict[str, str]] = []
        for msg in messages:
            role = str(msg.get("role", "")).strip().lower() or "user"
            if role not in {"system", "user", "assistant"}:
                role = "user"
            content = str(msg.get("content", "")).strip()
            if not content:
                continue
            mapped_messages.append({"role": role, "content": content})
        return mapped_messages

    @staticmethod
    def _strip_reasoning_blocks(text: str) -> str:
        # Reasoning models may emit hidden-thought tags before the reply.
        return re.sub(r"<think>.*?</think>\s*", "", str(text or ""), flags=re.IGNORECASE | re.DOTALL).strip()

    def _build_payload(self, messages: list[dict[str, str]], params: GenerationParams) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if params.temperature is not None:
            options["temperature"] = float(params.temperature)
        if params.max_tokens > 0:
            options["num_predict"] = int(params.max_tokens)

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._sanitize_messages(messages),
            "stream": False,
        }
        if options:
            payload["options"] = options
        return payload

    def _extract_text(self, data: dict[str, Any]) -> str:
        error = data.get("error")
        if isinstance(error, str) and error.strip():
            raise ProviderError(ProviderErrorKind.STATUS, "Ollama returned an error", detail=error.strip())

        message = data.get("message")
        raw = ""
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            raw = message["content"]
        elif isinstance(data.get("response"), str):
            raw = data["response"]
        elif message is not None:
            raise ProviderError(ProviderErrorKind.MALFORMED, "Ollama message is not an object")

        cleaned = self._strip_reasoning_blocks(raw)
        if not cleaned:
            raise ProviderError(
                ProviderErrorKind.EMPTY,
                "Ollama returned empty message content",
                detail=f"done_reason={data.get('done_reason') or 'unknown'}",
            )
        return cleaned
