from __future__ import annotations

from typing import Any

from .base import CompletionProvider, GenerationParams, ProviderError, ProviderErrorKind


class OpenAICompatibleProvider(CompletionProvider):
    """`/v1/chat/completions` backends: OpenAI itself, Mistral and Groq."""

    def __init__(
        self,
        *,
        backend_name: str,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: int = 45,
        retries: int = 2,
    ) -> None:
        self.backend_name = backend_name
        super().__init__(model=model, timeout_seconds=timeout_seconds, retries=retries)
        self.api_key = (api_key or "").strip()
        if not self.api_key:
            raise ValueError(f"{backend_name} API key cannot be empty")
        self.base_url = base_url.strip().rstrip("/")

    def _endpoint(self) -> str:
        return f"{self.base_url}/v1/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.api_key}"}

    def _build_payload(self, messages: list[dict[str, str]], params: GenerationParams) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": str(m.get("role", "user")).lower(), "content": str(m.get("content", ""))}
                for m in messages
            ],
        }
        if params.max_tokens > 0:
            payload["max_tokens"] = int(params.max_tokens)
        if params.temperature is not None:
            payload["temperature"] = float(params.temperature)
        return payload

    def _extract_text(self, data: dict[str, Any]) -> str:
        error = data.get("error")
        if isinstance(error, dict):
            raise ProviderError(
                ProviderErrorKind.STATUS,
                f"{self.backend_name} API returned an error",
                detail=f"{error.get('message')} (type={error.get('type')}, code={error.get('code')})",
            )

        choices = data.get("choices")
        if not isinstance(choices, list):
            raise ProviderError(ProviderErrorKind.MALFORMED, f"{self.backend_name} response has no choices list")
        if not choices:
            raise ProviderError(ProviderErrorKind.EMPTY, f"{self.backend_name} returned no choices")

        first = choices[0] if isinstance(choices[0], dict) else {}
        message = first.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        reply = content.strip() if isinstance(content, str) else ""
        if reply:
            return reply

        finish_reason = str(first.get("finish_reason") or "unknown")
        if finish_reason.lower() == "content_filter":
            raise ProviderError(
                ProviderErrorKind.BLOCKED,
                f"{self.backend_name} blocked the response",
                detail=f"finish_reason={finish_reason}",
            )
        raise ProviderError(
            ProviderErrorKind.EMPTY,
            f"{self.backend_name} response content was empty",
            detail=f"finish_reason={finish_reason}",
        )
