from __future__ import annotations

from typing import Any

from .base import CompletionProvider, GenerationParams, ProviderError, ProviderErrorKind

_BLOCKING_FINISH_REASONS = {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"}


class GeminiProvider(CompletionProvider):
    backend_name = "Gemini"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout_seconds: int = 45,
        retries: int = 2,
        base_url: str = "https://generativelanguage.googleapis.com",
    ) -> None:
        super().__init__(model=model, timeout_seconds=timeout_seconds, retries=retries)
        self.api_key = (api_key or "").strip()
        if not self.api_key:
            raise ValueError("Gemini API key cannot be empty")
        self.base_url = base_url.rstrip("/")

    def _endpoint(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:generateContent?key={self.api_key}"

    @staticmethod
    def _map_messages(messages: list[dict[str, str]]) -> dict[str, Any]:
        system_lines: list[str] = []
        contents: list[dict[str, Any]] = []

        for message in messages:
            role = str(message.get("role", "")).strip().lower()
            content = str(message.get("content", "")).strip()
            if not content:
                continue
            if role == "system":
                system_lines.append(content)
                continue
            mapped_role = "model" if role == "assistant" else "user"
            contents.append({"role": mapped_role, "parts": [{"text": content}]})

        payload: dict[str, Any] = {"contents": contents}
        if system_lines:
            payload["systemInstruction"] = {
                "parts": [{"text": "\n\n".join(system_lines)}],
            }
        return payload

    def _build_payload(self, messages: list[dict[str, str]], params: GenerationParams) -> dict[str, Any]:
        payload = self._map_messages(messages)
        generation_config: dict[str, Any] = {}
        if params.temperature is not None:
            generation_config["temperature"] = float(params.temperature)
        if params.max_tokens > 0:
            generation_config["maxOutputTokens"] = int(params.max_tokens)
        if generation_config:
            payload["generationConfig"] = generation_config
        return payload

    def _extract_text(self, data: dict[str, Any]) -> str:
        error = data.get("error")
        if isinstance(error, dict):
            raise ProviderError(
                ProviderErrorKind.STATUS,
                "Gemini API returned an error",
                detail=f"{error.get('message')} (status={error.get('status')}, code={error.get('code')})",
                status=error.get("code") if isinstance(error.get("code"), int) else None,
            )

        candidates = data.get("candidates") or []
        if not candidates:
            prompt_feedback = data.get("promptFeedback") or {}
            block_reason = prompt_feedback.get("blockReason")
            if block_reason:
                raise ProviderError(ProviderErrorKind.BLOCKED, "Gemini blocked the prompt", detail=str(block_reason))
            raise ProviderError(ProviderErrorKind.EMPTY, "Gemini returned no candidates")

        first = candidates[0]
        if not isinstance(first, dict):
            raise ProviderError(ProviderErrorKind.MALFORMED, "Gemini candidate is not an object")
        content = first.get("content") or {}
        parts = content.get("parts") or []
        chunks: list[str] = []

        for part in parts:
            text = part.get("text") if isinstance(part, dict) else None
            if isinstance(text, str) and text.strip():
                chunks.append(text.strip())

        joined = "\n".join(chunks).strip()
        if joined:
            return joined

        finish_reason = str(first.get("finishReason") or "unknown")
        if finish_reason.upper() in _BLOCKING_FINISH_REASONS:
            raise ProviderError(ProviderErrorKind.BLOCKED, "Gemini blocked the response", detail=f"finishReason={finish_reason}")
        raise ProviderError(ProviderErrorKind.EMPTY, "Gemini empty response", detail=f"finishReason={finish_reason}")
