from __future__ import annotations

from ..config import Settings
from .base import CompletionProvider
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai_compat import OpenAICompatibleProvider


def build_provider(settings: Settings) -> CompletionProvider:
    """Resolve the configured backend once; the orchestrator never re-dispatches."""
    provider = settings.provider.strip().lower()
    common = {
        "timeout_seconds": settings.provider_timeout_seconds,
        "retries": settings.provider_retries,
    }
    if provider == "openai":
        return OpenAICompatibleProvider(
            backend_name="OpenAI",
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            **common,
        )
    if provider == "mistral":
        return OpenAICompatibleProvider(
            backend_name="Mistral",
            api_key=settings.mistral_api_key,
            model=settings.mistral_model,
            base_url=settings.mistral_base_url,
            **common,
        )
    if provider == "groq":
        return OpenAICompatibleProvider(
            backend_name="Groq",
            api_key=settings.groq_api_key,
            model=settings.groq_model,
            base_url=settings.groq_base_url,
            **common,
        )
    if provider == "ollama":
        return OllamaProvider(base_url=settings.ollama_base_url, model=settings.ollama_model, **common)
    if provider == "gemini":
        return GeminiProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            **common,
        )
    raise ValueError(f"Provider '{settings.provider}' is not supported")
