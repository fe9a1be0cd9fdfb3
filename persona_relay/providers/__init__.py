from .base import CompletionProvider, GenerationParams, ProviderError, ProviderErrorKind
from .factory import build_provider
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai_compat import OpenAICompatibleProvider

__all__ = [
    "CompletionProvider",
    "GeminiProvider",
    "GenerationParams",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "ProviderError",
    "ProviderErrorKind",
    "build_provider",
]
