from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()

SUPPORTED_PROVIDERS = ("openai", "ollama", "gemini", "mistral", "groq")

DEFAULT_MAX_TOKENS = 60
DEFAULT_MAX_CONTEXT = 5
DEFAULT_RESET_IDLE_SECONDS = 120


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_positive_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    value = _env_int(name, default, aliases)
    return value if value > 0 else default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _env_path(name: str, default: str) -> Path | None:
    value = _env_str(name, default)
    return Path(value).expanduser() if value else None


@dataclass(slots=True)
class Settings:
    provider: str

    openai_api_key: str
    openai_model: str
    openai_base_url: str

    ollama_base_url: str
    ollama_model: str

    gemini_api_key: str
    gemini_model: str
    gemini_base_url: str

    mistral_api_key: str
    mistral_model: str
    mistral_base_url: str

    groq_api_key: str
    groq_model: str
    groq_base_url: str

    provider_timeout_seconds: int
    provider_retries: int
    provider_temperature: float

    io_path: Path | None
    max_tokens: int
    max_context: int
    reset_idle_seconds: int
    api_errors: bool
    discard_failed_user_turn: bool

    debounce_ms: int
    idle_sweep_seconds: float
    poll_interval_seconds: float
    prompts_json_path: Path | None
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            provider=_env_str("RELAY_PROVIDER", "openai", aliases=("PROVIDER",)).lower(),
            openai_api_key=_env_str("OPENAI_API_KEY", "", aliases=("API_KEY",)),
            openai_model=_env_str("OPENAI_MODEL", "gpt-3.5-turbo"),
            openai_base_url=_env_str("OPENAI_BASE_URL", "https://api.openai.com"),
            ollama_base_url=_env_str("OLLAMA_BASE_URL", "http://localhost:11434"),
            ollama_model=_env_str("OLLAMA_MODEL", "llama3"),
            gemini_api_key=_env_str("GEMINI_API_KEY", ""),
            gemini_model=_env_str("GEMINI_MODEL", "gemini-1.5-flash-latest"),
            gemini_base_url=_env_str("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"),
            mistral_api_key=_env_str("MISTRAL_API_KEY", ""),
            mistral_model=_env_str("MISTRAL_MODEL", "mistral-large-latest"),
            mistral_base_url=_env_str("MISTRAL_BASE_URL", "https://api.mistral.ai"),
            groq_api_key=_env_str("GROQ_API_KEY", ""),
            groq_model=_env_str("GROQ_MODEL", "llama3-8b-8192"),
            groq_base_url=_env_str("GROQ_BASE_URL", "https://api.groq.com/openai"),
            provider_timeout_seconds=_env_int("PROVIDER_TIMEOUT_SECONDS", 45),
            provider_retries=_env_int("PROVIDER_RETRIES", 2),
            provider_temperature=_env_float("PROVIDER_TEMPERATURE", 0.7),
            io_path=_env_path("IO_PATH", ""),
            max_tokens=_env_positive_int("MAX_TOKENS", DEFAULT_MAX_TOKENS),
            max_context=_env_positive_int("MAX_CONTEXT", DEFAULT_MAX_CONTEXT),
            reset_idle_seconds=_env_positive_int("RESET_IDLE_SECONDS", DEFAULT_RESET_IDLE_SECONDS),
            api_errors=_env_bool("API_ERRORS", False),
            discard_failed_user_turn=_env_bool("DISCARD_FAILED_USER_TURN", False),
            debounce_ms=_env_int("DEBOUNCE_MS", 250),
            idle_sweep_seconds=_env_float("IDLE_SWEEP_SECONDS", 5.0),
            poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", 0.1),
            prompts_json_path=_env_path("PROMPTS_JSON_PATH", "./prompts.json"),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        if self.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"RELAY_PROVIDER '{self.provider}' is not supported (expected one of: {', '.join(SUPPORTED_PROVIDERS)})"
            )

        if self.provider == "openai" and not self.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required for provider 'openai'")
        if self.provider == "openai" and not self.openai_model:
            raise ValueError("OPENAI_MODEL cannot be empty")
        if self.provider == "ollama":
            if not self.ollama_base_url:
                raise ValueError("OLLAMA_BASE_URL is required for provider 'ollama'")
            if not self.ollama_model:
                raise ValueError("OLLAMA_MODEL is required for provider 'ollama'")
        if self.provider == "gemini":
            if not self.gemini_api_key:
                raise ValueError("GEMINI_API_KEY is required for provider 'gemini'")
            if not self.gemini_model:
                raise ValueError("GEMINI_MODEL is required for provider 'gemini'")
        if self.provider == "mistral":
            if not self.mistral_api_key:
                raise ValueError("MISTRAL_API_KEY is required for provider 'mistral'")
            if not self.mistral_model:
                raise ValueError("MISTRAL_MODEL is required for provider 'mistral'")
        if self.provider == "groq":
            if not self.groq_api_key:
                raise ValueError("GROQ_API_KEY is required for provider 'groq'")
            if not self.groq_model:
                raise ValueError("GROQ_MODEL is required for provider 'groq'")

        if self.io_path is None:
            raise ValueError("IO_PATH is required")
        if not self.io_path.is_dir():
            raise ValueError(f"IO_PATH directory does not exist: {self.io_path}")

        if self.provider_timeout_seconds < 5:
            raise ValueError("PROVIDER_TIMEOUT_SECONDS must be >= 5")
        if self.provider_retries < 1:
            raise ValueError("PROVIDER_RETRIES must be >= 1")
        if self.debounce_ms < 0:
            raise ValueError("DEBOUNCE_MS must be >= 0")
        if self.idle_sweep_seconds <= 0:
            raise ValueError("IDLE_SWEEP_SECONDS must be > 0")
        if self.poll_interval_seconds <= 0:
            raise ValueError("POLL_INTERVAL_SECONDS must be > 0")
