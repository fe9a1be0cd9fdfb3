from __future__ import annotations

import asyncio
import logging
import sys

from .channels import PersonaChannels
from .config import Settings
from .conversation import ConversationManager
from .orchestrator import Orchestrator
from .prompts.persona import PersonaPrompts
from .providers import GenerationParams, build_provider

logger = logging.getLogger("persona_relay")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def build_orchestrator(settings: Settings) -> Orchestrator:
    assert settings.io_path is not None
    prompts = PersonaPrompts(settings.prompts_json_path)
    conversations = ConversationManager(
        prompts,
        max_context=settings.max_context,
        max_tokens=settings.max_tokens,
        reset_idle_seconds=settings.reset_idle_seconds,
        discard_failed_user_turn=settings.discard_failed_user_turn,
    )
    logger.info("[relay.init] provider=%s", settings.provider)
    provider = build_provider(settings)
    return Orchestrator(
        provider=provider,
        channels=PersonaChannels(settings.io_path),
        conversations=conversations,
        prompts=prompts,
        params=GenerationParams(max_tokens=settings.max_tokens, temperature=settings.provider_temperature),
        debounce_ms=settings.debounce_ms,
        idle_sweep_seconds=settings.idle_sweep_seconds,
        poll_interval_seconds=settings.poll_interval_seconds,
        verbose_errors=settings.api_errors,
    )


def prepare_orchestrator() -> Orchestrator:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    settings.validate()
    logger.info(
        "[relay.init] io_path=%s max_context=%s reset_idle=%ss",
        settings.io_path,
        settings.max_context,
        settings.reset_idle_seconds,
    )
    return build_orchestrator(settings)


def run(orchestrator: Orchestrator) -> None:
    try:
        asyncio.run(orchestrator.run())
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")


def cli() -> None:
    try:
        orchestrator = prepare_orchestrator()
    except ValueError as exc:
        print(f"Relay config error: {exc}", file=sys.stderr)
        print("Fill RELAY_PROVIDER, IO_PATH and the provider credentials in .env (see .env.example).", file=sys.stderr)
        raise SystemExit(2)
    run(orchestrator)
