from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Iterable

from .channels import ChannelError, PersonaChannels
from .conversation import ConversationManager
from .debounce import DebounceCoalescer
from .detector import ChangeDetector, ChannelEvent
from .gate import ProcessingGate
from .providers.base import CompletionProvider, GenerationParams, ProviderError
from .prompts.persona import PersonaPrompts
from .roster import SURVIVOR_NAMES, display_name
from .state import PersonaState, PersonaTable, roster_ids
from .sweeper import IdleSweeper

logger = logging.getLogger("persona_relay")


class Orchestrator:
    """End-to-end pipeline: detect -> debounce -> gate -> complete -> reply.

    The orchestrator is the only owner of the persona table; the gate,
    debouncer, sweeper and conversation manager all act on that same table.
    """

    def __init__(
        self,
        *,
        provider: CompletionProvider,
        channels: PersonaChannels,
        conversations: ConversationManager,
        prompts: PersonaPrompts,
        params: GenerationParams,
        roster: Iterable[str] = SURVIVOR_NAMES,
        debounce_ms: int = 250,
        idle_sweep_seconds: float = 5.0,
        poll_interval_seconds: float = 0.1,
        verbose_errors: bool = False,
    ) -> None:
        self.provider = provider
        self.channels = channels
        self.conversations = conversations
        self.prompts = prompts
        self.params = params
        self.verbose_errors = verbose_errors

        self.table = PersonaTable()
        for persona_id in roster_ids(roster):
            record = conversations.create_record(persona_id)
            self.table.add(PersonaState(persona_id=persona_id, conversation=record))
            logger.info(
                "[relay.init] persona=%s prompt=%s...",
                display_name(persona_id),
                record.turns[0].content[:100],
            )

        self.gate = ProcessingGate(self.table)
        self.debouncer = DebounceCoalescer(self.table, self.process, delay_ms=debounce_ms)
        self.sweeper = IdleSweeper(self.table, conversations, interval_seconds=idle_sweep_seconds)
        self.detector = ChangeDetector(
            channels,
            self.table.persona_ids,
            self.on_channel_event,
            poll_interval=poll_interval_seconds,
        )
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []

    def on_channel_event(self, persona_id: str, event: ChannelEvent) -> None:
        logger.debug("[relay.detect] persona=%s event=%s", persona_id, event.value)
        self.debouncer.notify(persona_id)

    async def process(self, persona_id: str) -> None:
        async with self.gate.hold(persona_id) as acquired:
            if not acquired:
                return
            try:
                await self._run_attempt(self.table[persona_id])
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Unhandled error while processing persona=%s", persona_id)

    async def _run_attempt(self, state: PersonaState) -> None:
        persona_id = state.persona_id
        name = display_name(persona_id)
        try:
            text = self.channels.read_and_clear(persona_id)
        except ChannelError as exc:
            logger.warning("[relay.io] persona=%s skipped: %s", name, exc)
            return
        if not text:
            return

        logger.info("<- User (%s): %s", name, text)
        self.conversations.touch(state.conversation)
        reply = await self._complete(state, text)
        logger.info("-> Assistant (%s): %s", name, reply)

        try:
            path = self.channels.write_reply(persona_id, reply)
        except OSError as exc:
            logger.error("[relay.io] persona=%s output write failed: %s", name, exc)
            return
        logger.debug("[relay.io] persona=%s wrote %s", name, path)

    async def _complete(self, state: PersonaState, text: str) -> str:
        record = state.conversation
        messages = self.conversations.build_request(record, text)
        try:
            reply = await self.provider.complete(messages, self.params)
        except asyncio.CancelledError:
            raise
        except ProviderError as exc:
            logger.warning(
                "[relay.llm] persona=%s kind=%s status=%s error=%s",
                state.persona_id,
                exc.kind.value,
                exc.status,
                exc,
            )
            return self._fallback(state, exc, text)
        except Exception as exc:
            logger.exception("[relay.llm] persona=%s unexpected provider failure", state.persona_id)
            return self._fallback(state, exc, text)

        self.conversations.commit_exchange(record, text, reply)
        return reply

    def _fallback(self, state: PersonaState, error: Exception, text: str) -> str:
        if self.conversations.handle_failed_completion(state.conversation, text):
            logger.info("[relay.llm] persona=%s dropped failed user turn", state.persona_id)
        return self.prompts.fallback_reply(state.persona_id, error, verbose=self.verbose_errors)

    def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        await self.provider.start()
        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(self.detector.run(), name="change-detector"),
            asyncio.create_task(self.sweeper.run(), name="idle-sweeper"),
        ]
        logger.info("[relay.run] waiting for input file changes (Ctrl+C to exit)")
        try:
            await self._stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        await self.debouncer.close()
        await self.provider.close()
