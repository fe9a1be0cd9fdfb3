from __future__ import annotations

import asyncio
import logging

from .conversation import ConversationManager
from .state import PersonaTable

logger = logging.getLogger("persona_relay.sweeper")


class IdleSweeper:
    def __init__(self, table: PersonaTable, conversations: ConversationManager, *, interval_seconds: float = 5.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.table = table
        self.conversations = conversations
        self.interval_seconds = float(interval_seconds)

    def sweep_once(self) -> list[str]:
        reset: list[str] = []
        for state in self.table:
            if state.busy:
                continue
            try:
                if self.conversations.reset_if_idle(state):
                    reset.append(state.persona_id)
            except Exception:
                logger.exception("Idle check failed for persona=%s", state.persona_id)
        return reset

    async def run(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Idle sweeper error")
