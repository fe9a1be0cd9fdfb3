from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator

from .state import PersonaTable

logger = logging.getLogger("persona_relay.gate")


class ProcessingGate:
    """Per-persona busy flag. Acquire/release never await, so each is atomic on the loop."""

    def __init__(self, table: PersonaTable) -> None:
        self.table = table

    def try_acquire(self, persona_id: str) -> bool:
        state = self.table[persona_id]
        if state.busy:
            return False
        state.busy = True
        return True

    def release(self, persona_id: str) -> None:
        self.table[persona_id].busy = False

    def is_busy(self, persona_id: str) -> bool:
        return self.table[persona_id].busy

    @contextlib.asynccontextmanager
    async def hold(self, persona_id: str) -> AsyncIterator[bool]:
        acquired = self.try_acquire(persona_id)
        if not acquired:
            logger.debug("[relay.gate] persona=%s already working, skipping", persona_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(persona_id)
