from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Awaitable, Callable

from .state import PersonaTable, TriggerStamp

logger = logging.getLogger("persona_relay.debounce")

ProcessCallback = Callable[[str], Awaitable[None]]


class DebounceCoalescer:
    """Collapse bursts of notifications into one attempt per persona.

    Each notification restamps the persona and spawns a delayed task carrying
    that stamp. When the delay elapses the task only fires if its stamp is
    still the latest one; older tasks drop out silently.
    """

    def __init__(
        self,
        table: PersonaTable,
        callback: ProcessCallback,
        *,
        delay_ms: int = 250,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self.table = table
        self.callback = callback
        self.delay_seconds = delay_ms / 1000.0
        self.clock = clock
        self._sequence = itertools.count(1)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def notify(self, persona_id: str) -> TriggerStamp:
        state = self.table[persona_id]
        stamp: TriggerStamp = (self.clock(), next(self._sequence))
        state.pending_trigger = stamp
        task = asyncio.create_task(
            self._fire_later(state.persona_id, stamp),
            name=f"debounce-{state.persona_id}-{stamp[1]}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return stamp

    def is_current(self, persona_id: str, stamp: TriggerStamp) -> bool:
        return self.table[persona_id].pending_trigger == stamp

    async def _fire_later(self, persona_id: str, stamp: TriggerStamp) -> None:
        await asyncio.sleep(self.delay_seconds)
        if not self.is_current(persona_id, stamp):
            logger.debug("[relay.debounce] persona=%s stamp=%s superseded", persona_id, stamp[1])
            return
        try:
            await self.callback(persona_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Debounced attempt failed for persona=%s", persona_id)

    async def close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
