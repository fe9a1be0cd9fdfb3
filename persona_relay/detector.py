from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from .channels import PersonaChannels

logger = logging.getLogger("persona_relay.detector")


class ChannelEvent(str, enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"


EventCallback = Callable[[str, ChannelEvent], None]
Signature = tuple[int, int]


@dataclass(slots=True)
class ChannelWatch:
    persona_id: str
    path: Path
    signature: Signature | None = None


def _signature(path: Path) -> Signature | None:
    try:
        stat = path.stat()
    except FileNotFoundError:
        return None
    return (stat.st_mtime_ns, stat.st_size)


class ChangeDetector:
    """Polls each persona's input file and reports create/modify notifications.

    Files already present when watching starts are recorded silently.
    Deletions are not reported; a later re-creation emits ``CREATED``.
    """

    def __init__(
        self,
        channels: PersonaChannels,
        persona_ids: Iterable[str],
        callback: EventCallback,
        *,
        poll_interval: float = 0.1,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self.channels = channels
        self.callback = callback
        self.poll_interval = float(poll_interval)
        self.watches = [ChannelWatch(persona_id, channels.input_path(persona_id)) for persona_id in persona_ids]
        self._primed = False

    def prime(self) -> None:
        for watch in self.watches:
            watch.signature = _signature(watch.path)
        self._primed = True
        logger.info("[relay.detect] watching=%s dir=%s", len(self.watches), self.channels.io_path)

    def dispatch(self, persona_id: str, path: Path | str, event: ChannelEvent) -> bool:
        if not self.channels.owns_input(persona_id, path):
            logger.warning("[relay.detect] dropped event for persona=%s from foreign path=%s", persona_id, path)
            return False
        try:
            self.callback(persona_id, event)
        except Exception:
            logger.exception("Change callback failed for persona=%s", persona_id)
            return False
        return True

    def poll_once(self) -> list[tuple[str, ChannelEvent]]:
        if not self._primed:
            self.prime()
            return []
        emitted: list[tuple[str, ChannelEvent]] = []
        for watch in self.watches:
            current = _signature(watch.path)
            previous = watch.signature
            watch.signature = current
            if current is None or current == previous:
                continue
            event = ChannelEvent.CREATED if previous is None else ChannelEvent.MODIFIED
            if self.dispatch(watch.persona_id, watch.path, event):
                emitted.append((watch.persona_id, event))
        return emitted

    async def run(self) -> None:
        self.prime()
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Change detector poll error")
