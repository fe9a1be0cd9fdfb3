from __future__ import annotations

import logging
import time
from typing import Callable

from .prompts.persona import PersonaPrompts
from .roster import display_name
from .state import ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_USER, ConversationRecord, PersonaState, Turn

logger = logging.getLogger("persona_relay.conversation")


class ConversationManager:
    """Owns the history rules for every persona record.

    Records start Fresh (``[system]``) and become Active as user/assistant
    pairs accumulate. ``turns[0]`` is always the system turn; trimming and
    idle resets never remove it.
    """

    def __init__(
        self,
        prompts: PersonaPrompts,
        *,
        max_context: int,
        max_tokens: int,
        reset_idle_seconds: float,
        discard_failed_user_turn: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_context < 1:
            raise ValueError("max_context must be >= 1")
        if reset_idle_seconds <= 0:
            raise ValueError("reset_idle_seconds must be > 0")
        self.prompts = prompts
        self.max_context = int(max_context)
        self.max_tokens = int(max_tokens)
        self.reset_idle_seconds = float(reset_idle_seconds)
        self.discard_failed_user_turn = discard_failed_user_turn
        self.clock = clock

    @property
    def max_turns(self) -> int:
        return 1 + 2 * self.max_context

    def _system_turn(self, persona_id: str) -> Turn:
        return Turn(ROLE_SYSTEM, self.prompts.build_system_prompt(persona_id, self.max_tokens))

    def create_record(self, persona_id: str) -> ConversationRecord:
        return ConversationRecord(turns=[self._system_turn(persona_id)], last_active=self.clock())

    def touch(self, record: ConversationRecord) -> None:
        record.last_active = self.clock()

    def is_repeat(self, record: ConversationRecord, text: str) -> bool:
        previous = record.turns[-1]
        return previous.role == ROLE_USER and previous.content == text

    def append_user(self, record: ConversationRecord, text: str) -> bool:
        self.touch(record)
        if self.is_repeat(record, text):
            return False
        record.turns.append(Turn(ROLE_USER, text))
        return True

    def append_assistant(self, record: ConversationRecord, text: str) -> None:
        record.turns.append(Turn(ROLE_ASSISTANT, text))

    def trim(self, record: ConversationRecord) -> int:
        removed = 0
        while len(record.turns) > self.max_turns and len(record.turns) >= 3:
            del record.turns[1:3]
            removed += 1
        return removed

    def build_request(self, record: ConversationRecord, text: str) -> list[dict[str, str]]:
        """History as sent to the provider: the stored turns plus the pending user turn.

        The record itself is not touched until the provider answers, so the
        oldest pair is still visible to the backend on this call.
        """
        messages = self.snapshot(record)
        if not self.is_repeat(record, text):
            messages.append(Turn(ROLE_USER, text).as_message())
        return messages

    def commit_exchange(self, record: ConversationRecord, text: str, reply: str) -> None:
        self.append_user(record, text)
        self.append_assistant(record, reply)
        self.trim(record)

    def handle_failed_completion(self, record: ConversationRecord, text: str) -> bool:
        """Apply the failure policy; returns True when the user turn was dropped."""
        if self.discard_failed_user_turn:
            return not self.is_repeat(record, text)
        self.append_user(record, text)
        self.trim(record)
        return False

    def is_idle(self, record: ConversationRecord) -> bool:
        return (self.clock() - record.last_active) >= self.reset_idle_seconds

    def reset_if_idle(self, state: PersonaState) -> bool:
        record = state.conversation
        if state.busy or len(record.turns) <= 1 or not self.is_idle(record):
            return False
        record.turns[:] = [self._system_turn(state.persona_id)]
        record.last_active = self.clock()
        logger.info(
            "[relay.reset] persona=%s idle>=%ss history cleared",
            display_name(state.persona_id),
            int(self.reset_idle_seconds),
        )
        return True

    @staticmethod
    def snapshot(record: ConversationRecord) -> list[dict[str, str]]:
        return [turn.as_message() for turn in record.turns]
