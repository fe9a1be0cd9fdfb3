from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from .roster import SURVIVOR_NAMES, normalize_persona_id

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

TriggerStamp = tuple[float, int]


@dataclass(slots=True)
class Turn:
    role: str
    content: str

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class ConversationRecord:
    turns: list[Turn]
    last_active: float

    def pair_count(self) -> int:
        return (len(self.turns) - 1) // 2


@dataclass(slots=True)
class PersonaState:
    persona_id: str
    conversation: ConversationRecord
    busy: bool = False
    pending_trigger: TriggerStamp | None = None


@dataclass(slots=True)
class PersonaTable:
    """Single persona -> state mapping shared by reference between components."""

    states: dict[str, PersonaState] = field(default_factory=dict)

    def __getitem__(self, persona_id: str) -> PersonaState:
        return self.states[normalize_persona_id(persona_id)]

    def __iter__(self) -> Iterator[PersonaState]:
        return iter(self.states.values())

    def __len__(self) -> int:
        return len(self.states)

    def add(self, state: PersonaState) -> None:
        key = normalize_persona_id(state.persona_id)
        if key in self.states:
            raise ValueError(f"Persona state already registered: {key}")
        self.states[key] = state

    @property
    def persona_ids(self) -> tuple[str, ...]:
        return tuple(self.states)


def roster_ids(roster: Iterable[str] = SURVIVOR_NAMES) -> tuple[str, ...]:
    return tuple(normalize_persona_id(name) for name in roster)
