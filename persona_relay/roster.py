from __future__ import annotations

SURVIVOR_NAMES: tuple[str, ...] = ("bill", "francis", "louis", "zoey", "coach", "ellis", "nick", "rochelle")


class UnknownPersonaError(KeyError):
    pass


def normalize_persona_id(value: str) -> str:
    persona_id = str(value or "").strip().lower()
    if persona_id not in SURVIVOR_NAMES:
        raise UnknownPersonaError(value)
    return persona_id


def display_name(persona_id: str) -> str:
    text = str(persona_id or "").strip()
    if not text:
        return text
    return text[0].upper() + text[1:]
