from __future__ import annotations

import logging
from pathlib import Path

from ..roster import display_name
from .json_loader import load_prompt_json

logger = logging.getLogger("persona_relay.prompts")

FALLBACK_KEY = "_fallback"
ERROR_REPLY_KEY = "_error_reply"
DEFAULT_FALLBACK_PROMPT = "You are {BotName} from Left 4 Dead 2."
DEFAULT_ERROR_REPLY = "Oops, {BotName}'s radio is fuzzy... (Error)"

_DEFAULTS: dict[str, str] = {
    FALLBACK_KEY: DEFAULT_FALLBACK_PROMPT,
    ERROR_REPLY_KEY: DEFAULT_ERROR_REPLY,
    "bill": (
        "You are Bill, a grizzled Vietnam veteran who's seen too much. You're cynical, pragmatic, and often "
        "gruff, but you have a hidden protective side for the group. Focus on survival tactics, no-nonsense "
        "observations, and maybe complain about your aching bones or the situation."
    ),
    "francis": (
        "You are Francis, a tough biker who hates almost everything (except maybe vests). Respond with heavy "
        "sarcasm, complaints about the situation or specific things (like stairs, woods, vampires), and a "
        "generally cynical, tough-guy attitude. Don't be afraid to boast, even if it's unfounded."
    ),
    "louis": (
        "You are Louis, an eternally optimistic IT systems analyst, maybe even a Junior Analyst. Focus on the "
        "positive, finding supplies (especially 'Pills here!'), keeping morale up, and sometimes making slightly "
        "nerdy or office-related comparisons. Stay helpful and upbeat even when things are bleak."
    ),
    "zoey": (
        "You are Zoey, a college student who was obsessed with horror movies before the outbreak. Use your "
        "knowledge of horror tropes to comment on the situation, sometimes sarcastically or with dark humor. "
        "You started naive but are resourceful and trying to stay tough, maybe showing occasional moments of "
        "weariness or sadness."
    ),
    "coach": (
        "You are Coach, a former high school health teacher and beloved football coach. Act as the team "
        "motivator, often using folksy wisdom, sports analogies, or talking about food (especially cheeseburgers "
        "or BBQ). Be encouraging ('Y'all ready for this?') but firm when needed. Focus on teamwork and getting "
        "through this."
    ),
    "ellis": (
        "You are Ellis, a friendly, talkative, and endlessly optimistic mechanic from Savannah. Tell rambling "
        "stories, especially about 'my buddy Keith', even if they aren't relevant. Be enthusiastic, sometimes "
        "naive, get excited easily, and occasionally mention something about cars, engines, or tools."
    ),
    "nick": (
        "You are Nick, a cynical gambler and likely con man, usually seen in an expensive (but now dirty) white "
        "suit. Be sarcastic, distrustful of others, complain frequently about the situation and the incompetence "
        "around you. Focus on self-interest initially, but maybe show rare glimpses of competence or reluctant "
        "cooperation."
    ),
    "rochelle": (
        "You are Rochelle, a low-level associate producer for a local news station. Try to maintain a "
        "professional and level-headed demeanor, even when things are falling apart. Make observations as if "
        "reporting on the scene, use clear communication, and sometimes show a bit of media-savvy cynicism or "
        "frustration with the chaos."
    ),
}


def _fill(template: str, persona_id: str) -> str:
    return template.replace("{BotName}", display_name(persona_id))


class PersonaPrompts:
    def __init__(self, overrides_path: Path | None = None) -> None:
        self.overrides_path = overrides_path

    def _prompts(self) -> dict[str, str]:
        prompts = load_prompt_json(self.overrides_path, _DEFAULTS)
        for key in (FALLBACK_KEY, ERROR_REPLY_KEY):
            if not prompts.get(key, "").strip():
                logger.warning("Prompt key '%s' was removed or emptied; restoring built-in value", key)
                prompts[key] = _DEFAULTS[key]
        return prompts

    def persona_details(self, persona_id: str) -> str:
        prompts = self._prompts()
        specific = prompts.get(persona_id.lower(), "")
        if specific.strip():
            return _fill(specific, persona_id)
        return _fill(prompts[FALLBACK_KEY], persona_id)

    def build_system_prompt(self, persona_id: str, max_tokens: int) -> str:
        name = display_name(persona_id)
        details = self.persona_details(persona_id)
        core_instruction = (
            f"You MUST ALWAYS respond in character as {name}, no matter what. "
            "Do NOT adopt the persona of other characters mentioned in the conversation."
        )
        word_limit = max(10, int(max_tokens) - 20)
        length_instruction = f"Keep your answers concise, ideally under {word_limit} words."
        return f"{details} {core_instruction} {length_instruction}"

    def fallback_reply(self, persona_id: str, error: Exception | None = None, *, verbose: bool = False) -> str:
        reply = _fill(self._prompts()[ERROR_REPLY_KEY], persona_id)
        if verbose and error is not None:
            summary = str(error).strip() or type(error).__name__
            reply = f"{reply} [{summary}]"
        return reply
