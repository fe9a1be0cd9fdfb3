from .json_loader import load_prompt_json
from .persona import PersonaPrompts

__all__ = ["PersonaPrompts", "load_prompt_json"]
