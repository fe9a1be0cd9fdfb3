from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger("persona_relay.prompts")

_CACHE: dict[str, tuple[int | None, dict[str, str]]] = {}


def _read_text(path: Path) -> str:
    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8", "cp1252"):
        try:
            return path.read_text(encoding=encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
    if last_exc is not None:
        raise last_exc
    raise RuntimeError(f"Unable to read prompt JSON: {path}")


def _apply_overrides(base: dict[str, str], payload: dict[str, object], path: Path) -> dict[str, str]:
    merged = dict(base)
    applied = 0
    for key, value in payload.items():
        prompt_key = str(key).strip().lower()
        if not isinstance(value, str) or not value.strip():
            logger.warning("Ignoring empty prompt value for key '%s' in %s", key, path.name)
            continue
        merged[prompt_key] = value
        applied += 1
    logger.info("[prompts] applied=%s overrides from %s", applied, path)
    return merged


def load_prompt_json(path: Path | None, defaults: dict[str, str]) -> dict[str, str]:
    """Return ``defaults`` overlaid with the flat string map stored at ``path``.

    The file is optional. Parse failures fall back to the defaults and the
    result is cached per mtime, so edits are picked up on the next call.
    """
    if path is None:
        return dict(defaults)

    cache_key = str(path.expanduser().resolve())
    mtime_ns: int | None = None
    if path.exists():
        try:
            mtime_ns = path.stat().st_mtime_ns
        except OSError:
            mtime_ns = None

    cached = _CACHE.get(cache_key)
    if cached is not None and cached[0] == mtime_ns:
        return dict(cached[1])

    if not path.exists():
        logger.info("Optional prompts file not found: %s (using built-in prompts)", path)
        _CACHE[cache_key] = (mtime_ns, dict(defaults))
        return dict(defaults)

    try:
        payload = json.loads(_read_text(path))
    except (OSError, ValueError) as exc:
        logger.warning("Failed to parse prompts JSON %s (%s). Using built-in prompts.", path, exc)
        _CACHE[cache_key] = (mtime_ns, dict(defaults))
        return dict(defaults)

    if not isinstance(payload, dict):
        logger.warning("Prompts JSON root must be an object: %s (using built-in prompts)", path)
        _CACHE[cache_key] = (mtime_ns, dict(defaults))
        return dict(defaults)

    merged = _apply_overrides(defaults, payload, path)
    _CACHE[cache_key] = (mtime_ns, dict(merged))
    return merged


def clear_cache() -> None:
    _CACHE.clear()
