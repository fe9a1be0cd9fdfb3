from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

INPUT_SUFFIX = "_in.txt"
OUTPUT_SUFFIX = "_out.txt"


class ChannelError(RuntimeError):
    """Transient read/clear failure on a persona input channel."""


def input_filename(persona_id: str) -> str:
    return f"{persona_id}{INPUT_SUFFIX}"


def output_filename(persona_id: str) -> str:
    return f"{persona_id}{OUTPUT_SUFFIX}"


class PersonaChannels:
    """Plain-text exchange files: ``<io_path>/<persona>_in.txt`` and ``_out.txt``."""

    def __init__(self, io_path: Path) -> None:
        self.io_path = Path(io_path)

    def input_path(self, persona_id: str) -> Path:
        return self.io_path / input_filename(persona_id)

    def output_path(self, persona_id: str) -> Path:
        return self.io_path / output_filename(persona_id)

    def owns_input(self, persona_id: str, path: Path | str) -> bool:
        return Path(path).name.lower() == input_filename(persona_id).lower()

    def read_and_clear(self, persona_id: str) -> str:
        """Consume the pending trigger text; returns "" when there is nothing to do."""
        path = self.input_path(persona_id)
        if not path.exists():
            return ""
        try:
            text = path.read_text(encoding="utf-8-sig", errors="replace").strip()
        except OSError as exc:
            raise ChannelError(f"read failed for {path}: {exc}") from exc
        if not text:
            return ""
        try:
            path.write_text("", encoding="utf-8")
        except OSError as exc:
            raise ChannelError(f"clear failed for {path}: {exc}") from exc
        return text

    def write_reply(self, persona_id: str, text: str) -> Path:
        path = self.output_path(persona_id)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{persona_id}_out.", suffix=".tmp", dir=str(self.io_path))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise
        return path
