from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from persona_relay import app  # noqa: E402


class _ExplodingOrchestrator:
    async def run(self) -> None:
        raise ValueError("bad reply payload")


def test_config_error_exits_with_code_two(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def broken_config() -> None:
        raise ValueError("IO_PATH is required")

    monkeypatch.setattr(app, "prepare_orchestrator", broken_config)

    with pytest.raises(SystemExit) as excinfo:
        app.cli()

    assert excinfo.value.code == 2
    assert "Relay config error: IO_PATH is required" in capsys.readouterr().err


def test_runtime_value_error_is_not_reported_as_config_error(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(app, "prepare_orchestrator", lambda: _ExplodingOrchestrator())

    with pytest.raises(ValueError, match="bad reply payload"):
        app.cli()

    assert "Relay config error" not in capsys.readouterr().err
