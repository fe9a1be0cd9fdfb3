from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from persona_relay.channels import ChannelError, PersonaChannels  # noqa: E402
from persona_relay.conversation import ConversationManager  # noqa: E402
from persona_relay.orchestrator import Orchestrator  # noqa: E402
from persona_relay.prompts.persona import PersonaPrompts  # noqa: E402
from persona_relay.providers.base import GenerationParams, ProviderError, ProviderErrorKind  # noqa: E402


class _FakeProvider:
    def __init__(self, replies: list[object] | None = None, *, hold: asyncio.Event | None = None) -> None:
        self.replies = list(replies or ["Feelin' good, team!"])
        self.hold = hold
        self.calls: list[list[dict[str, str]]] = []
        self.params: list[GenerationParams] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.started = False
        self.closed = False

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def complete(self, messages: list[dict[str, str]], params: GenerationParams) -> str:
        self.calls.append(messages)
        self.params.append(params)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.hold is not None:
                await self.hold.wait()
            else:
                await asyncio.sleep(0)
            reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
            if isinstance(reply, Exception):
                raise reply
            return str(reply)
        finally:
            self.in_flight -= 1


def _build(
    tmp_path: Path,
    provider: _FakeProvider,
    *,
    max_context: int = 5,
    reset_idle_seconds: int = 120,
    debounce_ms: int = 20,
    verbose_errors: bool = False,
    discard_failed_user_turn: bool = False,
) -> Orchestrator:
    prompts = PersonaPrompts(None)
    conversations = ConversationManager(
        prompts,
        max_context=max_context,
        max_tokens=60,
        reset_idle_seconds=reset_idle_seconds,
        discard_failed_user_turn=discard_failed_user_turn,
    )
    return Orchestrator(
        provider=provider,  # type: ignore[arg-type]
        channels=PersonaChannels(tmp_path),
        conversations=conversations,
        prompts=prompts,
        params=GenerationParams(max_tokens=60, temperature=0.7),
        debounce_ms=debounce_ms,
        idle_sweep_seconds=0.05,
        poll_interval_seconds=0.02,
        verbose_errors=verbose_errors,
    )


def _roles(orchestrator: Orchestrator, persona_id: str) -> list[str]:
    return [turn.role for turn in orchestrator.table[persona_id].conversation.turns]


def test_successful_trigger_writes_reply_and_grows_history(tmp_path: Path) -> None:
    provider = _FakeProvider(["Feelin' good, team!"])
    orchestrator = _build(tmp_path, provider)
    (tmp_path / "coach_in.txt").write_text("coach how are you", encoding="utf-8")

    asyncio.run(orchestrator.process("coach"))

    assert len(provider.calls) == 1
    sent = provider.calls[0]
    assert [m["role"] for m in sent] == ["system", "user"]
    assert sent[1]["content"] == "coach how are you"
    assert provider.params[0].max_tokens == 60
    assert (tmp_path / "coach_out.txt").read_text(encoding="utf-8") == "Feelin' good, team!"
    assert (tmp_path / "coach_in.txt").read_text(encoding="utf-8") == ""
    assert _roles(orchestrator, "coach") == ["system", "user", "assistant"]
    assert orchestrator.table["coach"].busy is False


def test_provider_failure_writes_persona_fallback_and_releases_gate(tmp_path: Path) -> None:
    provider = _FakeProvider([ProviderError(ProviderErrorKind.TIMEOUT, "OpenAI call timed out")])
    orchestrator = _build(tmp_path, provider)
    (tmp_path / "coach_in.txt").write_text("coach how are you", encoding="utf-8")

    asyncio.run(orchestrator.process("coach"))

    reply = (tmp_path / "coach_out.txt").read_text(encoding="utf-8")
    assert reply.strip()
    assert "Coach" in reply
    assert "timed out" not in reply
    assert orchestrator.table["coach"].busy is False
    assert _roles(orchestrator, "coach") == ["system", "user"]

    state = orchestrator.table["coach"]
    state.conversation.last_active = time.monotonic() - 121
    assert orchestrator.sweeper.sweep_once() == ["coach"]
    assert _roles(orchestrator, "coach") == ["system"]


def test_verbose_errors_append_provider_detail(tmp_path: Path) -> None:
    provider = _FakeProvider([ProviderError(ProviderErrorKind.STATUS, "Groq error 401", detail="bad key", status=401)])
    orchestrator = _build(tmp_path, provider, verbose_errors=True)
    (tmp_path / "nick_in.txt").write_text("got cash?", encoding="utf-8")

    asyncio.run(orchestrator.process("nick"))

    reply = (tmp_path / "nick_out.txt").read_text(encoding="utf-8")
    assert reply.startswith("Oops, Nick's radio is fuzzy")
    assert "Groq error 401: bad key" in reply


def test_unexpected_provider_exception_still_replies(tmp_path: Path) -> None:
    provider = _FakeProvider([KeyError("choices")])
    orchestrator = _build(tmp_path, provider)
    (tmp_path / "bill_in.txt").write_text("sitrep", encoding="utf-8")

    asyncio.run(orchestrator.process("bill"))

    assert "Bill" in (tmp_path / "bill_out.txt").read_text(encoding="utf-8")
    assert orchestrator.table["bill"].busy is False


def test_two_exchanges_with_single_pair_context(tmp_path: Path) -> None:
    provider = _FakeProvider(["first answer", "second answer"])
    orchestrator = _build(tmp_path, provider, max_context=1)
    inbox = tmp_path / "ellis_in.txt"

    async def scenario() -> None:
        inbox.write_text("first question", encoding="utf-8")
        await orchestrator.process("ellis")
        inbox.write_text("second question", encoding="utf-8")
        await orchestrator.process("ellis")

    asyncio.run(scenario())

    turns = orchestrator.table["ellis"].conversation.turns
    assert len(turns) == 3
    assert [t.role for t in turns] == ["system", "user", "assistant"]
    assert [t.content for t in turns[1:]] == ["second question", "second answer"]
    assert [m["role"] for m in provider.calls[1]] == ["system", "user", "assistant", "user"]
    assert [m["content"] for m in provider.calls[1][1:]] == ["first question", "first answer", "second question"]


@pytest.mark.parametrize(
    ("discard", "expected"),
    [
        (True, [("user", "first question"), ("assistant", "first answer")]),
        (False, [("user", "second question")]),
    ],
)
def test_failure_after_full_exchange_applies_policy_to_failed_turn_only(
    tmp_path: Path, discard: bool, expected: list[tuple[str, str]]
) -> None:
    provider = _FakeProvider(["first answer", ProviderError(ProviderErrorKind.TIMEOUT, "Groq call timed out")])
    orchestrator = _build(tmp_path, provider, max_context=1, discard_failed_user_turn=discard)
    inbox = tmp_path / "ellis_in.txt"

    async def scenario() -> None:
        inbox.write_text("first question", encoding="utf-8")
        await orchestrator.process("ellis")
        inbox.write_text("second question", encoding="utf-8")
        await orchestrator.process("ellis")

    asyncio.run(scenario())

    turns = orchestrator.table["ellis"].conversation.turns
    assert turns[0].role == "system"
    assert [(t.role, t.content) for t in turns[1:]] == expected
    assert [m["role"] for m in provider.calls[1]] == ["system", "user", "assistant", "user"]
    assert "Ellis" in (tmp_path / "ellis_out.txt").read_text(encoding="utf-8")


def test_whitespace_input_is_a_no_op(tmp_path: Path) -> None:
    provider = _FakeProvider()
    orchestrator = _build(tmp_path, provider)
    (tmp_path / "zoey_in.txt").write_text("   \n\t ", encoding="utf-8")

    asyncio.run(orchestrator.process("zoey"))

    assert provider.calls == []
    assert not (tmp_path / "zoey_out.txt").exists()
    assert _roles(orchestrator, "zoey") == ["system"]


def test_channel_error_abandons_attempt_without_state_change(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    provider = _FakeProvider()
    orchestrator = _build(tmp_path, provider)

    def broken_read(persona_id: str) -> str:
        raise ChannelError("sharing violation")

    monkeypatch.setattr(orchestrator.channels, "read_and_clear", broken_read)

    asyncio.run(orchestrator.process("louis"))

    assert provider.calls == []
    assert not (tmp_path / "louis_out.txt").exists()
    assert _roles(orchestrator, "louis") == ["system"]
    assert orchestrator.table["louis"].busy is False


def test_concurrent_triggers_keep_one_call_in_flight(tmp_path: Path) -> None:
    async def scenario() -> _FakeProvider:
        release = asyncio.Event()
        provider = _FakeProvider(["Y'all ready for this?"], hold=release)
        orchestrator = _build(tmp_path, provider)
        (tmp_path / "coach_in.txt").write_text("ready?", encoding="utf-8")

        first = asyncio.create_task(orchestrator.process("coach"))
        await asyncio.sleep(0.01)
        assert orchestrator.table["coach"].busy is True

        (tmp_path / "coach_in.txt").write_text("ready now?", encoding="utf-8")
        await asyncio.gather(*(orchestrator.process("coach") for _ in range(5)))

        release.set()
        await first
        assert orchestrator.table["coach"].busy is False
        assert (tmp_path / "coach_in.txt").read_text(encoding="utf-8") == "ready now?"
        return provider

    provider = asyncio.run(scenario())

    assert len(provider.calls) == 1
    assert provider.max_in_flight == 1


def test_busy_persona_does_not_block_another(tmp_path: Path) -> None:
    class _PerPersonaProvider(_FakeProvider):
        async def complete(self, messages, params):  # type: ignore[no-untyped-def]
            if messages[-1]["content"] == "hello coach":
                return await super().complete(messages, params)
            return "Eh, whatever."

    async def scenario() -> None:
        release = asyncio.Event()
        provider = _PerPersonaProvider(["slow"], hold=release)
        orchestrator = _build(tmp_path, provider)
        (tmp_path / "coach_in.txt").write_text("hello coach", encoding="utf-8")
        (tmp_path / "francis_in.txt").write_text("hello francis", encoding="utf-8")

        coach_task = asyncio.create_task(orchestrator.process("coach"))
        await asyncio.sleep(0.01)
        await asyncio.wait_for(orchestrator.process("francis"), timeout=1.0)

        assert (tmp_path / "francis_out.txt").read_text(encoding="utf-8") == "Eh, whatever."
        assert orchestrator.table["coach"].busy is True

        release.set()
        await coach_task

    asyncio.run(scenario())


def test_detected_change_flows_through_debounce_to_reply(tmp_path: Path) -> None:
    async def scenario() -> _FakeProvider:
        provider = _FakeProvider(["On it."])
        orchestrator = _build(tmp_path, provider, debounce_ms=20)
        orchestrator.detector.prime()

        inbox = tmp_path / "rochelle_in.txt"
        inbox.write_text("status report", encoding="utf-8")
        emitted = orchestrator.detector.poll_once()
        assert emitted and emitted[0][0] == "rochelle"

        await asyncio.sleep(0.2)
        assert (tmp_path / "rochelle_out.txt").read_text(encoding="utf-8") == "On it."
        await orchestrator.shutdown()
        return provider

    provider = asyncio.run(scenario())

    assert len(provider.calls) == 1
    assert provider.closed is True


def test_run_starts_loops_and_stops_cleanly(tmp_path: Path) -> None:
    async def scenario() -> _FakeProvider:
        provider = _FakeProvider(["Pills here!"])
        orchestrator = _build(tmp_path, provider, debounce_ms=10)
        runner = asyncio.create_task(orchestrator.run())
        await asyncio.sleep(0.05)

        (tmp_path / "louis_in.txt").write_text("any pills?", encoding="utf-8")
        for _ in range(50):
            await asyncio.sleep(0.02)
            if (tmp_path / "louis_out.txt").exists():
                break

        orchestrator.stop()
        await asyncio.wait_for(runner, timeout=2.0)
        return provider

    provider = asyncio.run(scenario())

    assert provider.started is True
    assert provider.closed is True
    assert (tmp_path / "louis_out.txt").read_text(encoding="utf-8") == "Pills here!"
