from __future__ import annotations

import asyncio

import pytest

from arena.agents.base import AgentAction
from arena.agents.narrator import AgentNarrator, NarrativeContext, NarrativeError, build_prompt, parse_narrative
from arena.core.events import BattleEventType
from arena.core.sampling import RandomSource
from arena.core.stage import Stage
from arena.narration import resolve_narrative
from arena.narratives import ARENA_NAME, TEMPLATES, has_placeholders, render_template


class _FailingNarrator:
    async def generate(self, ctx: NarrativeContext) -> str:
        raise RuntimeError("provider down")


class _SlowNarrator:
    async def generate(self, ctx: NarrativeContext) -> str:
        await asyncio.sleep(10)
        return "too late"


class _FixedNarrator:
    def __init__(self, text: str) -> None:
        self.text = text
        self.seen: list[NarrativeContext] = []

    async def generate(self, ctx: NarrativeContext) -> str:
        self.seen.append(ctx)
        return self.text


def test_every_kind_and_stage_has_templates() -> None:
    for kind in (BattleEventType.ELIMINATION, BattleEventType.REVIVE, BattleEventType.WINNER):
        for stage in Stage:
            assert TEMPLATES[(kind, stage)]


def test_render_template_substitutes_every_placeholder() -> None:
    text = render_template("{attacker} vs {victim}! {victim} falls.", victim="Zed")
    assert text == f"{ARENA_NAME} vs Zed! Zed falls."
    assert not has_placeholders(text)

    assert render_template("{winner} wins", victim="Ann") == "Ann wins"


def test_parse_narrative_rejects_empty_and_long_output() -> None:
    with pytest.raises(NarrativeError):
        parse_narrative("   \n  ")
    with pytest.raises(NarrativeError):
        parse_narrative("x" * 1000)

    assert parse_narrative('"Bob is vaporized!"\nextra chatter') == "Bob is vaporized!"


async def test_failing_provider_falls_back_to_templates() -> None:
    sampler = RandomSource(seed=7)
    for stage in Stage:
        for kind in (BattleEventType.ELIMINATION, BattleEventType.REVIVE, BattleEventType.WINNER):
            ctx = NarrativeContext(kind=kind, stage=stage, subject="Vic", attacker=None)
            resolved = await resolve_narrative(ctx=ctx, sampler=sampler, narrator=_FailingNarrator())
            assert resolved.source == "fallback"
            assert not has_placeholders(resolved.message)
            assert "Vic" in resolved.message


async def test_slow_provider_is_bounded_by_timeout() -> None:
    ctx = NarrativeContext(kind=BattleEventType.ELIMINATION, stage=Stage.OPENING, subject="Vic", attacker="Ace")

    loop = asyncio.get_running_loop()
    started = loop.time()
    resolved = await resolve_narrative(ctx=ctx, sampler=RandomSource(seed=1), narrator=_SlowNarrator(), timeout_s=0.05)

    assert loop.time() - started < 2
    assert resolved.source == "fallback"
    assert not has_placeholders(resolved.message)


async def test_provider_text_is_used_and_placeholders_resolved() -> None:
    narrator = _FixedNarrator("{attacker} obliterates {victim}!")
    ctx = NarrativeContext(kind=BattleEventType.ELIMINATION, stage=Stage.MID_BATTLE, subject="Vic", attacker="Ace")

    resolved = await resolve_narrative(ctx=ctx, sampler=RandomSource(seed=1), narrator=narrator)

    assert resolved.source == "provider"
    assert resolved.message == "Ace obliterates Vic!"
    assert narrator.seen == [ctx]


async def test_no_provider_uses_templates() -> None:
    ctx = NarrativeContext(kind=BattleEventType.REVIVE, stage=Stage.MID_BATTLE, subject="Lazarus")
    resolved = await resolve_narrative(ctx=ctx, sampler=RandomSource(seed=3), narrator=None)
    assert resolved.source == "fallback"
    assert "Lazarus" in resolved.message


def test_build_prompt_mentions_participants() -> None:
    prompt = build_prompt(
        NarrativeContext(kind=BattleEventType.ELIMINATION, stage=Stage.FINAL_SHOWDOWN, subject="Vic", attacker=None)
    )
    assert "Victim: Vic" in prompt
    assert "arena hazard" in prompt
    assert "final showdown" in prompt

    prompt = build_prompt(
        NarrativeContext(kind=BattleEventType.WINNER, stage=Stage.FINAL_SHOWDOWN, subject="Ann", round=9)
    )
    assert "Champion: Ann" in prompt
    assert "Round: 9" in prompt


class _CapAgent:
    name = "cap"

    def __init__(self) -> None:
        self.system_prompt: str | None = None

    async def propose_action(self, *, prompt: str, system_prompt: str) -> AgentAction:
        self.system_prompt = system_prompt
        return AgentAction(kind="chat", content="  Ace sends Vic flying into the void!  ")


async def test_agent_narrator_uses_announcer_prompt() -> None:
    agent = _CapAgent()
    narrator = AgentNarrator(agent=agent)
    text = await narrator.generate(
        NarrativeContext(kind=BattleEventType.ELIMINATION, stage=Stage.OPENING, subject="Vic", attacker="Ace")
    )
    assert text == "Ace sends Vic flying into the void!"
    assert agent.system_prompt is not None
    assert "announcer" in agent.system_prompt
