from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

from arena.agents.base import Agent
from arena.core.events import BattleEventType
from arena.core.stage import Stage
from arena.prompts import load_prompt

MAX_NARRATIVE_CHARS = 280

_STAGE_DESCRIPTION: dict[Stage, str] = {
    Stage.OPENING: "early chaos of the battle",
    Stage.MID_BATTLE: "intense mid-game conflict",
    Stage.FINAL_SHOWDOWN: "dramatic final showdown with high tension",
}

_PROMPT_FILES: dict[BattleEventType, str] = {
    BattleEventType.ELIMINATION: "elimination.txt",
    BattleEventType.REVIVE: "revival.txt",
    BattleEventType.WINNER: "victory.txt",
}

_EMOJI = re.compile("[\U0001f300-\U0001faff☀-➿]")


@dataclass(frozen=True, slots=True)
class NarrativeContext:
    """Everything a provider may use to narrate one intent.

    `subject` is the victim for eliminations, the revived participant for revivals, and the
    champion for a win. `attacker` is None when the arena claimed the victim.
    """

    kind: BattleEventType
    stage: Stage
    subject: str
    attacker: str | None = None
    round: int = 1


class Narrator(Protocol):
    async def generate(self, ctx: NarrativeContext) -> str:  # pragma: no cover
        ...


class NarrativeError(RuntimeError):
    pass


def parse_narrative(text: str) -> str:
    """Validate provider output: one non-empty line of plain text within the length cap."""

    lines = [ln.strip() for ln in (text or "").splitlines() if ln.strip()]
    if not lines:
        raise NarrativeError("Empty narrative")

    line = lines[0].strip().strip('"').strip("'").strip()
    line = _EMOJI.sub("", line).strip()
    if not line:
        raise NarrativeError("Empty narrative")
    if len(line) > MAX_NARRATIVE_CHARS:
        raise NarrativeError(f"Narrative too long ({len(line)} chars)")
    return line


def build_prompt(ctx: NarrativeContext) -> str:
    try:
        instructions = load_prompt(_PROMPT_FILES[ctx.kind])
    except KeyError as e:
        raise NarrativeError(f"No narrative prompt for {ctx.kind.value}") from e

    facts: list[str] = []
    if ctx.kind == BattleEventType.ELIMINATION:
        facts.append(f"Victim: {ctx.subject}")
        if ctx.attacker:
            facts.append(f"Attacker: {ctx.attacker}")
        else:
            facts.append("Eliminated by arena hazard")
        facts.append(f"Stage: {_STAGE_DESCRIPTION[ctx.stage]}")
    elif ctx.kind == BattleEventType.REVIVE:
        facts.append(f"Revived Player: {ctx.subject}")
    else:
        facts.append(f"Champion: {ctx.subject}")
    facts.append(f"Round: {ctx.round}")

    return instructions.strip() + "\n\n" + "\n".join(facts) + "\n"


@dataclass(slots=True)
class AgentNarrator:
    """Narrative provider backed by an LLM agent (AG2 by default)."""

    agent: Agent
    system_prompt: str = ""

    def __post_init__(self) -> None:
        if not self.system_prompt:
            self.system_prompt = load_prompt("announcer.txt")

    async def generate(self, ctx: NarrativeContext) -> str:
        action = await self.agent.propose_action(prompt=build_prompt(ctx), system_prompt=self.system_prompt)
        return parse_narrative(action.content)
