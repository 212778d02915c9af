from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from arena.core.sampling import SamplingSource
from arena.core.stage import Stage, classify_stage

REVIVAL_PROBABILITY: dict[Stage, float] = {
    Stage.OPENING: 0.05,
    Stage.MID_BATTLE: 0.12,
    Stage.FINAL_SHOWDOWN: 0.03,
}

# Share of the alive roster eliminated per round; the final showdown always takes one at a time.
ELIMINATION_RATE: dict[Stage, float] = {
    Stage.OPENING: 0.15,
    Stage.MID_BATTLE: 0.10,
}

ATTACKER_PROBABILITY = 0.7

# Revivals are never granted once the battle is down to this many survivors.
NO_REVIVAL_AT_OR_BELOW = 2


class Combatant(Protocol):
    @property
    def participant_id(self) -> str: ...

    @property
    def is_alive(self) -> bool: ...


@dataclass(frozen=True, slots=True)
class Revival:
    participant_id: str


@dataclass(frozen=True, slots=True)
class Elimination:
    victim_id: str
    # None means the arena itself claimed the victim.
    attacker_id: str | None = None


@dataclass(frozen=True, slots=True)
class RoundPlan:
    """Every state change the engine decided for one round, in application order."""

    stage: Stage
    alive_before: int
    revival: Revival | None = None
    eliminations: list[Elimination] = field(default_factory=list)
    winner_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.winner_id is not None


def should_attempt_revival(*, alive_count: int, eliminated_count: int) -> bool:
    return eliminated_count > 0 and alive_count > NO_REVIVAL_AT_OR_BELOW


def elimination_count(alive_count: int, total_count: int) -> int:
    """How many participants the round should remove, computed on the pre-round roster."""

    if alive_count <= 1:
        return 0
    if alive_count <= 2:
        return 1

    stage = classify_stage(alive_count, total_count)
    rate = ELIMINATION_RATE.get(stage)
    count = 1 if rate is None else max(1, math.floor(alive_count * rate))

    # At least one participant must survive the round.
    return min(count, alive_count - 1)


def plan_round(participants: Sequence[Combatant], sampler: SamplingSource) -> RoundPlan:
    """Decide revival and eliminations for one round.

    Draw order from the sampler is fixed so scripted sources stay readable:
    revival roll, revival pick, then per slot: victim pick, attacker roll, attacker pick.
    """

    total = len(participants)
    alive = [p.participant_id for p in participants if p.is_alive]
    eliminated = [p.participant_id for p in participants if not p.is_alive]

    stage = classify_stage(len(alive), total)
    if len(alive) <= 1:
        return RoundPlan(stage=stage, alive_before=len(alive), winner_id=alive[0] if alive else None)

    revival: Revival | None = None
    if should_attempt_revival(alive_count=len(alive), eliminated_count=len(eliminated)):
        if sampler.random() < REVIVAL_PROBABILITY[stage]:
            revival = Revival(participant_id=sampler.choice(eliminated))

    pool = list(alive)
    if revival is not None:
        pool.append(revival.participant_id)

    eliminations: list[Elimination] = []
    for _ in range(elimination_count(len(alive), total)):
        if len(pool) <= 1:
            break
        victim = sampler.choice(pool)
        pool.remove(victim)

        attacker: str | None = None
        if pool and sampler.random() < ATTACKER_PROBABILITY:
            attacker = sampler.choice(pool)
        eliminations.append(Elimination(victim_id=victim, attacker_id=attacker))

    return RoundPlan(
        stage=stage,
        alive_before=len(alive),
        revival=revival,
        eliminations=eliminations,
        winner_id=pool[0] if len(pool) == 1 else None,
    )
