from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import UUID

import redis

from arena.agents.narrator import NarrativeContext, Narrator
from arena.api.models import Participant
from arena.core.decision import plan_round
from arena.core.events import BattleEvent, BattleEventType
from arena.core.sampling import SamplingSource
from arena.core.stage import Stage, classify_stage
from arena.narration import DEFAULT_NARRATIVE_TIMEOUT_S, resolve_narrative
from arena.room_store import mark_eliminated, mark_revived, set_current_round, set_winner
from arena.streams import append_event

logger = logging.getLogger(__name__)

OnEvent = Callable[[BattleEvent], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RoundOutcome:
    """Result of one round.

    `participants` is the roster after the round; the next round must start from it rather
    than re-reading the store, which may lag behind if a write failed.
    """

    round: int
    events: list[BattleEvent]
    is_complete: bool
    participants: list[Participant]
    winner: Participant | None = None
    eliminated_count: int = 0
    revived_count: int = 0
    # True when the roster had nobody alive; the room can't make progress.
    inconsistent: bool = False

    @property
    def survivor_count(self) -> int:
        return sum(1 for p in self.participants if p.is_alive)


@dataclass(slots=True)
class _RoundWriter:
    r: redis.Redis
    room_id: UUID
    round: int
    on_event: OnEvent | None
    keepalive: Callable[[], None] | None = None
    events: list[BattleEvent] = field(default_factory=list)

    def touch(self) -> None:
        # Runs outside the persist error handling: a lost lease must abort the round.
        if self.keepalive is not None:
            self.keepalive()

    def persist(self, what: str, fn: Callable[[], object]) -> None:
        self.touch()
        # The in-memory roster is the source of truth for the rest of the battle, so a failed
        # write is logged and the round carries on.
        try:
            fn()
        except (redis.RedisError, ValueError):
            logger.exception("[%s] round %d: failed to persist %s", self.room_id, self.round, what)

    async def emit(self, *, type: BattleEventType, message: str, involved: list[str] | None = None) -> BattleEvent:
        event = BattleEvent.now(
            room_id=self.room_id,
            round=self.round,
            type=type,
            message=message,
            involved_participant_ids=involved,
        )
        self.events.append(event)
        self.persist(f"{type.value} event", lambda: append_event(r=self.r, event=event))

        if self.on_event is not None:
            try:
                await self.on_event(event)
            except Exception:
                logger.exception("[%s] event subscriber failed for %s", self.room_id, type.value)
        return event


async def _crown(
    *,
    writer: _RoundWriter,
    winner: Participant,
    stage: Stage,
    sampler: SamplingSource,
    narrator: Narrator | None,
    narrative_timeout_s: float,
) -> None:
    writer.persist("winner", lambda: set_winner(r=writer.r, room_id=writer.room_id, participant_id=winner.participant_id))
    narrative = await resolve_narrative(
        ctx=NarrativeContext(kind=BattleEventType.WINNER, stage=stage, subject=winner.label, round=writer.round),
        sampler=sampler,
        narrator=narrator,
        timeout_s=narrative_timeout_s,
    )
    await writer.emit(type=BattleEventType.WINNER, message=narrative.message, involved=[winner.participant_id])


async def execute_round(
    *,
    r: redis.Redis,
    room_id: UUID,
    round: int,
    participants: list[Participant],
    sampler: SamplingSource,
    narrator: Narrator | None = None,
    narrative_sampler: SamplingSource | None = None,
    narrative_timeout_s: float = DEFAULT_NARRATIVE_TIMEOUT_S,
    on_event: OnEvent | None = None,
    keepalive: Callable[[], None] | None = None,
) -> RoundOutcome:
    """Run one round against a roster snapshot.

    - one survivor on entry: WINNER only
    - nobody alive: complete without a winner (logged; the caller must halt the room)
    - otherwise: ROUND_START, revival, eliminations, then WINNER or ROUND_END

    `sampler` drives the decision engine; `narrative_sampler` (defaults to `sampler`) picks
    fallback templates so scripted tests can keep the two streams apart. `keepalive` runs before
    every store write; whatever it raises (RoomBusyError on a lost lease) aborts the round.
    """

    roster = [p.model_copy(deep=True) for p in participants]
    by_id = {p.participant_id: p for p in roster}
    alive = [p for p in roster if p.is_alive]
    text_sampler = narrative_sampler or sampler

    writer = _RoundWriter(r=r, room_id=room_id, round=round, on_event=on_event, keepalive=keepalive)

    if not roster or not alive:
        logger.error("[%s] round %d: no participants alive; halting (inconsistent roster)", room_id, round)
        return RoundOutcome(round=round, events=[], is_complete=True, participants=roster, inconsistent=True)

    stage = classify_stage(len(alive), len(roster))

    if len(alive) == 1:
        await _crown(
            writer=writer,
            winner=alive[0],
            stage=stage,
            sampler=text_sampler,
            narrator=narrator,
            narrative_timeout_s=narrative_timeout_s,
        )
        return RoundOutcome(round=round, events=writer.events, is_complete=True, participants=roster, winner=alive[0])

    writer.persist("current round", lambda: set_current_round(r=r, room_id=room_id, round=round))
    await writer.emit(type=BattleEventType.ROUND_START, message=f"ROUND {round} BEGINS! {len(alive)} warriors remain!")

    plan = plan_round(roster, sampler)
    logger.info(
        "[%s] round %d (%s): %d alive, revival=%s, eliminations=%d",
        room_id,
        round,
        plan.stage.value,
        plan.alive_before,
        plan.revival is not None,
        len(plan.eliminations),
    )

    revived_count = 0
    if plan.revival is not None:
        lucky = by_id[plan.revival.participant_id]
        lucky.is_alive = True
        lucky.eliminated_at_round = None
        lucky.eliminated_by = None
        lucky.revived_count += 1
        revived_count = 1
        writer.persist("revival", lambda: mark_revived(r=r, room_id=room_id, participant_id=lucky.participant_id))

        narrative = await resolve_narrative(
            ctx=NarrativeContext(kind=BattleEventType.REVIVE, stage=plan.stage, subject=lucky.label, round=round),
            sampler=text_sampler,
            narrator=narrator,
            timeout_s=narrative_timeout_s,
        )
        await writer.emit(type=BattleEventType.REVIVE, message=narrative.message, involved=[lucky.participant_id])

    eliminated_count = 0
    for elim in plan.eliminations:
        victim = by_id[elim.victim_id]
        attacker = by_id[elim.attacker_id] if elim.attacker_id is not None else None
        if not victim.is_alive:
            logger.error("[%s] round %d: planned victim %s is not alive; skipping", room_id, round, victim.participant_id)
            continue

        victim.is_alive = False
        victim.eliminated_at_round = round
        victim.eliminated_by = attacker.participant_id if attacker else None
        eliminated_count += 1
        writer.persist(
            "elimination",
            lambda: mark_eliminated(
                r=r,
                room_id=room_id,
                participant_id=victim.participant_id,
                attacker_id=victim.eliminated_by,
                round=round,
            ),
        )

        narrative = await resolve_narrative(
            ctx=NarrativeContext(
                kind=BattleEventType.ELIMINATION,
                stage=plan.stage,
                subject=victim.label,
                attacker=attacker.label if attacker else None,
                round=round,
            ),
            sampler=text_sampler,
            narrator=narrator,
            timeout_s=narrative_timeout_s,
        )
        involved = [attacker.participant_id, victim.participant_id] if attacker else [victim.participant_id]
        await writer.emit(type=BattleEventType.ELIMINATION, message=narrative.message, involved=involved)

        survivors = [p for p in roster if p.is_alive]
        if len(survivors) == 1:
            await _crown(
                writer=writer,
                winner=survivors[0],
                stage=plan.stage,
                sampler=text_sampler,
                narrator=narrator,
                narrative_timeout_s=narrative_timeout_s,
            )
            return RoundOutcome(
                round=round,
                events=writer.events,
                is_complete=True,
                participants=roster,
                winner=survivors[0],
                eliminated_count=eliminated_count,
                revived_count=revived_count,
            )

    survivors_left = sum(1 for p in roster if p.is_alive)
    await writer.emit(
        type=BattleEventType.ROUND_END,
        message=f"Round {round} complete. {survivors_left} survivors advance to the next round!",
    )
    return RoundOutcome(
        round=round,
        events=writer.events,
        is_complete=False,
        participants=roster,
        eliminated_count=eliminated_count,
        revived_count=revived_count,
    )
